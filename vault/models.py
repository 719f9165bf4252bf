"""
vault/models.py -- Domain dataclasses for the OU/division hierarchy and credentials.

These are pure data containers with zero logic. Access rules live in
auth/policy.py; persistence and encryption live in vault/store.py.

The hierarchy is three fixed levels: OrganizationalUnit -> Division ->
Credential. A division belongs to exactly one OU for its whole life and a
credential to exactly one division.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class OrganizationalUnit:
    """Top-level grouping. id is None before the record is written."""

    name: str
    description: Optional[str] = None
    id: Optional[str] = None


@dataclass
class Division:
    """Sub-unit of an OU; the unit vaulted credentials are bound to.

    (name, ou_id) is unique: "IT" may exist under several OUs but only once
    under each.
    """

    name: str
    ou_id: str
    description: Optional[str] = None
    id: Optional[str] = None


@dataclass
class Credential:
    """A vaulted service login.

    password is the plaintext secret value in memory only. The store encrypts
    it on write and decrypts it on read; it never reaches the database as-is.
    """

    title: str
    username: str
    password: str
    url: str
    division_id: str
    id: Optional[str] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""  # ISO 8601, set by store on every write
