"""
auth/models.py -- Domain dataclasses for identity and authorization entities.

Pattern: Data class (pure data container, minimal logic). Mirrors the approach
in vault/models.py -- dataclasses own domain shape; stores, the policy engine
and routes do the work.

Layer rule: no imports from api/ or vault/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """The three access tiers. A closed set -- never compare raw strings."""

    NORMAL = "normal"
    MANAGEMENT = "management"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: object) -> Role:
        """Return the Role for value or raise ValueError for anything outside the set."""
        if isinstance(value, Role):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid role: {value!r}")
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Invalid role: {value!r}") from None


@dataclass
class User:
    """A stored identity with its role and OU/division memberships.

    ous and divisions hold canonical ids (see core/ids.py) in the order they
    were granted. token_version increases on every role or membership change
    and is copied into issued tokens so stale ones can be detected.
    """

    username: str
    role: Role = Role.NORMAL
    id: str | None = None
    hashed_password: str | None = None
    ous: list[str] = field(default_factory=list)
    divisions: list[str] = field(default_factory=list)
    token_version: int = 0
    created_at: str | None = None


@dataclass(frozen=True)
class Snapshot:
    """Authorization state embedded in an access token at issuance time.

    Not live: membership or role changes after issued_at are invisible to the
    holder of this snapshot until a new token is issued.
    """

    user_id: str
    username: str
    role: Role
    ous: frozenset[str] = frozenset()
    divisions: frozenset[str] = frozenset()
    token_version: int = 0
    issued_at: datetime | None = None
    expires_at: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> Snapshot:
        if user.id is None:
            raise ValueError("Cannot snapshot an unsaved user")
        return cls(
            user_id=user.id,
            username=user.username,
            role=user.role,
            ous=frozenset(user.ous),
            divisions=frozenset(user.divisions),
            token_version=user.token_version,
        )
