"""
auth/assignment.py -- Admin mutation of a user's memberships and role.

Callers must already have enforced Action.ASSIGN_MEMBERSHIP or
Action.CHANGE_ROLE; nothing here checks who is asking.

Both operations bump the target's token_version. Tokens the target already
holds keep their old snapshot until they expire, unless
REVOKE_TOKENS_ON_CHANGE is enabled, in which case the auth dependency rejects
them on their next use.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Optional

from auth.models import Role, User
from core.errors import NotFound, ValidationError
from core.ids import canonical_id, canonical_ids

if TYPE_CHECKING:
    from auth.store import UserStore
    from vault.store import VaultStore

logger = logging.getLogger("credvault.assignment")


def _user_id(user_id: object) -> str:
    try:
        return canonical_id(user_id)
    except ValueError:
        raise ValidationError("Invalid user ID") from None


def _ids(values: Iterable, label: str) -> list[str]:
    try:
        return canonical_ids(v for v in values if v not in (None, ""))
    except ValueError:
        raise ValidationError(f"Invalid {label} ID") from None


def assign(
    users: UserStore,
    vault: VaultStore,
    user_id: object,
    add_division: Optional[object] = None,
    add_ou: Optional[object] = None,
    remove_divisions: Iterable = (),
    remove_ous: Iterable = (),
) -> User:
    """Grant/revoke OU and division memberships; return the updated user.

    Adding a membership the user already has and removing one they do not
    have are both no-ops. Every referenced OU and division must exist.
    """
    uid = _user_id(user_id)
    add_divisions = _ids([add_division], "division")
    add_ous = _ids([add_ou], "OU")
    remove_division_ids = _ids(remove_divisions, "division")
    remove_ou_ids = _ids(remove_ous, "OU")

    if users.get_by_id(uid) is None:
        raise NotFound("User not found")

    division_refs = add_divisions + remove_division_ids
    found_divisions = vault.get_divisions(division_refs)
    for division_id in division_refs:
        if division_id not in found_divisions:
            raise NotFound("Division not found")

    ou_refs = add_ous + remove_ou_ids
    found_ous = vault.get_ous(ou_refs)
    for ou_id in ou_refs:
        if ou_id not in found_ous:
            raise NotFound("OU not found")

    if not users.update_memberships(
        uid,
        add_ous=add_ous,
        add_divisions=add_divisions,
        remove_ous=remove_ou_ids,
        remove_divisions=remove_division_ids,
    ):
        raise NotFound("User not found")

    logger.info(
        "Memberships updated for user %s: +divisions=%s +OUs=%s -divisions=%s -OUs=%s",
        uid,
        add_divisions,
        add_ous,
        remove_division_ids,
        remove_ou_ids,
    )
    return users.get_by_id(uid)


def change_role(users: UserStore, user_id: object, role: object) -> User:
    """Set a user's role; return the updated user."""
    uid = _user_id(user_id)
    try:
        new_role = Role.parse(role)
    except ValueError:
        raise ValidationError("Invalid role") from None

    if not users.set_role(uid, new_role):
        raise NotFound("User not found")

    logger.info("Role for user %s changed to %s", uid, new_role.value)
    return users.get_by_id(uid)
