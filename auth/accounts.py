"""
auth/accounts.py -- Registration, login and password change.

Each function takes its stores explicitly and raises core.errors on failure,
so the same logic serves the HTTP routes, the CLI and the tests.

Registration rules:
  - username: 3-30 characters after trimming, unique.
  - password: at least 6 characters, at most 72 bytes (bcrypt's input limit).
  - strict mode (REQUIRE_REGISTRATION_MEMBERSHIPS, default on): at least one
    OU and one division; every division must belong to one of the chosen OUs.
  - new users are always created with Role.NORMAL.

Login returns the same InvalidCredentials for an unknown username and for a
wrong password, and authenticate_user() equalizes timing between the two.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from sqlalchemy.exc import IntegrityError

from auth.models import Role, User
from auth.tokens import MAX_PASSWORD_BYTES, authenticate_user, create_access_token, hash_password, verify_password
from core.config import get_settings
from core.errors import Conflict, InvalidCredentials, NotFound, ValidationError
from core.ids import canonical_ids

if TYPE_CHECKING:
    from auth.store import UserStore
    from vault.store import VaultStore

logger = logging.getLogger("credvault.auth")

USERNAME_MIN = 3
USERNAME_MAX = 30
PASSWORD_MIN = 6


def _validate_username(username: str) -> str:
    username = (username or "").strip()
    if not USERNAME_MIN <= len(username) <= USERNAME_MAX:
        raise ValidationError(f"Username must be between {USERNAME_MIN} and {USERNAME_MAX} characters")
    return username


def _validate_password(password: str) -> None:
    if len(password or "") < PASSWORD_MIN:
        raise ValidationError(f"Password must be at least {PASSWORD_MIN} characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")


def _resolve_memberships(vault: VaultStore, ou_ids: Iterable, division_ids: Iterable) -> tuple[list[str], list[str]]:
    try:
        ous = canonical_ids(ou_ids)
        divisions = canonical_ids(division_ids)
    except ValueError:
        raise ValidationError("Invalid OU or division id") from None

    if get_settings().require_registration_memberships and (not ous or not divisions):
        raise ValidationError("At least one OU and one division must be selected")

    found_ous = vault.get_ous(ous)
    missing_ous = [o for o in ous if o not in found_ous]
    if missing_ous:
        raise ValidationError(f"Unknown OU: {missing_ous[0]}")

    found_divisions = vault.get_divisions(divisions)
    for division_id in divisions:
        division = found_divisions.get(division_id)
        if division is None:
            raise ValidationError(f"Unknown division: {division_id}")
        if division.ou_id not in found_ous:
            raise ValidationError(f"Division {division.name} does not belong to a selected OU")
    return ous, divisions


def register(
    users: UserStore,
    vault: VaultStore,
    username: str,
    password: str,
    ou_ids: Iterable = (),
    division_ids: Iterable = (),
) -> tuple[User, str]:
    """Create a normal-role user and return (user, access_token).

    Not idempotent: a retried registration fails with Conflict rather than
    creating a second record.
    """
    username = _validate_username(username)
    _validate_password(password)
    if users.get_by_username(username) is not None:
        raise Conflict("Username already exists")

    ous, divisions = _resolve_memberships(vault, ou_ids, division_ids)
    new_user = User(
        username=username,
        role=Role.NORMAL,
        hashed_password=hash_password(password),
        ous=ous,
        divisions=divisions,
    )
    try:
        user_id = users.create_user(new_user)
    except IntegrityError as exc:
        # Lost a race with a concurrent registration of the same name.
        raise Conflict("Username already exists") from exc

    created = users.get_by_id(user_id)
    logger.info("Registered user %s (%s) with %d OU(s), %d division(s)", username, user_id, len(ous), len(divisions))
    return created, create_access_token(created)


def create_admin(users: UserStore, username: str, password: str) -> User:
    """Create an admin account with no memberships (CLI bootstrap)."""
    username = _validate_username(username)
    _validate_password(password)
    if users.get_by_username(username) is not None:
        raise Conflict("Username already exists")
    try:
        user_id = users.create_user(User(username=username, role=Role.ADMIN, hashed_password=hash_password(password)))
    except IntegrityError as exc:
        raise Conflict("Username already exists") from exc
    logger.info("Created admin user %s (%s)", username, user_id)
    return users.get_by_id(user_id)


def login(users: UserStore, username: str, password: str) -> tuple[User, str]:
    """Verify credentials and return (user, access_token) with a fresh snapshot."""
    user = authenticate_user(users, (username or "").strip(), password or "")
    if user is None:
        raise InvalidCredentials()
    return user, create_access_token(user)


def change_password(users: UserStore, user_id: str, current_password: str, new_password: str) -> None:
    """Replace a user's password after re-verifying the current one."""
    user = users.get_by_id(user_id)
    if user is None:
        raise NotFound("User not found")
    if not verify_password(current_password or "", user.hashed_password or ""):
        raise InvalidCredentials()
    _validate_password(new_password)
    users.update_password(user_id, hash_password(new_password))
    logger.info("Password changed for user %s", user_id)
