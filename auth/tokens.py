"""
auth/tokens.py -- JWT snapshot tokens and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry the
       authorization snapshot: id, username, role, OUs, divisions, plus the
       user's token_version (ver), issued-at and a fixed one-hour expiry.
       Verification returns None on any failure -- the auth dependency turns
       that into a 401.

  Snapshot claims are canonicalized on decode. A token whose role is outside
       the closed Role set or whose ids are malformed is treated exactly like
       a bad signature.

  Passwords: bcrypt directly (no passlib wrapper) with a configurable cost
       factor of at least 10. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether a username exists.

Layer rule: no imports from api/ or vault/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import Role, Snapshot, User
from core.config import get_settings
from core.ids import canonical_ids

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("credvault.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# bcrypt only looks at the first 72 bytes; longer inputs are rejected at the
# service layer instead of being silently truncated.
MAX_PASSWORD_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Over-long input or a corrupt hash; either way it is not a match.
        return False


# Timing equalization dummy hash, computed once at module load so the first
# login attempt is not measurably slower than subsequent ones.
_DUMMY_HASH: str = hash_password("credvault_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user: User, issued_at: datetime | None = None) -> str:
    """Encode a signed JWT carrying the user's current authorization snapshot.

    Args:
        user:      Stored user; its role and memberships are copied verbatim.
        issued_at: Issuance instant, defaults to now. Expiry is always
                   issued_at + TOKEN_EXPIRE_SECONDS.
    """
    snapshot = Snapshot.from_user(user)
    iat = issued_at or datetime.now(timezone.utc)
    payload = {
        "sub": snapshot.username,
        "id": snapshot.user_id,
        "username": snapshot.username,
        "role": snapshot.role.value,
        "OUs": list(user.ous),
        "divisions": list(user.divisions),
        "ver": snapshot.token_version,
        "iat": iat,
        "exp": iat + timedelta(seconds=_settings.token_expire_seconds),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> Snapshot | None:
    """Verify a JWT and return its Snapshot, or None on any failure.

    Returning None (rather than raising) keeps the caller simple: any invalid
    token is treated as unauthenticated.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    try:
        return Snapshot(
            user_id=canonical_ids([payload["id"]])[0],
            username=str(payload["username"]),
            role=Role.parse(payload["role"]),
            ous=frozenset(canonical_ids(payload.get("OUs") or [])),
            divisions=frozenset(canonical_ids(payload.get("divisions") or [])),
            token_version=int(payload.get("ver", 0)),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (KeyError, TypeError, ValueError):
        logger.warning("Rejected signed token with malformed snapshot claims")
        return None


# ---------------------------------------------------------------------------
# User authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, username: str, password: str) -> User | None:
    """Authenticate a username/password login with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown username: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_username(username)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user
