"""
tests/test_tokens.py -- Password hashing, JWT snapshot encoding and login checks.

Coverage:
  - bcrypt hash/verify round trip and wrong-password rejection
  - create_access_token() embeds the user's role and memberships
  - decode_access_token() rejects tampered, expired, foreign-key and
    malformed-claim tokens by returning None
  - authenticate_user() for valid, wrong-password and unknown-user logins
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import jwt

from auth.models import Role, User
from auth.tokens import (
    authenticate_user,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from core.config import get_settings
from core.ids import new_id


def _user(**overrides) -> User:
    fields = dict(
        id=new_id(),
        username="alice",
        role=Role.NORMAL,
        ous=[new_id()],
        divisions=[new_id(), new_id()],
        token_version=3,
    )
    fields.update(overrides)
    return User(**fields)


def _encode(payload: dict, key: str | None = None) -> str:
    return jwt.encode(payload, key or get_settings().secret_key, algorithm="HS256")


class TestPasswordHashing:
    def test_hash_verifies(self) -> None:
        hashed = hash_password("s3cret!")
        assert hashed != "s3cret!"
        assert verify_password("s3cret!", hashed)

    def test_wrong_password_rejected(self) -> None:
        assert not verify_password("nope", hash_password("s3cret!"))

    def test_corrupt_hash_is_not_a_match(self) -> None:
        assert not verify_password("s3cret!", "not-a-bcrypt-hash")

    def test_cost_is_at_least_ten(self) -> None:
        # bcrypt format: $2b$<cost>$...
        assert int(hash_password("x" * 8).split("$")[2]) >= 10


class TestAccessToken:
    def test_snapshot_round_trip(self) -> None:
        user = _user()
        snapshot = decode_access_token(create_access_token(user))
        assert snapshot is not None
        assert snapshot.user_id == user.id
        assert snapshot.username == "alice"
        assert snapshot.role is Role.NORMAL
        assert snapshot.ous == frozenset(user.ous)
        assert snapshot.divisions == frozenset(user.divisions)
        assert snapshot.token_version == 3

    def test_expires_one_hour_after_issue(self) -> None:
        issued = datetime.now(timezone.utc).replace(microsecond=0)
        snapshot = decode_access_token(create_access_token(_user(), issued_at=issued))
        assert snapshot.expires_at - snapshot.issued_at == timedelta(seconds=3600)

    def test_claims_use_wire_names(self) -> None:
        user = _user()
        payload = jwt.get_unverified_claims(create_access_token(user))
        assert payload["id"] == user.id
        assert payload["OUs"] == user.ous
        assert payload["divisions"] == user.divisions
        assert payload["role"] == "normal"

    def test_expired_token_rejected(self) -> None:
        issued = datetime.now(timezone.utc) - timedelta(hours=2)
        assert decode_access_token(create_access_token(_user(), issued_at=issued)) is None

    def test_tampered_token_rejected(self) -> None:
        token = create_access_token(_user())
        header, payload, signature = token.split(".")
        tampered = f"{header}.{payload}.{signature[:-4]}AAAA"
        assert decode_access_token(tampered) is None

    def test_foreign_key_rejected(self) -> None:
        now = datetime.now(timezone.utc)
        token = _encode(
            {"id": new_id(), "username": "x", "role": "admin", "iat": now, "exp": now + timedelta(hours=1)},
            key="another-key-that-is-at-least-32-characters-long",
        )
        assert decode_access_token(token) is None

    def test_unknown_role_rejected(self) -> None:
        now = datetime.now(timezone.utc)
        token = _encode({"id": new_id(), "username": "x", "role": "root", "iat": now, "exp": now + timedelta(hours=1)})
        assert decode_access_token(token) is None

    def test_malformed_membership_id_rejected(self) -> None:
        now = datetime.now(timezone.utc)
        token = _encode(
            {
                "id": new_id(),
                "username": "x",
                "role": "normal",
                "divisions": ["not-an-id"],
                "iat": now,
                "exp": now + timedelta(hours=1),
            }
        )
        assert decode_access_token(token) is None

    def test_garbage_rejected(self) -> None:
        assert decode_access_token("not.a.jwt") is None


class TestAuthenticateUser:
    def test_valid_credentials(self, stores) -> None:
        users, _vault = stores
        users.create_user(User(username="dave", hashed_password=hash_password("correct-horse")))
        user = authenticate_user(users, "dave", "correct-horse")
        assert user is not None
        assert user.username == "dave"

    def test_wrong_password(self, stores) -> None:
        users, _vault = stores
        users.create_user(User(username="dave", hashed_password=hash_password("correct-horse")))
        assert authenticate_user(users, "dave", "battery-staple") is None

    def test_unknown_user(self, stores) -> None:
        users, _vault = stores
        assert authenticate_user(users, "ghost", "whatever") is None
