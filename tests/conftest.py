"""
tests/conftest.py -- Shared test fixtures for credvault.

This module provides:
  - make_stores(): isolated in-memory DBs for the user store and the vault
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - world: a small seeded hierarchy with users in every role and their tokens
  - client: TestClient over the real app, backed by the world's stores

The seeded hierarchy:

    OU1 "Engineering"  -- D1 "Backend"  (credential c1)
                       -- D2 "Frontend" (credential c2)
    OU2 "Finance"      -- D3 "Payroll"  (credential c3)

    alice    normal      OUs [OU1]  divisions [D1]
    carol    normal      OUs [OU1]  divisions [D1]
    bob      normal      no memberships
    manager  management  OUs [OU1]  no divisions
    admin    admin       no memberships

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
A uuid suffix keeps every test's databases separate.

The DEBUG env var must be set before any auth/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from vault.models import Credential, Division, OrganizationalUnit
from vault.store import VaultStore

PASSWORD = "password123"

# One bcrypt hash shared by every seeded user keeps fixture setup fast.
_PASSWORD_HASH = hash_password(PASSWORD)


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_stores() -> tuple[UserStore, VaultStore]:
    """Create isolated named shared-memory SQLite stores."""
    suffix = uuid.uuid4().hex
    users = UserStore(db_url=f"sqlite:///file:test_auth_{suffix}?mode=memory&cache=shared&uri=true")
    vault = VaultStore(db_url=f"sqlite:///file:test_vault_{suffix}?mode=memory&cache=shared&uri=true")
    return users, vault


def _patch_lifespan(users: UserStore, vault: VaultStore):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = users
        app.state.vault = vault
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Seeded world
# ---------------------------------------------------------------------------


@dataclass
class World:
    users: UserStore
    vault: VaultStore
    ou1: str = ""
    ou2: str = ""
    d1: str = ""
    d2: str = ""
    d3: str = ""
    c1: str = ""
    c2: str = ""
    c3: str = ""
    ids: dict[str, str] = field(default_factory=dict)
    tokens: dict[str, str] = field(default_factory=dict)

    def add_user(self, username: str, role: Role = Role.NORMAL, ous=(), divisions=()) -> User:
        uid = self.users.create_user(
            User(
                username=username,
                role=role,
                hashed_password=_PASSWORD_HASH,
                ous=list(ous),
                divisions=list(divisions),
            )
        )
        user = self.users.get_by_id(uid)
        self.ids[username] = uid
        self.tokens[username] = create_access_token(user)
        return user

    def refresh_token(self, username: str) -> str:
        """Re-issue a user's token from their stored record (a fresh login)."""
        self.tokens[username] = create_access_token(self.users.get_by_id(self.ids[username]))
        return self.tokens[username]


def _credential(vault: VaultStore, title: str, division_id: str) -> str:
    return vault.create_credential(
        Credential(
            title=title,
            username=f"{title.lower()}-svc",
            password=f"{title.lower()}-secret",
            url=f"https://{title.lower()}.example.com",
            division_id=division_id,
        )
    )


@pytest.fixture
def stores() -> Generator[tuple[UserStore, VaultStore], None, None]:
    users, vault = make_stores()
    yield users, vault
    vault.close()
    users.close()


@pytest.fixture
def world(stores) -> World:
    users, vault = stores
    w = World(users=users, vault=vault)
    w.ou1 = vault.create_ou(OrganizationalUnit(name="Engineering"))
    w.ou2 = vault.create_ou(OrganizationalUnit(name="Finance"))
    w.d1 = vault.create_division(Division(name="Backend", ou_id=w.ou1))
    w.d2 = vault.create_division(Division(name="Frontend", ou_id=w.ou1))
    w.d3 = vault.create_division(Division(name="Payroll", ou_id=w.ou2))
    w.c1 = _credential(vault, "Database", w.d1)
    w.c2 = _credential(vault, "CDN", w.d2)
    w.c3 = _credential(vault, "Bank", w.d3)

    w.add_user("alice", Role.NORMAL, ous=[w.ou1], divisions=[w.d1])
    w.add_user("carol", Role.NORMAL, ous=[w.ou1], divisions=[w.d1])
    w.add_user("bob", Role.NORMAL)
    w.add_user("manager", Role.MANAGEMENT, ous=[w.ou1])
    w.add_user("admin", Role.ADMIN)
    return w


@pytest.fixture(autouse=True)
def _no_rate_limits() -> Generator[None, None, None]:
    """Rate limits are global per client IP; tests opt back in explicitly."""
    limiter.enabled = False
    yield
    limiter.enabled = True
    limiter.reset()


@pytest.fixture
def client(world: World) -> Generator[TestClient, None, None]:
    """TestClient over the real app with the world's stores in app.state."""
    app.router.lifespan_context = _patch_lifespan(world.users, world.vault)
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c
