"""
tests/test_revocation.py -- Opt-in server-side token revocation.

With REVOKE_TOKENS_ON_CHANGE enabled, a token whose version claim is older
than the user's stored token_version is rejected with 401, so role and
membership changes take effect immediately instead of at token expiry.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from core.config import get_settings


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def revoking(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "revoke_tokens_on_change", True)


def test_unchanged_user_keeps_access(client: TestClient, world, revoking) -> None:
    resp = client.get("/api/users/me", headers=_auth(world.tokens["alice"]))
    assert resp.status_code == 200


def test_role_change_revokes_old_token(client: TestClient, world, revoking) -> None:
    old_token = world.tokens["carol"]
    resp = client.put(
        f"/api/users/{world.ids['carol']}/role",
        json={"role": "management"},
        headers=_auth(world.tokens["admin"]),
    )
    assert resp.status_code == 200

    resp = client.get("/api/users/me", headers=_auth(old_token))
    assert resp.status_code == 401
    assert resp.json() == {"error": "Token has been revoked"}

    fresh = world.refresh_token("carol")
    assert client.get("/api/users/me", headers=_auth(fresh)).json()["role"] == "management"


def test_membership_change_revokes_old_token(client: TestClient, world, revoking) -> None:
    old_token = world.tokens["alice"]
    client.post(
        f"/api/users/{world.ids['alice']}/assign",
        json={"divisionsToRemove": [world.d1]},
        headers=_auth(world.tokens["admin"]),
    )
    resp = client.get(f"/api/credentials/divisions/{world.d1}/credentials", headers=_auth(old_token))
    assert resp.status_code == 401


def test_admin_token_from_response_stays_valid(client: TestClient, world, revoking) -> None:
    resp = client.post(
        f"/api/users/{world.ids['bob']}/assign",
        json={"divisionId": world.d3},
        headers=_auth(world.tokens["admin"]),
    )
    token = resp.json()["token"]
    assert client.get("/api/users", headers=_auth(token)).status_code == 200


def test_default_mode_does_not_revoke(client: TestClient, world) -> None:
    old_token = world.tokens["carol"]
    client.put(
        f"/api/users/{world.ids['carol']}/role",
        json={"role": "management"},
        headers=_auth(world.tokens["admin"]),
    )
    assert client.get("/api/users/me", headers=_auth(old_token)).status_code == 200
