"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Requests authenticate with an "Authorization: Bearer <token>" header. The
token is verified (signature, expiry, well-formed snapshot) and its embedded
Snapshot becomes the caller's identity for the rest of the request. The live
user record is not consulted, so authorization decisions use the state the
token was issued with.

With REVOKE_TOKENS_ON_CHANGE enabled, the snapshot's token_version is also
compared with the stored user's; a token issued before a role or membership
change (or for a user that no longer exists) is rejected as revoked.

get_current_snapshot() raises Unauthorized for a missing or invalid token.
require(action) builds a dependency for resource-independent actions
(admin-only endpoints) so the policy check runs before any lookup.

Layer rule: no imports from api/ or vault/.
  auth/dependencies.py may import from fastapi (for Depends/Request) because
  this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, Request

from auth.models import Snapshot
from auth.policy import Action, enforce
from auth.tokens import decode_access_token
from core.config import get_settings
from core.errors import Unauthorized


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def get_current_snapshot(request: Request) -> Snapshot:
    """Require a valid access token. Raises Unauthorized (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(snapshot: Snapshot = Depends(get_current_snapshot)): ...
    """
    token = _bearer_token(request)
    if not token:
        raise Unauthorized("No token, authorization denied")
    snapshot = decode_access_token(token)
    if snapshot is None:
        raise Unauthorized("Token is not valid")

    if get_settings().revoke_tokens_on_change:
        user = request.app.state.user_store.get_by_id(snapshot.user_id)
        if user is None or user.token_version != snapshot.token_version:
            raise Unauthorized("Token has been revoked")

    request.state.snapshot = snapshot
    return snapshot


def require(action: Action) -> Callable[..., Snapshot]:
    """Dependency factory: authenticate, then enforce a resource-independent action.

        @router.get("/users")
        def list_users(snapshot: Snapshot = Depends(require(Action.LIST_USERS))): ...
    """

    def dependency(snapshot: Snapshot = Depends(get_current_snapshot)) -> Snapshot:
        enforce(snapshot, action)
        return snapshot

    return dependency
