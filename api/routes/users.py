"""
api/routes/users.py -- Users, organizational units and divisions.

Routes (in registration order to avoid FastAPI path capture conflicts --
the fixed /users/me, /users/ous/... and /users/divisions/... paths must be
registered before /users/{user_id}):
  GET  /api/users/me                              -- caller's token snapshot
  GET  /api/users                                 -- all users (admin)
  GET  /api/users/ous/public                      -- OU picker for registration
  GET  /api/users/ous/all                         -- all OUs (auth)
  GET  /api/users/ous/{ou_id}/divisions/public    -- division picker for registration
  GET  /api/users/ous/{ou_id}/divisions           -- an OU's divisions (auth, policy)
  GET  /api/users/divisions/all                   -- divisions the caller can work in
  GET  /api/users/{user_id}                       -- one user (admin)
  POST /api/users/{user_id}/assign                -- change memberships (admin)
  PUT  /api/users/{user_id}/role                  -- change role (admin)

Admin-only routes enforce the role through require(...) before anything is
looked up, so a non-admin gets 403 whether or not the user id exists.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from api.models import (
    AssignRequest,
    DivisionResponse,
    DivisionSummary,
    MeResponse,
    OUSummary,
    RoleUpdate,
    UserResponse,
    UserUpdateResponse,
)
from auth import assignment
from auth.dependencies import get_current_snapshot, require
from auth.models import Snapshot
from auth.policy import Action, OURef, enforce, visible_divisions
from auth.tokens import create_access_token
from core.errors import NotFound, Unauthorized, ValidationError
from core.ids import canonical_id
from vault.models import OrganizationalUnit

logger = logging.getLogger("credvault.api")

router = APIRouter()


def _load_ou(request: Request, ou_id: str) -> OrganizationalUnit:
    try:
        ou = request.app.state.vault.get_ou(canonical_id(ou_id))
    except ValueError:
        ou = None
    if ou is None:
        raise NotFound("OU not found")
    return ou


def _actor_token(request: Request, snapshot: Snapshot) -> str:
    """Issue a fresh token for the acting admin from their stored record."""
    actor = request.app.state.user_store.get_by_id(snapshot.user_id)
    if actor is None:
        raise Unauthorized("Token is not valid")
    return create_access_token(actor)


# ---------------------------------------------------------------------------
# Caller identity
# ---------------------------------------------------------------------------


@router.get("/users/me", response_model=MeResponse)
def me(snapshot: Snapshot = Depends(get_current_snapshot)) -> MeResponse:
    """Return the identity embedded in the caller's token, not the live record."""
    return MeResponse.from_snapshot(snapshot)


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, snapshot: Snapshot = Depends(require(Action.LIST_USERS))) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in request.app.state.user_store.list_users()]


# ---------------------------------------------------------------------------
# Organizational units and divisions
# ---------------------------------------------------------------------------


@router.get("/users/ous/public", response_model=list[OUSummary])
def public_ous(request: Request) -> list[OUSummary]:
    """Public: the registration form lists OUs before the user has a token."""
    return [OUSummary.from_ou(ou) for ou in request.app.state.vault.list_ous()]


@router.get("/users/ous/all", response_model=list[OUSummary])
def all_ous(request: Request, snapshot: Snapshot = Depends(require(Action.LIST_OUS))) -> list[OUSummary]:
    return [OUSummary.from_ou(ou) for ou in request.app.state.vault.list_ous()]


@router.get("/users/ous/{ou_id}/divisions/public", response_model=list[DivisionSummary])
def public_ou_divisions(request: Request, ou_id: str) -> list[DivisionSummary]:
    ou = _load_ou(request, ou_id)
    return [DivisionSummary.from_division(d) for d in request.app.state.vault.list_divisions(ou.id)]


@router.get("/users/ous/{ou_id}/divisions", response_model=list[DivisionSummary])
def ou_divisions(
    request: Request,
    ou_id: str,
    snapshot: Snapshot = Depends(get_current_snapshot),
) -> list[DivisionSummary]:
    ou = _load_ou(request, ou_id)
    enforce(snapshot, Action.LIST_OU_DIVISIONS, OURef.of(ou.id))
    return [DivisionSummary.from_division(d) for d in request.app.state.vault.list_divisions(ou.id)]


@router.get("/users/divisions/all", response_model=list[DivisionResponse])
def all_divisions(request: Request, snapshot: Snapshot = Depends(get_current_snapshot)) -> list[DivisionResponse]:
    """Divisions the caller can read or add credentials to; admins see every division."""
    divisions = visible_divisions(snapshot, request.app.state.vault.list_divisions())
    return [DivisionResponse.from_division(d) for d in divisions]


# ---------------------------------------------------------------------------
# Single-user administration
# ---------------------------------------------------------------------------


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: str,
    snapshot: Snapshot = Depends(require(Action.VIEW_USER)),
) -> UserResponse:
    try:
        uid = canonical_id(user_id)
    except ValueError:
        raise ValidationError("Invalid user ID") from None
    user = request.app.state.user_store.get_by_id(uid)
    if user is None:
        raise NotFound("User not found")
    return UserResponse.from_user(user)


@router.post("/users/{user_id}/assign", response_model=UserUpdateResponse)
def assign_memberships(
    request: Request,
    user_id: str,
    body: AssignRequest,
    snapshot: Snapshot = Depends(require(Action.ASSIGN_MEMBERSHIP)),
) -> UserUpdateResponse:
    """Grant and revoke OU/division memberships.

    The returned token belongs to the calling admin. The affected user keeps
    their current token (and its snapshot) until it expires or they log in
    again.
    """
    user = assignment.assign(
        request.app.state.user_store,
        request.app.state.vault,
        user_id,
        add_division=body.division_id,
        add_ou=body.ou_id,
        remove_divisions=body.divisions_to_remove,
        remove_ous=body.ous_to_remove,
    )
    logger.info("Admin %s updated memberships of user %s", snapshot.username, user.id)
    return UserUpdateResponse(
        message="User assignments updated successfully",
        user=UserResponse.from_user(user),
        token=_actor_token(request, snapshot),
    )


@router.put("/users/{user_id}/role", response_model=UserUpdateResponse)
def change_role(
    request: Request,
    user_id: str,
    body: RoleUpdate,
    snapshot: Snapshot = Depends(require(Action.CHANGE_ROLE)),
) -> UserUpdateResponse:
    user = assignment.change_role(request.app.state.user_store, user_id, body.role)
    logger.info("Admin %s set role of user %s to %s", snapshot.username, user.id, user.role.value)
    return UserUpdateResponse(
        message="User role updated successfully",
        user=UserResponse.from_user(user),
        token=_actor_token(request, snapshot),
    )
