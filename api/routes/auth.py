"""
api/routes/auth.py -- Registration, login and password change.

Routes:
  POST /api/auth/register   -- create a normal user; 201 {token, role}
  POST /api/auth/login      -- password login; 200 {token, role}
  PUT  /api/auth/password   -- change own password (requires auth)

Security:
  Register and login are rate-limited per client IP (settings).
  Login goes through accounts.login() -> authenticate_user(), which equalizes
  timing between unknown usernames and wrong passwords.
  Cache-Control: no-store on every response that carries a token.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import LOGIN_LIMIT, REGISTER_LIMIT, limiter
from api.models import LoginRequest, MessageResponse, PasswordChangeRequest, RegisterRequest, TokenResponse
from auth import accounts
from auth.dependencies import get_current_snapshot
from auth.models import Snapshot

# Auth policy:
# - POST /api/auth/register:  public
# - POST /api/auth/login:     public
# - PUT  /api/auth/password:  requires auth (get_current_snapshot)
router = APIRouter()


def _token_response(status_code: int, token: str, role: str) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=TokenResponse(token=token, role=role).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/register", response_model=TokenResponse, status_code=201)
@limiter.limit(REGISTER_LIMIT)  # below @router so the registered endpoint is the limited one
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a normal-role user with the chosen OU and division memberships."""
    user, token = accounts.register(
        request.app.state.user_store,
        request.app.state.vault,
        body.username,
        body.password,
        ou_ids=body.ou_ids,
        division_ids=body.division_ids,
    )
    return _token_response(201, token, user.role.value)


@router.post("/auth/login", response_model=TokenResponse)
@limiter.limit(LOGIN_LIMIT)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password.

    Unknown username and wrong password both answer 400 "Invalid credentials".
    """
    user, token = accounts.login(request.app.state.user_store, body.username, body.password)
    return _token_response(200, token, user.role.value)


@router.put("/auth/password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: PasswordChangeRequest,
    snapshot: Snapshot = Depends(get_current_snapshot),
) -> MessageResponse:
    accounts.change_password(
        request.app.state.user_store,
        snapshot.user_id,
        body.current_password,
        body.new_password,
    )
    return MessageResponse(message="Password updated")
