"""
api/routes/credentials.py -- Credential repository routes.

Routes:
  GET  /api/credentials/divisions/{division_id}/credentials  -- list (secrets withheld)
  POST /api/credentials/divisions/{division_id}/credentials  -- create; 201
  GET  /api/credentials/{credential_id}                      -- one credential with secret
  PUT  /api/credentials/{credential_id}                      -- replace all four fields

Every route resolves in the same order: token (401), then the target
division or credential (404), then the policy decision for that division
(403). The policy sees the division together with its owning OU, loaded here
from the vault.
"""

import logging

from fastapi import APIRouter, Depends, Request

from api.models import CredentialBody, CredentialResponse, CredentialSummary
from auth.dependencies import get_current_snapshot
from auth.models import Snapshot
from auth.policy import Action, DivisionRef, enforce
from core.errors import Internal, NotFound
from core.ids import canonical_id
from vault.models import Credential, Division

logger = logging.getLogger("credvault.api")

# All credential routes require authentication. FastAPI caches the
# dependency per request, so handlers declaring it again get the same snapshot.
router = APIRouter(dependencies=[Depends(get_current_snapshot)])


def _load_division(request: Request, division_id: str) -> Division:
    try:
        division = request.app.state.vault.get_division(canonical_id(division_id))
    except ValueError:
        division = None
    if division is None:
        raise NotFound("Division not found")
    return division


def _load_credential(request: Request, credential_id: str) -> tuple[Credential, Division]:
    try:
        credential = request.app.state.vault.get_credential(canonical_id(credential_id))
    except ValueError:
        credential = None
    if credential is None:
        raise NotFound("Credential not found")
    division = request.app.state.vault.get_division(credential.division_id)
    if division is None:
        # divisions are never deleted, so a dangling reference is corruption
        raise Internal()
    return credential, division


def _ref(division: Division) -> DivisionRef:
    return DivisionRef.of(division.id, division.ou_id)


# ---------------------------------------------------------------------------
# Division-scoped collection
# ---------------------------------------------------------------------------


@router.get("/credentials/divisions/{division_id}/credentials", response_model=list[CredentialSummary])
def list_credentials(
    request: Request,
    division_id: str,
    snapshot: Snapshot = Depends(get_current_snapshot),
) -> list[CredentialSummary]:
    division = _load_division(request, division_id)
    enforce(snapshot, Action.READ_CREDENTIALS, _ref(division))
    return [CredentialSummary.from_credential(c) for c in request.app.state.vault.list_credentials(division.id)]


@router.post(
    "/credentials/divisions/{division_id}/credentials",
    response_model=CredentialResponse,
    status_code=201,
)
def create_credential(
    request: Request,
    division_id: str,
    body: CredentialBody,
    snapshot: Snapshot = Depends(get_current_snapshot),
) -> CredentialResponse:
    division = _load_division(request, division_id)
    enforce(snapshot, Action.CREATE_CREDENTIAL, _ref(division))

    vault = request.app.state.vault
    credential_id = vault.create_credential(
        Credential(
            title=body.title,
            username=body.username,
            password=body.password,
            url=body.url,
            division_id=division.id,
        )
    )
    logger.info("User %s created credential %s in division %s", snapshot.user_id, credential_id, division.id)
    return CredentialResponse.from_credential(vault.get_credential(credential_id))


# ---------------------------------------------------------------------------
# Single credential
# ---------------------------------------------------------------------------


@router.get("/credentials/{credential_id}", response_model=CredentialResponse)
def get_credential(
    request: Request,
    credential_id: str,
    snapshot: Snapshot = Depends(get_current_snapshot),
) -> CredentialResponse:
    """Return one credential including its secret value (read access on its division)."""
    credential, division = _load_credential(request, credential_id)
    enforce(snapshot, Action.READ_CREDENTIALS, _ref(division))
    return CredentialResponse.from_credential(credential)


@router.put("/credentials/{credential_id}", response_model=CredentialResponse)
def update_credential(
    request: Request,
    credential_id: str,
    body: CredentialBody,
    snapshot: Snapshot = Depends(get_current_snapshot),
) -> CredentialResponse:
    """Replace title, username, password and url. The owning division never changes."""
    credential, division = _load_credential(request, credential_id)
    enforce(snapshot, Action.UPDATE_CREDENTIAL, _ref(division))

    vault = request.app.state.vault
    if not vault.update_credential(credential.id, body.title, body.username, body.password, body.url):
        raise NotFound("Credential not found")
    logger.info("User %s updated credential %s", snapshot.user_id, credential.id)
    return CredentialResponse.from_credential(vault.get_credential(credential.id))
