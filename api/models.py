"""
API request and response models for the credvault REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py and
vault/models.py, which own the internal domain representation. Route
handlers map between the two with the from_* factory methods below.

Wire names follow the existing client: identifiers are serialized as "_id",
OU lists as "OUs", request fields in camelCase (ouIds, divisionsToRemove).
Aliases carry the wire name; populate_by_name lets Python code use the
snake_case attribute.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Snapshot, User
from vault.models import Credential, Division, OrganizationalUnit

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register.

    Only transport bounds are checked here; the username/password rules and
    their messages live in auth.accounts.register().
    """

    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(max_length=255)
    password: str = Field(max_length=255)
    ou_ids: list[str] = Field(default_factory=list, alias="ouIds", max_length=100)
    division_ids: list[str] = Field(default_factory=list, alias="divisionIds", max_length=500)


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login.

    No minimum lengths: a too-short password is just a wrong password and
    must produce the same "Invalid credentials" answer.
    """

    username: str = Field(max_length=255)
    password: str = Field(max_length=255)


class PasswordChangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(alias="currentPassword", max_length=255)
    new_password: str = Field(alias="newPassword", max_length=255)


class AssignRequest(BaseModel):
    """Request body for POST /api/users/{userId}/assign. Every field is optional."""

    model_config = ConfigDict(populate_by_name=True)

    division_id: Optional[str] = Field(default=None, alias="divisionId")
    ou_id: Optional[str] = Field(default=None, alias="ouId")
    divisions_to_remove: list[str] = Field(default_factory=list, alias="divisionsToRemove", max_length=500)
    ous_to_remove: list[str] = Field(default_factory=list, alias="ousToRemove", max_length=100)


class RoleUpdate(BaseModel):
    """Request body for PUT /api/users/{userId}/role.

    role stays a plain string here; the service rejects values outside the
    Role enum with "Invalid role".
    """

    role: str = Field(max_length=30)


class CredentialBody(BaseModel):
    """Request body for creating or replacing a credential. All four fields are required."""

    title: str = Field(min_length=1, max_length=255)
    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=4096)
    url: str = Field(min_length=1, max_length=2048)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """Response for register and login."""

    model_config = ConfigDict(frozen=True)

    token: str
    role: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class MeResponse(BaseModel):
    """The caller's identity as embedded in their token (not the live record)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="_id")
    username: str
    role: str
    divisions: list[str]
    ous: list[str] = Field(alias="OUs")

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> "MeResponse":
        return cls(
            id=snapshot.user_id,
            username=snapshot.username,
            role=snapshot.role.value,
            divisions=sorted(snapshot.divisions),
            ous=sorted(snapshot.ous),
        )


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="_id")
    username: str
    role: str
    ous: list[str] = Field(alias="OUs")
    divisions: list[str]

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Factory Method -- the mapping lives beside the output model, not in routes."""
        return cls(
            id=user.id,
            username=user.username,
            role=user.role.value,
            ous=list(user.ous),
            divisions=list(user.divisions),
        )


class UserUpdateResponse(BaseModel):
    """Response for assign and role change.

    token is freshly issued for the acting admin, never for the affected user.
    """

    model_config = ConfigDict(frozen=True)

    message: str
    user: UserResponse
    token: str


class OUSummary(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="_id")
    name: str

    @classmethod
    def from_ou(cls, ou: OrganizationalUnit) -> "OUSummary":
        return cls(id=ou.id, name=ou.name)


class DivisionSummary(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="_id")
    name: str

    @classmethod
    def from_division(cls, division: Division) -> "DivisionSummary":
        return cls(id=division.id, name=division.name)


class DivisionResponse(BaseModel):
    """A division with its owning OU, for pickers that group by OU."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="_id")
    name: str
    ou: str = Field(alias="OU")

    @classmethod
    def from_division(cls, division: Division) -> "DivisionResponse":
        return cls(id=division.id, name=division.name, ou=division.ou_id)


class CredentialSummary(BaseModel):
    """One row of a division's credential list. The secret value is withheld."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="_id")
    title: str
    username: str
    url: str

    @classmethod
    def from_credential(cls, credential: Credential) -> "CredentialSummary":
        return cls(id=credential.id, title=credential.title, username=credential.username, url=credential.url)


class CredentialResponse(BaseModel):
    """A full credential including its secret value."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="_id")
    title: str
    username: str
    password: str
    url: str
    division: str

    @classmethod
    def from_credential(cls, credential: Credential) -> "CredentialResponse":
        return cls(
            id=credential.id,
            title=credential.title,
            username=credential.username,
            password=credential.password,
            url=credential.url,
            division=credential.division_id,
        )


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response."""

    model_config = ConfigDict(frozen=True)

    error: str


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
