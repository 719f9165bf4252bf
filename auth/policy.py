"""
auth/policy.py -- Authorization engine: who may read or write what.

Every protected operation asks one question: may this Snapshot perform this
Action on this resource? authorize() answers with a Decision; enforce()
raises Forbidden when the answer is no. Routes never compare roles themselves.

Policy (deny by default; admin short-circuits every rule):

  Action               admin   management              normal
  -------------------  ------  ----------------------  -------------------
  READ_CREDENTIALS     allow   division's OU in OUs    division in divisions
  CREATE_CREDENTIAL    allow   division in divisions   division in divisions
  UPDATE_CREDENTIAL    allow   division's OU in OUs    deny
  LIST_USERS           allow   deny                    deny
  VIEW_USER            allow   deny                    deny
  LIST_OUS             allow   allow                   allow
  LIST_OU_DIVISIONS    allow   OU in OUs               allow
  ASSIGN_MEMBERSHIP    allow   deny                    deny
  CHANGE_ROLE          allow   deny                    deny

Management does not inherit create rights from its OUs: creating a
credential requires direct division membership at every tier below admin.

The snapshot is whatever the token carried at issuance. Nothing here reads
the live user record, so a role or membership change only takes effect once
the holder receives a new token.

Identifiers are compared in canonical form only (core/ids.py). Snapshot ids
are canonicalized by decode_access_token(); resource ids are canonicalized
here, so a differently-cased or padded reference can never slip past a
membership check or be wrongly denied by one.

Layer rule: no imports from api/ or vault/. Resources are plain value
objects the caller builds from whatever it loaded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Union

from auth.models import Role, Snapshot
from core.errors import Forbidden
from core.ids import canonical_id

logger = logging.getLogger("credvault.policy")


class Action(str, Enum):
    READ_CREDENTIALS = "read_credentials"
    CREATE_CREDENTIAL = "create_credential"
    UPDATE_CREDENTIAL = "update_credential"
    LIST_USERS = "list_users"
    VIEW_USER = "view_user"
    LIST_OUS = "list_ous"
    LIST_OU_DIVISIONS = "list_ou_divisions"
    ASSIGN_MEMBERSHIP = "assign_membership"
    CHANGE_ROLE = "change_role"


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DivisionRef:
    """A division together with its owning OU (credential actions target this)."""

    division_id: str
    ou_id: str

    @classmethod
    def of(cls, division_id: object, ou_id: object) -> DivisionRef:
        return cls(division_id=canonical_id(division_id), ou_id=canonical_id(ou_id))


@dataclass(frozen=True)
class OURef:
    ou_id: str

    @classmethod
    def of(cls, ou_id: object) -> OURef:
        return cls(ou_id=canonical_id(ou_id))


Resource = Union[DivisionRef, OURef, None]


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str


ALLOW = Decision(True, "allowed")

_DENY_ROLE = Decision(False, "Access denied: insufficient role")
_DENY_DIVISION = Decision(False, "Access denied: not assigned to this division")
_DENY_OU = Decision(False, "Access denied: division not in your OU")
_DENY_CREDENTIAL_OU = Decision(False, "Access denied: credential not in your OU")
_DENY_OU_SCOPE = Decision(False, "Access denied: OU not assigned to you")


# ---------------------------------------------------------------------------
# Rule primitives
# ---------------------------------------------------------------------------

Rule = Callable[[Snapshot, Resource], Decision]


def _allow(snapshot: Snapshot, resource: Resource) -> Decision:
    return ALLOW


def _deny_role(snapshot: Snapshot, resource: Resource) -> Decision:
    return _DENY_ROLE


def _division_member(snapshot: Snapshot, resource: Resource) -> Decision:
    division = _require(resource, DivisionRef)
    return ALLOW if canonical_id(division.division_id) in snapshot.divisions else _DENY_DIVISION


def _division_ou_member(denial: Decision) -> Rule:
    def rule(snapshot: Snapshot, resource: Resource) -> Decision:
        division = _require(resource, DivisionRef)
        return ALLOW if canonical_id(division.ou_id) in snapshot.ous else denial

    return rule


def _ou_member(snapshot: Snapshot, resource: Resource) -> Decision:
    ou = _require(resource, OURef)
    return ALLOW if canonical_id(ou.ou_id) in snapshot.ous else _DENY_OU_SCOPE


def _require(resource: Resource, kind: type):
    if not isinstance(resource, kind):
        raise TypeError(f"Rule needs a {kind.__name__}, got {type(resource).__name__}")
    return resource


# ---------------------------------------------------------------------------
# Rule table -- one entry per (Action, Role); ADMIN is handled before lookup
# ---------------------------------------------------------------------------

_RULES: dict[Action, dict[Role, Rule]] = {
    Action.READ_CREDENTIALS: {
        Role.MANAGEMENT: _division_ou_member(_DENY_OU),
        Role.NORMAL: _division_member,
    },
    Action.CREATE_CREDENTIAL: {
        Role.MANAGEMENT: _division_member,
        Role.NORMAL: _division_member,
    },
    Action.UPDATE_CREDENTIAL: {
        Role.MANAGEMENT: _division_ou_member(_DENY_CREDENTIAL_OU),
        Role.NORMAL: _deny_role,
    },
    Action.LIST_USERS: {Role.MANAGEMENT: _deny_role, Role.NORMAL: _deny_role},
    Action.VIEW_USER: {Role.MANAGEMENT: _deny_role, Role.NORMAL: _deny_role},
    Action.LIST_OUS: {Role.MANAGEMENT: _allow, Role.NORMAL: _allow},
    Action.LIST_OU_DIVISIONS: {Role.MANAGEMENT: _ou_member, Role.NORMAL: _allow},
    Action.ASSIGN_MEMBERSHIP: {Role.MANAGEMENT: _deny_role, Role.NORMAL: _deny_role},
    Action.CHANGE_ROLE: {Role.MANAGEMENT: _deny_role, Role.NORMAL: _deny_role},
}

_NON_ADMIN_ROLES = frozenset(Role) - {Role.ADMIN}


def _check_exhaustive() -> None:
    for action in Action:
        covered = set(_RULES.get(action, {}))
        if covered != _NON_ADMIN_ROLES:
            missing = sorted(r.value for r in _NON_ADMIN_ROLES - covered)
            raise RuntimeError(f"Policy table incomplete for {action.value}: missing {missing}")


_check_exhaustive()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def authorize(snapshot: Snapshot, action: Action, resource: Resource = None) -> Decision:
    """Evaluate the policy for one request. Pure function of its arguments."""
    if snapshot.role is Role.ADMIN:
        return ALLOW
    rule = _RULES.get(action, {}).get(snapshot.role)
    if rule is None:
        return _DENY_ROLE
    return rule(snapshot, resource)


def enforce(snapshot: Snapshot, action: Action, resource: Resource = None) -> None:
    """Raise Forbidden if authorize() denies the request."""
    decision = authorize(snapshot, action, resource)
    if not decision.allowed:
        logger.info(
            "Denied %s for user=%s role=%s: %s",
            action.value,
            snapshot.user_id,
            snapshot.role.value,
            decision.reason,
        )
        raise Forbidden(decision.reason)


def can(snapshot: Snapshot, action: Action, resource: Resource = None) -> bool:
    return authorize(snapshot, action, resource).allowed


def visible_divisions(snapshot: Snapshot, divisions: Iterable) -> list:
    """Filter divisions down to the ones the caller can read or add credentials to.

    divisions may be any objects with .id and .ou_id (vault.models.Division).
    Used to populate division pickers without leaking the rest of the tree.
    """
    result = []
    for division in divisions:
        ref = DivisionRef.of(division.id, division.ou_id)
        if can(snapshot, Action.READ_CREDENTIALS, ref) or can(snapshot, Action.CREATE_CREDENTIAL, ref):
            result.append(division)
    return result
