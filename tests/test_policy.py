"""
tests/test_policy.py -- Unit tests for the authorization engine.

authorize() is a pure function of (snapshot, action, resource), so these
tests build snapshots directly instead of going through tokens or HTTP.

Coverage:
  - Every row of the policy table for each role
  - Admin short-circuit (no memberships needed)
  - Management read/update via OU, create only via direct division membership
  - Id comparison is case- and whitespace-insensitive
  - visible_divisions() filtering
  - enforce() raises Forbidden with an "Access denied" reason
"""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from auth.models import Role, Snapshot
from auth.policy import Action, DivisionRef, OURef, authorize, can, enforce, visible_divisions
from core.errors import Forbidden
from core.ids import new_id

OU1, OU2 = new_id(), new_id()
D1, D2, D3 = new_id(), new_id(), new_id()  # D1, D2 in OU1; D3 in OU2


def _snap(role: Role, ous=(), divisions=()) -> Snapshot:
    return Snapshot(
        user_id=new_id(),
        username=f"{role.value}-user",
        role=role,
        ous=frozenset(ous),
        divisions=frozenset(divisions),
    )


@dataclass
class _Div:
    id: str
    ou_id: str


class TestNormalRole:
    snap = _snap(Role.NORMAL, ous=[OU1], divisions=[D1])

    def test_reads_own_division(self) -> None:
        assert can(self.snap, Action.READ_CREDENTIALS, DivisionRef.of(D1, OU1))

    def test_cannot_read_sibling_division_in_own_ou(self) -> None:
        decision = authorize(self.snap, Action.READ_CREDENTIALS, DivisionRef.of(D2, OU1))
        assert not decision.allowed
        assert decision.reason == "Access denied: not assigned to this division"

    def test_creates_in_own_division(self) -> None:
        assert can(self.snap, Action.CREATE_CREDENTIAL, DivisionRef.of(D1, OU1))
        assert not can(self.snap, Action.CREATE_CREDENTIAL, DivisionRef.of(D3, OU2))

    def test_never_updates(self) -> None:
        decision = authorize(self.snap, Action.UPDATE_CREDENTIAL, DivisionRef.of(D1, OU1))
        assert not decision.allowed
        assert decision.reason == "Access denied: insufficient role"

    @pytest.mark.parametrize(
        "action", [Action.LIST_USERS, Action.VIEW_USER, Action.ASSIGN_MEMBERSHIP, Action.CHANGE_ROLE]
    )
    def test_admin_actions_denied(self, action: Action) -> None:
        assert not can(self.snap, action)

    def test_lists_ous_and_any_ou_divisions(self) -> None:
        assert can(self.snap, Action.LIST_OUS)
        assert can(self.snap, Action.LIST_OU_DIVISIONS, OURef.of(OU2))


class TestManagementRole:
    snap = _snap(Role.MANAGEMENT, ous=[OU1])

    def test_reads_every_division_in_own_ou(self) -> None:
        assert can(self.snap, Action.READ_CREDENTIALS, DivisionRef.of(D1, OU1))
        assert can(self.snap, Action.READ_CREDENTIALS, DivisionRef.of(D2, OU1))

    def test_cannot_read_outside_own_ou(self) -> None:
        decision = authorize(self.snap, Action.READ_CREDENTIALS, DivisionRef.of(D3, OU2))
        assert decision.reason == "Access denied: division not in your OU"

    def test_updates_in_own_ou_only(self) -> None:
        assert can(self.snap, Action.UPDATE_CREDENTIAL, DivisionRef.of(D2, OU1))
        decision = authorize(self.snap, Action.UPDATE_CREDENTIAL, DivisionRef.of(D3, OU2))
        assert decision.reason == "Access denied: credential not in your OU"

    def test_create_requires_division_membership(self) -> None:
        assert not can(self.snap, Action.CREATE_CREDENTIAL, DivisionRef.of(D1, OU1))
        member = _snap(Role.MANAGEMENT, ous=[OU1], divisions=[D1])
        assert can(member, Action.CREATE_CREDENTIAL, DivisionRef.of(D1, OU1))

    def test_ou_divisions_limited_to_own_ous(self) -> None:
        assert can(self.snap, Action.LIST_OU_DIVISIONS, OURef.of(OU1))
        decision = authorize(self.snap, Action.LIST_OU_DIVISIONS, OURef.of(OU2))
        assert decision.reason == "Access denied: OU not assigned to you"

    @pytest.mark.parametrize(
        "action", [Action.LIST_USERS, Action.VIEW_USER, Action.ASSIGN_MEMBERSHIP, Action.CHANGE_ROLE]
    )
    def test_admin_actions_denied(self, action: Action) -> None:
        assert not can(self.snap, action)


class TestAdminRole:
    snap = _snap(Role.ADMIN)

    @pytest.mark.parametrize("action", list(Action))
    def test_everything_allowed_without_memberships(self, action: Action) -> None:
        resource = {
            Action.READ_CREDENTIALS: DivisionRef.of(D3, OU2),
            Action.CREATE_CREDENTIAL: DivisionRef.of(D3, OU2),
            Action.UPDATE_CREDENTIAL: DivisionRef.of(D3, OU2),
            Action.LIST_OU_DIVISIONS: OURef.of(OU2),
        }.get(action)
        assert can(self.snap, action, resource)


class TestCanonicalComparison:
    def test_uppercase_resource_id_matches(self) -> None:
        snap = _snap(Role.NORMAL, divisions=[D1])
        assert can(snap, Action.READ_CREDENTIALS, DivisionRef.of(f" {D1.upper()} ", OU1))

    def test_malformed_resource_id_rejected(self) -> None:
        with pytest.raises(ValueError):
            DivisionRef.of("not-an-id", OU1)


class TestEnforce:
    def test_denial_raises_forbidden_with_reason(self) -> None:
        snap = _snap(Role.NORMAL)
        with pytest.raises(Forbidden) as exc_info:
            enforce(snap, Action.LIST_USERS)
        assert exc_info.value.status_code == 403
        assert exc_info.value.message.startswith("Access denied")

    def test_allowed_returns_none(self) -> None:
        assert enforce(_snap(Role.ADMIN), Action.LIST_USERS) is None


class TestVisibleDivisions:
    divisions = [_Div(D1, OU1), _Div(D2, OU1), _Div(D3, OU2)]

    def test_normal_sees_own_divisions(self) -> None:
        snap = _snap(Role.NORMAL, ous=[OU1], divisions=[D1])
        assert [d.id for d in visible_divisions(snap, self.divisions)] == [D1]

    def test_management_sees_divisions_of_own_ous(self) -> None:
        snap = _snap(Role.MANAGEMENT, ous=[OU1])
        assert [d.id for d in visible_divisions(snap, self.divisions)] == [D1, D2]

    def test_admin_sees_all(self) -> None:
        assert len(visible_divisions(_snap(Role.ADMIN), self.divisions)) == 3

    def test_no_memberships_sees_nothing(self) -> None:
        assert visible_divisions(_snap(Role.NORMAL), self.divisions) == []
