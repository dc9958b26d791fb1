import pytest

from wigbank.errors import PermissionDenied
from wigbank.rbac import ActorRole, can_act, ensure_can_act, ensure_role


class _Actor:
    def __init__(self, id, role):
        self.id = id
        self.role = role


def test_owner_can_act():
    assert can_act(1, ActorRole.REQUESTER, 1)


def test_non_owner_without_role_cannot_act():
    assert not can_act(1, ActorRole.REQUESTER, 2)
    assert not can_act(1, ActorRole.INSTITUTION, 2)


def test_allowed_role_grants_access():
    assert can_act(1, ActorRole.INSTITUTION, 2, [ActorRole.INSTITUTION])
    assert can_act(1, "institution", None, [ActorRole.INSTITUTION])


def test_admin_always_allowed():
    assert can_act(9, ActorRole.ADMIN, 2)
    assert can_act(9, "admin", None)


def test_unknown_role_is_denied_without_raising():
    assert not can_act(1, "superuser", 2)
    assert not can_act(None, None, None)


def test_missing_owner_never_matches():
    assert not can_act(None, ActorRole.REQUESTER, None)


def test_ensure_can_act_raises():
    with pytest.raises(PermissionDenied) as exc:
        ensure_can_act(_Actor(1, "requester"), 2, detail="nope")
    assert exc.value.message == "nope"
    ensure_can_act(_Actor(2, "requester"), 2)


def test_ensure_role_does_not_imply_admin():
    with pytest.raises(PermissionDenied):
        ensure_role(_Actor(1, "admin"), [ActorRole.INSTITUTION])
    ensure_role(_Actor(1, "institution"), [ActorRole.INSTITUTION])
