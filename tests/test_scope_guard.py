from unittest.mock import MagicMock

import pytest

from landguard.errors import StoreUnavailable
from landguard.models import InMemoryScopeStore, ResourceScope
from landguard.permissions import ResourceType
from landguard.scope_guard import ResourceScopeGuard, parent_scope_permits, scope_permits


@pytest.fixture
def scopes():
    return InMemoryScopeStore()


@pytest.fixture
def guard(scopes):
    return ResourceScopeGuard(scopes)


def restrict(scopes, identity, parents=None, items=None, resource=ResourceType.LAND):
    scopes.put_scope(ResourceScope.build(identity.id, resource, parents, items))


def test_missing_scope_is_unrestricted(guard, worker):
    assert guard.can_access(worker, "land", "P9", parent_id="B9") is True


def test_parent_scope_vetoes_children(guard, scopes, worker):
    restrict(scopes, worker, parents=["B1"])
    assert guard.can_access(worker, ResourceType.LAND, "itemInB2", parent_id="B2") is False
    assert guard.can_access(worker, ResourceType.LAND, "itemInB1", parent_id="B1") is True


def test_parent_veto_wins_over_item_scope(guard, scopes, worker):
    restrict(scopes, worker, parents=["B1"], items=["P5"])
    assert guard.can_access(worker, ResourceType.LAND, "P5", parent_id="B2") is False
    assert guard.can_access(worker, ResourceType.LAND, "P5", parent_id="B1") is True


def test_parent_check_skipped_without_parent_id(guard, scopes, worker):
    restrict(scopes, worker, parents=["B1"])
    assert guard.can_access(worker, ResourceType.LAND, "P1") is True


def test_item_scope_requires_listed_item(guard, scopes, worker):
    restrict(scopes, worker, items=["P1", "P2"])
    assert guard.can_access(worker, ResourceType.LAND, "P3") is False
    assert guard.can_access(worker, ResourceType.LAND, "P1") is True
    assert guard.can_access(worker, ResourceType.LAND, None) is False


def test_empty_sets_mean_unrestricted(guard, scopes, worker):
    restrict(scopes, worker, parents=[], items=[])
    assert guard.can_access(worker, ResourceType.LAND, "anything", parent_id="B7") is True


def test_scope_is_per_resource_type(guard, scopes, worker):
    restrict(scopes, worker, items=["P1"], resource=ResourceType.LAND)
    assert guard.can_access(worker, ResourceType.CLIENT, "C1") is True


def test_owner_ignores_scope(guard, scopes, owner):
    restrict(scopes, owner, parents=["B1"], items=["P1"])
    assert guard.can_access(owner, ResourceType.LAND, "P2", parent_id="B2") is True


def test_parent_level_access(guard, scopes, worker):
    restrict(scopes, worker, parents=["B1"])
    assert guard.can_access_parent(worker, ResourceType.LAND, "B1") is True
    assert guard.can_access_parent(worker, ResourceType.LAND, "B2") is False
    assert parent_scope_permits(ResourceScope.unrestricted(worker.id), "B2") is True


def test_filter_applies_same_rules_per_candidate(guard, scopes, worker):
    restrict(scopes, worker, parents=["B1"], items=["P1", "P2", "P3"])
    pieces = [
        {"id": "P1", "batch": "B1"},
        {"id": "P2", "batch": "B2"},
        {"id": "P3", "batch": "B1"},
        {"id": "P4", "batch": "B1"},
    ]
    visible = guard.filter_accessible(worker, "land", pieces,
                                      id_of=lambda p: p["id"], parent_of=lambda p: p["batch"])
    assert [p["id"] for p in visible] == ["P1", "P3"]
    for piece in pieces:
        single = guard.can_access(worker, "land", piece["id"], parent_id=piece["batch"])
        assert single is (piece in visible)


def test_unreadable_scope_denies(worker):
    store = MagicMock()
    store.get_scope.side_effect = StoreUnavailable("down")
    guard = ResourceScopeGuard(store)
    assert guard.can_access(worker, ResourceType.LAND, "P1") is False
    assert guard.filter_accessible(worker, ResourceType.LAND, ["P1"]) == []


def test_scope_permits_on_plain_scope():
    scope = ResourceScope.build("U", ResourceType.LAND, None, ["P1", "P2"])
    assert scope_permits(scope, "P1") is True
    assert scope_permits(scope, "P3") is False
