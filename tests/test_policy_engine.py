import random
from unittest.mock import MagicMock

import pytest

from landguard.errors import StoreUnavailable
from landguard.models import InMemoryOverrideStore, InMemoryScopeStore, PermissionOverride, ResourceScope
from landguard.models.entities import Identity
from landguard.permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    ActionType,
    IdentityStatus,
    ResourceType,
    Role,
    RoleRegistry,
)
from landguard.policy_engine import AccessRequest, DecisionReason, PolicyDecisionPoint
from landguard.resolver import PermissionResolver
from landguard.scope_guard import ResourceScopeGuard

ALL_ACTIONS = sorted({name for table in DEFAULT_ROLE_PERMISSIONS.values() for name in table})


@pytest.fixture
def overrides():
    return InMemoryOverrideStore()


@pytest.fixture
def scopes():
    return InMemoryScopeStore()


@pytest.fixture
def pdp(overrides, scopes):
    return PolicyDecisionPoint(PermissionResolver(RoleRegistry.default(), overrides), ResourceScopeGuard(scopes))


@pytest.mark.parametrize("action", ALL_ACTIONS)
def test_owner_is_allowed_regardless_of_override_and_scope(pdp, overrides, scopes, action):
    owner = Identity(id="U-O", role=Role.OWNER, status=IdentityStatus.INACTIVE)
    overrides.put_override(PermissionOverride(owner.id, ResourceType.LAND, ActionType.VIEW, False))
    scopes.put_scope(ResourceScope.build(owner.id, ResourceType.LAND, ["B1"], ["P1"]))

    decision = pdp.decide(owner, action, ResourceType.LAND, "P2", "B2")
    assert decision.allowed is True
    assert decision.reason == DecisionReason.ALLOWED


@pytest.mark.parametrize("role", [Role.MANAGER, Role.FIELD_WORKER, None])
@pytest.mark.parametrize("action", ALL_ACTIONS)
def test_non_active_non_owner_is_always_denied(pdp, overrides, role, action):
    identity = Identity(id="U-I", role=role, status=IdentityStatus.INACTIVE)
    overrides.put_override(PermissionOverride(identity.id, ResourceType.LAND, ActionType.VIEW, True))
    assert pdp.decide(identity, action, None).allowed is False


def test_override_grants_only_to_its_identity(pdp, overrides, worker, other_worker):
    overrides.put_override(PermissionOverride(worker.id, ResourceType.LAND, ActionType.EDIT, True))

    assert pdp.decide(worker, "edit_land", "land", "P1").allowed is True
    denied = pdp.decide(other_worker, "edit_land", "land", "P1")
    assert denied.allowed is False
    assert denied.reason == DecisionReason.ACTION_NOT_PERMITTED


def test_parent_scope_violation_after_permitted_action(pdp, scopes, worker):
    scopes.put_scope(ResourceScope.build(worker.id, ResourceType.LAND, allowed_parent_ids=["B1"]))
    decision = pdp.decide(worker, "view_land", "land", "itemInB2", parent_id="B2")
    assert decision.allowed is False
    assert decision.reason == DecisionReason.SCOPE_VIOLATION


def test_item_scope(pdp, scopes, worker):
    scopes.put_scope(ResourceScope.build(worker.id, ResourceType.LAND, allowed_item_ids=["P1", "P2"]))
    assert pdp.decide(worker, "view_land", "land", "P3").reason == DecisionReason.SCOPE_VIOLATION
    assert pdp.decide(worker, "view_land", "land", "P1").allowed is True


def test_scope_never_widens_a_denied_action(pdp, scopes, worker):
    scopes.put_scope(ResourceScope.build(worker.id, ResourceType.LAND, allowed_item_ids=["P1"]))
    decision = pdp.decide(worker, "edit_land", "land", "P1")
    assert decision.reason == DecisionReason.ACTION_NOT_PERMITTED


def test_missing_identity_is_unknown(pdp):
    decision = pdp.decide(None, "view_land", "land", "P1")
    assert decision.allowed is False
    assert decision.reason == DecisionReason.UNKNOWN_IDENTITY


def test_resource_type_defaults_to_the_actions_resource(pdp, scopes, worker):
    scopes.put_scope(ResourceScope.build(worker.id, ResourceType.LAND, allowed_item_ids=["P1"]))
    assert pdp.decide(worker, "view_land", None, "P2").reason == DecisionReason.SCOPE_VIOLATION


def test_unknown_resource_type_is_denied(pdp, manager):
    assert pdp.decide(manager, "view_land", "spaceship", "P1").reason == DecisionReason.ACTION_NOT_PERMITTED


def test_store_failures_fail_closed(worker):
    overrides = MagicMock()
    overrides.get_override.return_value = None
    scopes = MagicMock()
    scopes.get_scope.side_effect = StoreUnavailable("down")
    pdp = PolicyDecisionPoint(PermissionResolver(RoleRegistry.default(), overrides), ResourceScopeGuard(scopes))
    assert pdp.decide(worker, "view_land", "land", "P1").allowed is False

    overrides.get_override.side_effect = StoreUnavailable("down")
    decision = pdp.decide(worker, "view_land", "land", "P1")
    assert decision.allowed is False
    assert decision.reason == DecisionReason.ACTION_NOT_PERMITTED


def test_evaluate_matches_decide(pdp, worker):
    req = AccessRequest(identity=worker, action="view_land", resourceType="land", resourceId="P1")
    assert pdp.evaluate(req) == pdp.decide(worker, "view_land", "land", "P1")


def test_decide_parent_uses_parent_scope_only(pdp, scopes, worker):
    scopes.put_scope(ResourceScope.build(worker.id, ResourceType.LAND, ["B1"], ["P1"]))
    assert pdp.decide_parent(worker, "view_land", "land", "B1").allowed is True
    assert pdp.decide_parent(worker, "view_land", "land", "B2").reason == DecisionReason.SCOPE_VIOLATION


def test_decision_serializes():
    from landguard.policy_engine import DENY_SCOPE
    assert DENY_SCOPE.to_dict() == {"decision": "DENY", "allowed": False, "reason": "ScopeViolation"}


def test_decide_is_idempotent_under_random_inputs(pdp, overrides, scopes):
    rng = random.Random(20240301)
    roles = [Role.OWNER, Role.MANAGER, Role.FIELD_WORKER, None]
    statuses = [IdentityStatus.ACTIVE, IdentityStatus.INACTIVE]
    actions = ALL_ACTIONS + ["land_edit", "audit_log_view", "bogus_action"]
    resources = [None, "land", "client", "sale", "nowhere"]
    ids = [None, "P1", "P2", "P3"]
    parents = [None, "B1", "B2"]

    identities = [Identity(id=f"U{i}", role=rng.choice(roles), status=rng.choice(statuses)) for i in range(12)]
    for identity in identities:
        if rng.random() < 0.5:
            overrides.put_override(PermissionOverride(
                identity.id, rng.choice(list(ResourceType)), rng.choice(list(ActionType)), rng.random() < 0.5
            ))
        if rng.random() < 0.5:
            scopes.put_scope(ResourceScope.build(
                identity.id, ResourceType.LAND,
                rng.sample(["B1", "B2"], rng.randint(0, 2)),
                rng.sample(["P1", "P2", "P3"], rng.randint(0, 3)),
            ))

    for _ in range(500):
        args = (
            rng.choice(identities),
            rng.choice(actions),
            rng.choice(resources),
            rng.choice(ids),
            rng.choice(parents),
        )
        first = pdp.decide(*args)
        second = pdp.decide(*args)
        assert first == second
        if args[0].role == Role.OWNER:
            assert first.allowed is True
        elif args[0].status != IdentityStatus.ACTIVE:
            assert first.allowed is False
