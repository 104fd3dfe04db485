"""
Authorization engine facade.

Wires the role registry, stores, decision point, enforcement layers,
lockout controller and audit recorder together once, and exposes the
external operations the application layers call:

- ``decide``        -> allow/deny with a reason code, side-effect free
- ``check_login``   -> Allowed | CaptchaRequired | Locked | InvalidCredential
- ``record_audit``  -> append one audit entry
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from landguard.audit import AuditTrailRecorder
from landguard.authentication import LoginResult, LoginService
from landguard.captcha import CaptchaService
from landguard.config import JWT_SECRET
from landguard.enforcement import AdvisoryGate, AuthoritativeGate, BackstopGuard
from landguard.logging_config import create_logger
from landguard.lockout import LockoutController, LockoutStatus
from landguard.models import (
    AuditLogEntry,
    DynamoAttemptLedger,
    DynamoAuditSink,
    DynamoIdentityStore,
    DynamoOverrideStore,
    DynamoRoleStore,
    DynamoScopeStore,
    Identity,
    InMemoryAttemptLedger,
    InMemoryAuditSink,
    InMemoryIdentityStore,
    InMemoryOverrideStore,
    InMemoryScopeStore,
)
from landguard.overrides import PermissionAdministration
from landguard.permissions import ActionName, RoleRegistry
from landguard.policy_engine import AccessRequest, Decision, PolicyDecisionPoint
from landguard.resolver import PermissionResolver
from landguard.scope_guard import ResourceScopeGuard
from landguard.utils.time_utils import utc_now

logger = create_logger("core.engine")


class AuthorizationEngine:

    def __init__(self, registry: RoleRegistry, identity_store, override_store, scope_store,
                 attempt_ledger, audit_sink, clock: Callable[[], datetime] = utc_now,
                 secret: Optional[str] = None, role_loader: Optional[Callable[[], RoleRegistry]] = None,
                 **lockout_options):
        self.identity_store = identity_store
        self.override_store = override_store
        self.scope_store = scope_store
        self.clock = clock
        self.role_loader = role_loader

        self.resolver = PermissionResolver(registry, override_store)
        self.scope_guard = ResourceScopeGuard(scope_store)
        self.pdp = PolicyDecisionPoint(self.resolver, self.scope_guard)
        self.recorder = AuditTrailRecorder(audit_sink, clock=clock)

        self.advisory = AdvisoryGate(self.pdp)
        self.authoritative = AuthoritativeGate(self.pdp, self.recorder)
        self.backstop = BackstopGuard(self.pdp, identity_store)

        self.lockout = LockoutController(attempt_ledger, clock=clock, **lockout_options)
        self.captcha = CaptchaService(secret, clock=clock) if secret else None
        self.login = LoginService(identity_store, self.lockout, captcha=self.captcha, token_secret=secret)
        self.administration = PermissionAdministration(
            self.authoritative, identity_store, override_store, scope_store, clock=clock
        )

    @property
    def registry(self) -> RoleRegistry:
        return self.resolver.registry

    def reload_roles(self, registry: Optional[RoleRegistry] = None) -> RoleRegistry:
        """Swap in a new immutable registry; the next resolution reads it."""
        if registry is None:
            if self.role_loader is None:
                raise ValueError("No role loader configured")
            registry = self.role_loader()
        self.resolver.registry = registry
        logger.info(f"Role registry reloaded with {len(registry.roles())} roles")
        return registry

    # ——— Decisions ———

    def identity(self, identity_id: Any) -> Optional[Identity]:
        return self.backstop.load_identity(identity_id)

    def decide(self, identity: Optional[Identity], action: ActionName, resource_type: Any = None,
               resource_id: Any = None, parent_id: Any = None) -> Decision:
        return self.pdp.decide(identity, action, resource_type, resource_id, parent_id)

    def evaluate(self, req: AccessRequest) -> Decision:
        return self.pdp.evaluate(req)

    def effective_permissions(self, identity: Identity) -> Dict[str, bool]:
        return self.resolver.effective_permissions(identity)

    # ——— Login ———

    def check_login(self, identifier: Any, credential_proof: Any, captcha_proof: Any = None,
                    source_address: Optional[str] = None, user_agent: Optional[str] = None) -> LoginResult:
        return self.login.check_login(identifier, credential_proof, captcha_proof,
                                      source_address=source_address, user_agent=user_agent)

    def login_status(self, identifier: Any) -> LockoutStatus:
        return self.lockout.status(identifier)

    def issue_captcha(self) -> Dict[str, Any]:
        if self.captcha is None:
            raise ValueError("Captcha challenges need a signing secret")
        return self.captcha.issue_challenge()

    def purge(self, now: Optional[datetime] = None) -> int:
        removed = self.lockout.purge_expired_attempts(now)
        logger.info(f"Purged {removed} expired login attempts")
        return removed

    # ——— Audit ———

    def record_audit(self, actor_id: Any, action: str, resource_type: Any, resource_id: Any,
                     before: Optional[Dict[str, Any]] = None,
                     after: Optional[Dict[str, Any]] = None) -> AuditLogEntry:
        return self.recorder.record(actor_id, action, str(getattr(resource_type, "value", resource_type)),
                                    resource_id, before=before, after=after)

    def audit_trail(self, resource_type: Any, resource_id: Any) -> List[AuditLogEntry]:
        return self.recorder.history(str(getattr(resource_type, "value", resource_type)), resource_id)


def build_in_memory_engine(registry: Optional[RoleRegistry] = None, clock: Callable[[], datetime] = utc_now,
                           secret: Optional[str] = None, **lockout_options) -> AuthorizationEngine:
    return AuthorizationEngine(
        registry or RoleRegistry.default(),
        InMemoryIdentityStore(),
        InMemoryOverrideStore(),
        InMemoryScopeStore(),
        InMemoryAttemptLedger(),
        InMemoryAuditSink(),
        clock=clock,
        secret=secret,
        **lockout_options,
    )


def load_roles_or_default(role_store) -> RoleRegistry:
    """Roles table when it has rows, otherwise the built-in table."""
    try:
        registry = role_store.load_registry()
    except Exception:
        logger.exception("Could not load roles table; using built-in role defaults")
        return RoleRegistry.default()
    if not registry.roles():
        logger.warning("Roles table is empty; using built-in role defaults")
        return RoleRegistry.default()
    return registry


def build_default_engine(secret: Optional[str] = JWT_SECRET) -> AuthorizationEngine:
    """Engine backed by the DynamoDB tables named in ``TABLE_CONFIG``."""
    role_store = DynamoRoleStore()
    return AuthorizationEngine(
        load_roles_or_default(role_store),
        DynamoIdentityStore(),
        DynamoOverrideStore(),
        DynamoScopeStore(),
        DynamoAttemptLedger(),
        DynamoAuditSink(),
        secret=secret,
        role_loader=role_store.load_registry,
    )
