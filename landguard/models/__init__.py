"""
Models package for data access layer.
"""
from .entities import (
    Identity,
    CredentialRecord,
    PermissionOverride,
    ResourceScope,
    LoginAttempt,
    AuditLogEntry
)
from .identity_repository import DynamoIdentityStore
from .override_repository import DynamoOverrideStore
from .scope_repository import DynamoScopeStore
from .role_repository import DynamoRoleStore
from .attempt_repository import DynamoAttemptLedger
from .audit_repository import DynamoAuditSink
from .memory import (
    InMemoryIdentityStore,
    InMemoryOverrideStore,
    InMemoryScopeStore,
    InMemoryAttemptLedger,
    InMemoryAuditSink
)

__all__ = [
    'Identity',
    'CredentialRecord',
    'PermissionOverride',
    'ResourceScope',
    'LoginAttempt',
    'AuditLogEntry',
    'DynamoIdentityStore',
    'DynamoOverrideStore',
    'DynamoScopeStore',
    'DynamoRoleStore',
    'DynamoAttemptLedger',
    'DynamoAuditSink',
    'InMemoryIdentityStore',
    'InMemoryOverrideStore',
    'InMemoryScopeStore',
    'InMemoryAttemptLedger',
    'InMemoryAuditSink'
]
