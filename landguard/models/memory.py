"""
Thread-safe in-memory stores with the same methods as the DynamoDB repositories.

Useful for embedding the engine in a single process and for tests.
"""
import threading
from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from landguard.permissions import Permission, ResourceType
from .entities import (
    AuditLogEntry,
    CredentialRecord,
    Identity,
    LoginAttempt,
    PermissionOverride,
    ResourceScope,
)


class InMemoryIdentityStore:

    def __init__(self, records: Iterable[CredentialRecord] = ()):
        self._lock = threading.Lock()
        self._by_id: Dict[str, CredentialRecord] = {}
        for record in records:
            self.put(record.identity, record.password_hash)

    def put(self, identity: Identity, password_hash: Optional[str] = None) -> None:
        with self._lock:
            self._by_id[identity.id] = CredentialRecord(identity=identity, password_hash=password_hash)

    def get_identity(self, identity_id: str) -> Optional[Identity]:
        with self._lock:
            record = self._by_id.get(str(identity_id))
        return record.identity if record else None

    def find_credentials(self, login_identifier: str) -> Optional[CredentialRecord]:
        with self._lock:
            for record in self._by_id.values():
                if (record.identity.email or "").strip().lower() == login_identifier:
                    return record
        return None


class InMemoryOverrideStore:

    def __init__(self):
        self._lock = threading.Lock()
        self._items: Dict[Tuple[str, Permission], PermissionOverride] = {}

    def get_override(self, identity_id: str, permission: Permission) -> Optional[PermissionOverride]:
        with self._lock:
            return self._items.get((str(identity_id), permission))

    def list_overrides(self, identity_id: str) -> List[PermissionOverride]:
        with self._lock:
            return [o for (owner, _), o in self._items.items() if owner == str(identity_id)]

    def put_override(self, override: PermissionOverride) -> None:
        with self._lock:
            self._items[(override.identity_id, override.permission)] = override

    def delete_override(self, identity_id: str, permission: Permission) -> None:
        with self._lock:
            self._items.pop((str(identity_id), permission), None)


class InMemoryScopeStore:

    def __init__(self):
        self._lock = threading.Lock()
        self._items: Dict[Tuple[str, ResourceType], ResourceScope] = {}

    def get_scope(self, identity_id: str, resource_type: ResourceType) -> ResourceScope:
        with self._lock:
            scope = self._items.get((str(identity_id), resource_type))
        return scope or ResourceScope.unrestricted(str(identity_id), resource_type)

    def put_scope(self, scope: ResourceScope) -> None:
        with self._lock:
            self._items[(scope.identity_id, scope.resource_type)] = scope

    def delete_scope(self, identity_id: str, resource_type: ResourceType) -> None:
        with self._lock:
            self._items.pop((str(identity_id), resource_type), None)


class InMemoryAttemptLedger:
    """Append-only list of attempts per identity key."""

    def __init__(self):
        self._lock = threading.Lock()
        self._attempts: Dict[str, List[LoginAttempt]] = defaultdict(list)
        self._sequences: Dict[str, int] = defaultdict(int)
        self._leases: Dict[str, Tuple[str, datetime]] = {}

    def append(self, attempt: LoginAttempt) -> LoginAttempt:
        with self._lock:
            self._sequences[attempt.identity] += 1
            stored = replace(attempt, sequence=self._sequences[attempt.identity])
            self._attempts[attempt.identity].append(stored)
        return stored

    def list_since(self, identity_key: str, since: datetime) -> List[LoginAttempt]:
        with self._lock:
            return [a for a in self._attempts.get(identity_key, []) if a.timestamp >= since]

    def latest_success(self, identity_key: str) -> Optional[LoginAttempt]:
        with self._lock:
            successes = [a for a in self._attempts.get(identity_key, []) if a.success]
        return max(successes, key=lambda a: (a.timestamp, a.sequence)) if successes else None

    def acquire_lease(self, identity_key: str, owner: str, now: datetime, seconds: int) -> bool:
        with self._lock:
            held = self._leases.get(identity_key)
            if held is not None and held[1] > now:
                return False
            self._leases[identity_key] = (owner, now + timedelta(seconds=seconds))
        return True

    def release_lease(self, identity_key: str, owner: str) -> None:
        with self._lock:
            held = self._leases.get(identity_key)
            if held is not None and held[0] == owner:
                del self._leases[identity_key]

    def all_attempts(self, identity_key: str) -> List[LoginAttempt]:
        with self._lock:
            return list(self._attempts.get(identity_key, []))

    def purge_before(self, cutoff: datetime) -> int:
        deleted = 0
        with self._lock:
            for key, attempts in self._attempts.items():
                kept = [a for a in attempts if a.timestamp >= cutoff]
                deleted += len(attempts) - len(kept)
                self._attempts[key] = kept
        return deleted


class InMemoryAuditSink:

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: List[AuditLogEntry] = []

    def append(self, entry: AuditLogEntry) -> None:
        with self._lock:
            if any(e.entry_id == entry.entry_id for e in self._entries):
                raise ValueError(f"Audit entry {entry.entry_id} already exists")
            self._entries.append(entry)

    def get(self, entry_id: str) -> Optional[AuditLogEntry]:
        with self._lock:
            return next((e for e in self._entries if e.entry_id == entry_id), None)

    def list_for_resource(self, resource_type: str, resource_id: str) -> List[AuditLogEntry]:
        with self._lock:
            return [e for e in self._entries if e.resource_type == resource_type and e.resource_id == str(resource_id)]

    def entries(self) -> List[AuditLogEntry]:
        with self._lock:
            return list(self._entries)
