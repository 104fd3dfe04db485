"""
Audit trail recorder.

Called by the authoritative layer after an approved mutation has
succeeded. Entries are appended and never changed; a correction is a new
entry that points at the one it corrects.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from landguard.errors import ValidationError
from landguard.logging_config import create_logger
from landguard.models.entities import AuditLogEntry
from landguard.utils.time_utils import utc_now

logger = create_logger("core.audit")


def resource_label(resource_type: Any) -> str:
    return str(getattr(resource_type, "value", resource_type))


class AuditTrailRecorder:

    def __init__(self, sink, clock: Callable = utc_now):
        self.sink = sink
        self.clock = clock

    def record(self, actor_id: str, action: str, resource_type: str, resource_id: Any,
               before: Optional[Dict[str, Any]] = None, after: Optional[Dict[str, Any]] = None) -> AuditLogEntry:
        if resource_id is None or not str(resource_id).strip():
            raise ValidationError("Audit entries need a resource id", resourceType=resource_label(resource_type))
        entry = AuditLogEntry(
            actor_id=str(actor_id),
            action=str(action),
            resource_type=resource_label(resource_type),
            resource_id=str(resource_id),
            timestamp=self.clock(),
            before=before,
            after=after,
        )
        self.sink.append(entry)
        logger.info(f"Audit {entry.entry_id}: {actor_id} {action} {resource_type}/{resource_id}")
        return entry

    def record_correction(self, original_entry_id: str, actor_id: str,
                          before: Optional[Dict[str, Any]] = None,
                          after: Optional[Dict[str, Any]] = None,
                          action: str = "correction") -> AuditLogEntry:
        original = self.sink.get(original_entry_id)
        if original is None:
            raise ValidationError(f"Audit entry {original_entry_id} not found", entryId=original_entry_id)
        entry = AuditLogEntry(
            actor_id=str(actor_id),
            action=action,
            resource_type=original.resource_type,
            resource_id=original.resource_id,
            timestamp=self.clock(),
            before=before,
            after=after,
            corrects_entry_id=original.entry_id,
        )
        self.sink.append(entry)
        logger.info(f"Audit {entry.entry_id} corrects {original.entry_id}")
        return entry

    def chain_root(self, entry_id: str) -> Optional[AuditLogEntry]:
        """First entry of a correction chain, or None when any link is missing."""
        entry = self.sink.get(entry_id)
        seen = set()
        while entry is not None and entry.corrects_entry_id and entry.entry_id not in seen:
            seen.add(entry.entry_id)
            entry = self.sink.get(entry.corrects_entry_id)
        return entry

    def history(self, resource_type: str, resource_id: Any) -> List[AuditLogEntry]:
        entries = self.sink.list_for_resource(resource_label(resource_type), str(resource_id))
        return sorted(entries, key=lambda e: e.timestamp)
