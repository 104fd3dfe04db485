"""
Resource scope guard: which instances of a resource type an identity may touch.

Scope is independent of action permission. It only ever narrows an
action that the resolver already allowed.
"""
from __future__ import annotations

from typing import Any, Callable, Iterable, List, Optional

from landguard.logging_config import create_logger
from landguard.models.entities import Identity, ResourceScope
from landguard.permissions import ResourceType, parse_resource_type

logger = create_logger("core.scope_guard")


def scope_permits(scope: ResourceScope, resource_id: Any, parent_id: Any = None) -> bool:
    """
    Apply one scope to one instance.

    A restricted parent vetoes every child regardless of item scope; the
    parent check is skipped only when no parent id is known. An item scope
    then requires the instance itself to be listed. Both dimensions
    unrestricted means the instance is visible.
    """
    if scope.restricts_parents and parent_id is not None:
        if str(parent_id) not in scope.allowed_parent_ids:
            return False
    if scope.restricts_items:
        if resource_id is None or str(resource_id) not in scope.allowed_item_ids:
            return False
    return True


def parent_scope_permits(scope: ResourceScope, parent_id: Any) -> bool:
    """Parent-level visibility ("can I see this batch?") using only the parent dimension."""
    if not scope.restricts_parents:
        return True
    return parent_id is not None and str(parent_id) in scope.allowed_parent_ids


class ResourceScopeGuard:

    def __init__(self, scope_store):
        self.scope_store = scope_store

    def load_scope(self, identity: Identity, resource_type: ResourceType) -> Optional[ResourceScope]:
        """Current scope, or None when it cannot be read (callers deny on None)."""
        try:
            return self.scope_store.get_scope(identity.id, resource_type)
        except Exception:
            logger.exception(f"Scope lookup failed for {identity.id} on {resource_type.value}")
            return None

    def can_access(self, identity: Optional[Identity], resource_type, resource_id: Any,
                   parent_id: Any = None) -> bool:
        if identity is None:
            return False
        if identity.is_owner:
            return True
        resource = parse_resource_type(resource_type)
        if resource is None:
            return False
        scope = self.load_scope(identity, resource)
        if scope is None:
            return False
        return scope_permits(scope, resource_id, parent_id)

    def can_access_parent(self, identity: Optional[Identity], resource_type, parent_id: Any) -> bool:
        if identity is None:
            return False
        if identity.is_owner:
            return True
        resource = parse_resource_type(resource_type)
        if resource is None:
            return False
        scope = self.load_scope(identity, resource)
        if scope is None:
            return False
        return parent_scope_permits(scope, parent_id)

    def filter_accessible(self, identity: Optional[Identity], resource_type, candidates: Iterable[Any],
                          id_of: Callable[[Any], Any] = lambda c: c,
                          parent_of: Callable[[Any], Any] = lambda c: None) -> List[Any]:
        """
        Keep the candidates the identity may see.

        The scope is read once for the whole listing and the same rules as
        ``can_access`` are applied per candidate.
        """
        candidates = list(candidates)
        if identity is None:
            return []
        if identity.is_owner:
            return candidates
        resource = parse_resource_type(resource_type)
        if resource is None:
            return []
        scope = self.load_scope(identity, resource)
        if scope is None:
            return []
        return [c for c in candidates if scope_permits(scope, id_of(c), parent_of(c))]
