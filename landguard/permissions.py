"""
Roles, typed permission keys and the immutable role registry.

Action names arrive at the boundary as strings in one of two shapes:

- canonical ``resource_permission`` (``land_view``, ``audit_log_view``)
- legacy ``permission_resource`` (``view_land``, ``view_audit_logs``)

``parse_action_name`` tries both shapes and folds either into one
``Permission(resource, action)`` pair, so everything past the boundary
works on enums instead of string concatenation.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from landguard.logging_config import create_logger

logger = create_logger("core.permissions")


class Role(str, Enum):
    OWNER = "Owner"
    MANAGER = "Manager"
    FIELD_WORKER = "FieldWorker"


class IdentityStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class ResourceType(str, Enum):
    DASHBOARD = "dashboard"
    LAND = "land"
    CLIENT = "client"
    SALE = "sale"
    PRICE = "price"
    INSTALLMENT = "installment"
    PAYMENT = "payment"
    FINANCIAL = "financial"
    PROFIT = "profit"
    EXPENSE = "expense"
    REPORT = "report"
    USER = "user"
    WORKER = "worker"
    MESSAGE = "message"
    AUDIT_LOG = "audit_log"


class ActionType(str, Enum):
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    EXPORT = "export"
    MANAGE = "manage"
    RECORD = "record"


# Older role tables and UI code spell resources in the plural.
ROLE_ALIASES = {
    "owner": Role.OWNER,
    "manager": Role.MANAGER,
    "fieldworker": Role.FIELD_WORKER,
    "field_worker": Role.FIELD_WORKER,
    "fieldstaff": Role.FIELD_WORKER,
    "worker": Role.FIELD_WORKER,
}

RESOURCE_ALIASES = {
    "lands": ResourceType.LAND,
    "clients": ResourceType.CLIENT,
    "sales": ResourceType.SALE,
    "prices": ResourceType.PRICE,
    "installments": ResourceType.INSTALLMENT,
    "payments": ResourceType.PAYMENT,
    "expenses": ResourceType.EXPENSE,
    "reports": ResourceType.REPORT,
    "users": ResourceType.USER,
    "workers": ResourceType.WORKER,
    "messages": ResourceType.MESSAGE,
    "audit_logs": ResourceType.AUDIT_LOG,
    "auditlog": ResourceType.AUDIT_LOG,
}


@dataclass(frozen=True)
class Permission:
    resource: ResourceType
    action: ActionType

    @property
    def canonical(self) -> str:
        return f"{self.resource.value}_{self.action.value}"

    @property
    def legacy(self) -> str:
        return f"{self.action.value}_{self.resource.value}"

    def __str__(self) -> str:
        return self.canonical


ActionName = Union[str, Permission]


def parse_role(value: Any) -> Optional[Role]:
    """Map a stored role label onto ``Role``; unknown labels give None."""
    if isinstance(value, Role):
        return value
    text = str(value or "").strip()
    try:
        return Role(text)
    except ValueError:
        return ROLE_ALIASES.get(text.lower())


def parse_status(value: Any) -> IdentityStatus:
    """Anything other than an explicit active marker counts as inactive."""
    if isinstance(value, IdentityStatus):
        return value
    return IdentityStatus.ACTIVE if str(value or "").strip().lower() == "active" else IdentityStatus.INACTIVE


def parse_resource_type(value: Any) -> Optional[ResourceType]:
    if isinstance(value, ResourceType):
        return value
    text = str(value or "").strip().lower()
    try:
        return ResourceType(text)
    except ValueError:
        return RESOURCE_ALIASES.get(text)


def parse_action_type(value: Any) -> Optional[ActionType]:
    if isinstance(value, ActionType):
        return value
    try:
        return ActionType(str(value or "").strip().lower())
    except ValueError:
        return None


def parse_action_name(name: ActionName) -> Optional[Permission]:
    """
    Normalize an action name to ``Permission``.

    The canonical ``resource_permission`` shape is tried first, then the
    legacy ``permission_resource`` shape. Returns None when neither shape
    names a known resource and action.
    """
    if isinstance(name, Permission):
        return name
    text = str(name or "").strip().lower()
    if "_" not in text:
        return None

    resource_part, _, action_part = text.rpartition("_")
    resource, action = parse_resource_type(resource_part), parse_action_type(action_part)
    if resource and action:
        return Permission(resource, action)

    action_part, _, resource_part = text.partition("_")
    resource, action = parse_resource_type(resource_part), parse_action_type(action_part)
    if resource and action:
        return Permission(resource, action)

    return None


# ——— Default Role Table ———
# Keys keep the legacy spelling the role table was first written in.
DEFAULT_ROLE_PERMISSIONS: Dict[str, Dict[str, bool]] = {
    "Owner": {
        "view_dashboard": True,
        "view_land": True,
        "edit_land": True,
        "delete_land": True,
        "view_clients": True,
        "edit_clients": True,
        "delete_clients": True,
        "view_sales": True,
        "create_sales": True,
        "edit_sales": True,
        "edit_prices": True,
        "view_installments": True,
        "edit_installments": True,
        "view_payments": True,
        "record_payments": True,
        "view_financial": True,
        "view_profit": True,
        "manage_users": True,
        "view_workers": True,
        "view_messages": True,
        "view_audit_logs": True,
    },
    "Manager": {
        "view_dashboard": True,
        "view_land": True,
        "edit_land": True,
        "delete_land": False,
        "view_clients": True,
        "edit_clients": True,
        "delete_clients": False,
        "view_sales": True,
        "create_sales": True,
        "edit_sales": True,
        "edit_prices": True,
        "view_installments": True,
        "edit_installments": True,
        "view_payments": True,
        "record_payments": True,
        "view_financial": True,
        "view_profit": False,
        "manage_users": False,
        "view_workers": True,
        "view_messages": True,
        "view_audit_logs": True,
    },
    "FieldWorker": {
        "view_dashboard": True,
        "view_land": True,
        "edit_land": False,
        "delete_land": False,
        "view_clients": True,
        "edit_clients": True,
        "delete_clients": False,
        "view_sales": True,
        "create_sales": True,
        "edit_sales": True,
        "edit_prices": False,
        "view_installments": True,
        "edit_installments": True,
        "view_payments": True,
        "record_payments": True,
        "view_financial": True,
        "view_profit": False,
        "manage_users": False,
        "view_workers": False,
        "view_messages": True,
        "view_audit_logs": False,
    },
}


@dataclass(frozen=True)
class RoleDefinition:
    role: Role
    permissions: Mapping[Permission, bool]

    def allows(self, permission: Permission) -> bool:
        return bool(self.permissions.get(permission, False))


def build_role_definition(role: Role, raw_permissions: Mapping[str, Any]) -> RoleDefinition:
    """Normalize a ``{actionName: bool}`` map; unparseable keys are dropped with a warning."""
    normalized: Dict[Permission, bool] = {}
    for action_name, granted in (raw_permissions or {}).items():
        permission = parse_action_name(action_name)
        if permission is None:
            logger.warning(f"Ignoring unknown action '{action_name}' in role {role.value}")
            continue
        normalized[permission] = granted is True or str(granted).lower() == "true"
    return RoleDefinition(role=role, permissions=MappingProxyType(normalized))


class RoleRegistry:
    """
    Immutable role → default permission table.

    Built once and handed to the resolver; a reload builds a new registry
    rather than mutating this one.
    """

    def __init__(self, definitions: Iterable[RoleDefinition]):
        self._definitions: Mapping[Role, RoleDefinition] = MappingProxyType(
            {definition.role: definition for definition in definitions}
        )

    @classmethod
    def from_mapping(cls, table: Mapping[str, Mapping[str, Any]]) -> "RoleRegistry":
        definitions = []
        for role_name, raw_permissions in (table or {}).items():
            role = parse_role(role_name)
            if role is None:
                logger.warning(f"Ignoring unknown role '{role_name}' in role table")
                continue
            definitions.append(build_role_definition(role, raw_permissions))
        return cls(definitions)

    @classmethod
    def default(cls) -> "RoleRegistry":
        return cls.from_mapping(DEFAULT_ROLE_PERMISSIONS)

    def get(self, role: Optional[Role]) -> Optional[RoleDefinition]:
        if role is None:
            return None
        return self._definitions.get(role)

    def permission_for(self, role: Optional[Role], permission: Permission) -> bool:
        """Role default for one permission; unknown roles and actions answer False."""
        definition = self.get(role)
        if definition is None:
            return False
        return definition.allows(permission)

    def roles(self):
        return tuple(self._definitions)

    def __contains__(self, role) -> bool:
        return role in self._definitions
