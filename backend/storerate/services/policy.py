from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional
from storerate.constants.permissions import (
    Role, ResourceType, Permission, ROLE_PERMISSIONS, ROLE_HIERARCHY, ALL_PERMISSION_CODES,
)

EMPTY: FrozenSet[Permission] = frozenset()


@dataclass(frozen=True)
class PermissionRegistry:
    """Read-only role -> permission set and role -> rank lookups, built once per process."""
    role_permissions: Mapping[Role, FrozenSet[Permission]]
    hierarchy: Mapping[Role, int]
    known_permissions: FrozenSet[Permission] = field(default=EMPTY)

    @classmethod
    def build(cls, role_permissions: Mapping[Role, Iterable[str]], hierarchy: Mapping[Role, int],
              known_permissions: Iterable[str] = ()) -> 'PermissionRegistry':
        perms = {Role(r): frozenset(Permission(c) for c in codes) for r, codes in role_permissions.items()}
        ranks = {Role(r): int(v) for r, v in hierarchy.items()}
        if len(set(ranks.values())) != len(ranks):
            raise ValueError('Role hierarchy ranks must be unique')
        if any(v <= 0 for v in ranks.values()):
            raise ValueError('Role hierarchy ranks must be positive')
        missing = set(Role) - set(perms)
        if missing:
            raise ValueError(f'Roles without a permission entry: {sorted(m.value for m in missing)}')
        known = frozenset(Permission(c) for c in known_permissions)
        return cls(MappingProxyType(perms), MappingProxyType(ranks), known)

    def permissions_for(self, role) -> FrozenSet[Permission]:
        parsed = Role.parse(role)
        if parsed is None:
            return EMPTY
        return self.role_permissions.get(parsed, EMPTY)

    def rank(self, role) -> Optional[int]:
        parsed = Role.parse(role)
        if parsed is None:
            return None
        return self.hierarchy.get(parsed)


DEFAULT_REGISTRY = PermissionRegistry.build(ROLE_PERMISSIONS, ROLE_HIERARCHY, ALL_PERMISSION_CODES)


def _held(role, registry: Optional[PermissionRegistry]) -> FrozenSet[Permission]:
    return (registry or DEFAULT_REGISTRY).permissions_for(role)


def _contains(held: FrozenSet[Permission], permission) -> bool:
    try:
        return permission in held
    except TypeError:  # unhashable input
        return False


# --- Predicates (pure, total) ---

def has_permission(role, permission, registry: Optional[PermissionRegistry] = None) -> bool:
    return _contains(_held(role, registry), permission)


def has_any_permission(role, permissions, registry: Optional[PermissionRegistry] = None) -> bool:
    held = _held(role, registry)
    try:
        return any(_contains(held, p) for p in permissions)
    except TypeError:
        return False


def has_all_permissions(role, permissions, registry: Optional[PermissionRegistry] = None) -> bool:
    """True iff every permission is held. An empty collection is vacuously True, even for unknown roles."""
    held = _held(role, registry)
    try:
        return all(_contains(held, p) for p in permissions)
    except TypeError:
        return False


def can_manage_user(manager_role, target_role, registry: Optional[PermissionRegistry] = None) -> bool:
    reg = registry or DEFAULT_REGISTRY
    manager_rank = reg.rank(manager_role)
    target_rank = reg.rank(target_role)
    if manager_rank is None or target_rank is None:
        return False
    return manager_rank > target_rank


def can_assign_role(assigner_role, target_role, registry: Optional[PermissionRegistry] = None) -> bool:
    """Only the top-ranked role assigns roles, and only roles the registry ranks."""
    reg = registry or DEFAULT_REGISTRY
    assigner_rank = reg.rank(assigner_role)
    if assigner_rank is None or assigner_rank != max(reg.hierarchy.values()):
        return False
    return reg.rank(target_role) is not None


def can_access_resource_by_ownership(actor_role, actor_id, resource_owner_id, resource_type) -> bool:
    role = Role.parse(actor_role)
    if role is Role.SYSTEM_ADMIN:
        return True
    if actor_id is not None and resource_owner_id is not None and actor_id == resource_owner_id:
        return True
    # Store owners have blanket read on stores they don't own
    if role is Role.STORE_OWNER and ResourceType.parse(resource_type) is ResourceType.STORE:
        return True
    return False


# --- Introspection ---

def get_roles() -> List[str]:
    return [r.value for r in Role]


def get_permissions(registry: Optional[PermissionRegistry] = None) -> List[str]:
    return sorted((registry or DEFAULT_REGISTRY).known_permissions)


def get_role_permissions(role, registry: Optional[PermissionRegistry] = None) -> List[str]:
    return sorted(_held(role, registry))


def dashboard_permissions(role) -> Dict[str, bool]:
    """UI capability flags per role. Unknown roles only get the base profile flags."""
    base = {
        'canViewProfile': True,
        'canEditProfile': True,
        'canChangePassword': True,
    }
    parsed = Role.parse(role)
    if parsed is Role.SYSTEM_ADMIN:
        return {
            **base,
            'canViewDashboard': True,
            'canManageUsers': True,
            'canManageStores': True,
            'canViewAllRatings': True,
            'canViewSystemStats': True,
            'canManageRoles': True,
            'canViewAuditLogs': True,
        }
    if parsed is Role.STORE_OWNER:
        return {
            **base,
            'canViewDashboard': True,
            'canManageOwnStore': True,
            'canViewOwnStoreRatings': True,
            'canViewStoreStats': True,
        }
    if parsed is Role.NORMAL_USER:
        return {
            **base,
            'canViewStores': True,
            'canSubmitRatings': True,
            'canEditOwnRatings': True,
            'canSearchStores': True,
        }
    return base


# --- View-level redaction ---

SENSITIVE_USER_FIELDS = ('password', 'password_hash')


def _actor_fields(actor) -> tuple:
    if isinstance(actor, dict):
        return actor.get('id'), actor.get('role')
    return getattr(actor, 'id', None), getattr(actor, 'role', None)


def filter_user_data(actor, user_data: Dict[str, Any]) -> Dict[str, Any]:
    actor_id, actor_role = _actor_fields(actor)
    safe = {k: v for k, v in user_data.items() if k not in SENSITIVE_USER_FIELDS}
    if Role.parse(actor_role) is Role.SYSTEM_ADMIN:
        return {**safe, 'canEdit': True, 'canDelete': True}
    if actor_id is not None and actor_id == user_data.get('id'):
        return {**safe, 'canEdit': True, 'canDelete': False}
    return {
        'id': user_data.get('id'),
        'name': user_data.get('name'),
        'role': user_data.get('role'),
        'canEdit': False,
        'canDelete': False,
    }


def filter_store_data(actor, store_data: Dict[str, Any]) -> Dict[str, Any]:
    actor_id, actor_role = _actor_fields(actor)
    role = Role.parse(actor_role)
    if role is Role.SYSTEM_ADMIN:
        return {**store_data, 'canEdit': True, 'canDelete': True, 'canManageRatings': True}
    if role is Role.STORE_OWNER and actor_id is not None and actor_id == store_data.get('owner_id'):
        return {**store_data, 'canEdit': True, 'canDelete': False, 'canManageRatings': True}
    return {**store_data, 'canEdit': False, 'canDelete': False, 'canManageRatings': False}
