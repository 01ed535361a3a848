"""Central definitions for roles, permission codes and resource types.
Extend cautiously; never rename codes silently, tokens and audit rows carry them verbatim.
"""
from __future__ import annotations
import re
from enum import Enum
from typing import Dict, List


class Role(str, Enum):
    SYSTEM_ADMIN = 'system_admin'
    STORE_OWNER = 'store_owner'
    NORMAL_USER = 'normal_user'

    @classmethod
    def parse(cls, value) -> 'Role | None':
        """Return the Role for a raw value or None (never raises)."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class ResourceType(str, Enum):
    USER = 'user'
    PROFILE = 'profile'
    STORE = 'store'
    RATING = 'rating'

    @classmethod
    def parse(cls, value) -> 'ResourceType | None':
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value)
        except ValueError:
            return None


_PERMISSION_RE = re.compile(r'^[a-z_]+:[a-z_]+$')


class Permission(str):
    """A `resource:action` capability code. Malformed codes are rejected at construction."""

    __slots__ = ()

    def __new__(cls, code: str):
        if not isinstance(code, str) or not _PERMISSION_RE.match(code):
            raise ValueError(f"Permission code {code!r} must match resource:action")
        return super().__new__(cls, code)

    @property
    def resource(self) -> str:
        return self.split(':', 1)[0]

    @property
    def action(self) -> str:
        return self.split(':', 1)[1]


RESOURCE_ACTIONS: Dict[str, List[str]] = {
    'user': ['create', 'read', 'update', 'delete', 'read_all', 'update_any', 'delete_any'],
    'store': ['create', 'read', 'update', 'delete', 'read_all', 'update_any', 'delete_any', 'manage_own'],
    'rating': ['create', 'read', 'update', 'delete', 'read_all', 'update_any', 'delete_any', 'manage_own'],
    'system': ['stats', 'manage', 'dashboard', 'audit'],
}


class P:
    """Namespace of every known permission."""
    USER_CREATE = Permission('user:create')
    USER_READ = Permission('user:read')
    USER_UPDATE = Permission('user:update')
    USER_DELETE = Permission('user:delete')
    USER_READ_ALL = Permission('user:read_all')
    USER_UPDATE_ANY = Permission('user:update_any')
    USER_DELETE_ANY = Permission('user:delete_any')

    STORE_CREATE = Permission('store:create')
    STORE_READ = Permission('store:read')
    STORE_UPDATE = Permission('store:update')
    STORE_DELETE = Permission('store:delete')
    STORE_READ_ALL = Permission('store:read_all')
    STORE_UPDATE_ANY = Permission('store:update_any')
    STORE_DELETE_ANY = Permission('store:delete_any')
    STORE_MANAGE_OWN = Permission('store:manage_own')

    RATING_CREATE = Permission('rating:create')
    RATING_READ = Permission('rating:read')
    RATING_UPDATE = Permission('rating:update')
    RATING_DELETE = Permission('rating:delete')
    RATING_READ_ALL = Permission('rating:read_all')
    RATING_UPDATE_ANY = Permission('rating:update_any')
    RATING_DELETE_ANY = Permission('rating:delete_any')
    RATING_MANAGE_OWN = Permission('rating:manage_own')

    SYSTEM_STATS = Permission('system:stats')
    SYSTEM_MANAGE = Permission('system:manage')
    SYSTEM_DASHBOARD = Permission('system:dashboard')
    SYSTEM_AUDIT = Permission('system:audit')


def build_all_permission_codes() -> List[Permission]:
    codes: List[Permission] = []
    for resource, actions in RESOURCE_ACTIONS.items():
        for act in actions:
            codes.append(Permission(f"{resource}:{act}"))
    return codes

ALL_PERMISSION_CODES = build_all_permission_codes()

ROLE_PERMISSIONS: Dict[Role, List[Permission]] = {
    Role.SYSTEM_ADMIN: [
        P.USER_CREATE, P.USER_READ, P.USER_UPDATE, P.USER_DELETE,
        P.USER_READ_ALL, P.USER_UPDATE_ANY, P.USER_DELETE_ANY,
        P.STORE_CREATE, P.STORE_READ, P.STORE_UPDATE, P.STORE_DELETE,
        P.STORE_READ_ALL, P.STORE_UPDATE_ANY, P.STORE_DELETE_ANY,
        P.RATING_CREATE, P.RATING_READ, P.RATING_UPDATE, P.RATING_DELETE,
        P.RATING_READ_ALL, P.RATING_UPDATE_ANY, P.RATING_DELETE_ANY,
        P.SYSTEM_STATS, P.SYSTEM_MANAGE, P.SYSTEM_DASHBOARD, P.SYSTEM_AUDIT,
    ],
    # Store owners: own profile, all stores (read), manage their own store and its ratings
    Role.STORE_OWNER: [
        P.USER_READ, P.USER_UPDATE,
        P.STORE_READ, P.STORE_MANAGE_OWN,
        P.RATING_READ, P.RATING_MANAGE_OWN,
    ],
    Role.NORMAL_USER: [
        P.USER_READ, P.USER_UPDATE,
        P.STORE_READ,
        P.RATING_CREATE, P.RATING_READ, P.RATING_MANAGE_OWN,
    ],
}

# Higher number = more authority. Ranks must stay unique.
ROLE_HIERARCHY: Dict[Role, int] = {
    Role.SYSTEM_ADMIN: 3,
    Role.STORE_OWNER: 2,
    Role.NORMAL_USER: 1,
}

# Security / audit event types
EVENT_ACCESS_DENIED = 'ACCESS_DENIED'
EVENT_MISSING_TOKEN = 'MISSING_TOKEN'
EVENT_INVALID_TOKEN = 'INVALID_TOKEN'
EVENT_EXPIRED_TOKEN = 'EXPIRED_TOKEN'
EVENT_PERMISSION_CHECK = 'PERMISSION_CHECK'
EVENT_OWNERSHIP_CHECK_ERROR = 'OWNERSHIP_CHECK_ERROR'
EVENT_AUTHENTICATION_ERROR = 'AUTHENTICATION_ERROR'
EVENT_LOGIN = 'LOGIN'
EVENT_LOGIN_FAILED = 'LOGIN_FAILED'
EVENT_USER_CREATE = 'USER_CREATE'
EVENT_USER_ROLE_CHANGE = 'USER_ROLE_CHANGE'
EVENT_PASSWORD_CHANGE = 'PASSWORD_CHANGE'
EVENT_STORE_CREATE = 'STORE_CREATE'
EVENT_STORE_DELETE = 'STORE_DELETE'
