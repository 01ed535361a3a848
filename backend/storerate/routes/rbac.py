from flask import Blueprint, g
from storerate.constants.permissions import P
from storerate.decorators.auth import authenticated, require_permission, get_authz
from storerate.services.policy import (
    dashboard_permissions, get_roles, get_permissions, get_role_permissions,
)

rbac_bp = Blueprint('rbac', __name__)


@rbac_bp.get('/me')
@authenticated
def my_permissions():
    actor = g.actor
    return {
        'success': True,
        'data': {
            'user': actor.to_dict(),
            'permissions': sorted(g.permissions),
            'dashboard': dashboard_permissions(actor.role),
        },
    }


@rbac_bp.get('/roles')
@require_permission(P.SYSTEM_MANAGE)
def list_roles():
    registry = get_authz().registry
    return {
        'success': True,
        'data': {
            'roles': [
                {'name': r, 'rank': registry.rank(r), 'permissions': get_role_permissions(r, registry)}
                for r in get_roles()
            ],
            'permissions': get_permissions(registry),
        },
    }
