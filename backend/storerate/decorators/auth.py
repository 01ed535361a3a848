from functools import wraps
from flask import abort, current_app, g, request
from storerate.constants.permissions import Role
from storerate.services.pipeline import (
    AuthzServices, Deny, RequestContext, PermissionStage, AnyPermissionStage, OwnershipStage, RoleAllowListStage,
)

EXTENSION_KEY = 'storerate.authz'


def get_authz() -> AuthzServices:
    return current_app.extensions[EXTENSION_KEY]


def _run(build_stages):
    """Run the chain for the current request; abort on denial, otherwise stash actor/permissions on g."""
    services = get_authz()
    ctx = RequestContext.from_request(request, actor=g.get('actor'), permissions=g.get('permissions'))
    outcome = services.chain(*build_stages(services)).run(ctx)
    if isinstance(outcome, Deny):
        abort(outcome.status, description=outcome.message)
    g.actor = ctx.actor
    g.permissions = ctx.permissions
    g.authz_state = ctx.state


def authenticate(req=None):
    """Stage 1+2 only. Returns the Actor or the Deny describing why authentication failed."""
    services = get_authz()
    ctx = RequestContext.from_request(req or request)
    outcome = services.chain().run(ctx)
    if isinstance(outcome, Deny):
        return outcome
    return ctx.actor


def _guard(build_stages):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            _run(build_stages)
            return fn(*args, **kwargs)
        return wrapper
    return outer


def authenticated(fn):
    return _guard(lambda svc: ())(fn)


def require_permission(permission: str):
    stage = PermissionStage(permission)
    return _guard(lambda svc: (stage,))


def require_any_permission(*permissions: str):
    stage = AnyPermissionStage(*permissions)
    return _guard(lambda svc: (stage,))


def require_ownership(resource_type):
    return _guard(lambda svc: (OwnershipStage(resource_type, svc.resolver),))


def require_roles(*roles):
    stage = RoleAllowListStage(*roles)
    return _guard(lambda svc: (stage,))


require_admin = require_roles(Role.SYSTEM_ADMIN)
require_user = require_roles(Role.NORMAL_USER)
require_store_owner = require_roles(Role.STORE_OWNER)
require_admin_or_store_owner = require_roles(Role.SYSTEM_ADMIN, Role.STORE_OWNER)
