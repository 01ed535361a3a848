"""Per-request authorization chain.

Each stage is a callable ``stage(ctx) -> Allow | Deny``. ``AuthorizationChain.run`` executes
authentication stages, then enforcement stages, stopping at the first Deny. Every Deny is
recorded as exactly one audit event before the runner returns it; Allow is never audited
here (sensitive actions call the audit log themselves).

Request state machine::

    START -> AUTHENTICATING -> AUTHENTICATED -> AUTHORIZING -> ALLOWED -> HANDLER
    AUTHENTICATING -> UNAUTHENTICATED -> AUDIT_AND_RESPOND
    AUTHORIZING -> DENIED -> AUDIT_AND_RESPOND
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Union

from storerate.constants.permissions import (
    Role, Permission,
    EVENT_ACCESS_DENIED, EVENT_MISSING_TOKEN, EVENT_INVALID_TOKEN, EVENT_EXPIRED_TOKEN,
    EVENT_OWNERSHIP_CHECK_ERROR, EVENT_AUTHENTICATION_ERROR,
)
from storerate.errors import DenialReason, STATUS_FOR_REASON, CredentialError, InfraError
from storerate.services.identity import Actor, ActorDirectory, CredentialVerifier
from storerate.services.ownership import OwnershipResolver
from storerate.services.policy import PermissionRegistry, DEFAULT_REGISTRY

logger = logging.getLogger(__name__)

FORBIDDEN_MESSAGE = 'Insufficient permissions'
RESOURCE_ID_KEYS = ('id', 'store_id', 'rating_id', 'user_id')


class State(str, Enum):
    START = 'START'
    AUTHENTICATING = 'AUTHENTICATING'
    AUTHENTICATED = 'AUTHENTICATED'
    UNAUTHENTICATED = 'UNAUTHENTICATED'
    AUTHORIZING = 'AUTHORIZING'
    ALLOWED = 'ALLOWED'
    DENIED = 'DENIED'
    HANDLER = 'HANDLER'
    AUDIT_AND_RESPOND = 'AUDIT_AND_RESPOND'


@dataclass
class RequestContext:
    headers: Mapping[str, str] = field(default_factory=dict)
    view_args: Mapping[str, Any] = field(default_factory=dict)
    method: str = ''
    path: str = ''
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    actor: Optional[Actor] = None
    permissions: FrozenSet[Permission] = frozenset()
    state: State = State.START
    history: List[State] = field(default_factory=list)

    @classmethod
    def from_request(cls, req, actor: Optional[Actor] = None, permissions: Optional[FrozenSet[Permission]] = None):
        return cls(
            headers=req.headers,
            view_args=req.view_args or {},
            method=req.method,
            path=req.path,
            ip=req.remote_addr,
            user_agent=req.headers.get('User-Agent'),
            actor=actor,
            permissions=permissions if permissions is not None else frozenset(),
        )

    def transition(self, state: State) -> None:
        self.history.append(state)
        self.state = state


@dataclass(frozen=True)
class Allow:
    context: RequestContext


@dataclass(frozen=True)
class Deny:
    reason: DenialReason
    message: str
    event_type: str = EVENT_ACCESS_DENIED
    details: Dict[str, Any] = field(default_factory=dict)
    actor_id: Optional[int] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None

    @property
    def status(self) -> int:
        return STATUS_FOR_REASON[self.reason]


Outcome = Union[Allow, Deny]


class Stage:
    """Base class; subclasses implement __call__."""
    authenticates = False

    def __call__(self, ctx: RequestContext) -> Outcome:  # pragma: no cover - abstract
        raise NotImplementedError


# --- Stage 1 & 2: identity ---

def bearer_token(headers: Mapping[str, str]) -> Optional[str]:
    raw = headers.get('Authorization') if headers else None
    if not raw:
        return None
    parts = raw.split()
    if len(parts) != 2 or parts[0].lower() != 'bearer':
        return None
    return parts[1]


class AuthenticateStage(Stage):
    authenticates = True

    def __init__(self, verifier: CredentialVerifier, directory: ActorDirectory):
        self.verifier = verifier
        self.directory = directory

    def __call__(self, ctx: RequestContext) -> Outcome:
        if ctx.actor is not None:
            # already resolved earlier in this request (stacked decorators)
            return Allow(ctx)
        token = bearer_token(ctx.headers)
        if not token:
            return Deny(DenialReason.UNAUTHENTICATED, 'Access token required', EVENT_MISSING_TOKEN,
                        {'path': ctx.path})
        try:
            cred = self.verifier.verify(token)
        except CredentialError as e:
            if e.expired:
                return Deny(DenialReason.UNAUTHENTICATED, 'Token expired', EVENT_EXPIRED_TOKEN,
                            {'error': str(e), 'path': ctx.path})
            return Deny(DenialReason.UNAUTHENTICATED, 'Invalid token', EVENT_INVALID_TOKEN,
                        {'error': str(e), 'path': ctx.path})
        try:
            actor = self.directory.find(cred.actor_id, cred.role)
        except InfraError as e:
            logger.error('Actor lookup failed for %s: %s', cred.actor_id, e)
            return Deny(DenialReason.INFRA_ERROR, 'Authentication error', EVENT_AUTHENTICATION_ERROR,
                        {'error': str(e)}, actor_id=cred.actor_id)
        if actor is None:
            # deleted user or role changed since the token was issued
            return Deny(DenialReason.UNAUTHENTICATED, 'Invalid token or user not found', EVENT_INVALID_TOKEN,
                        {'reason': 'User not found', 'claimed_role': cred.role, 'path': ctx.path},
                        actor_id=cred.actor_id)
        ctx.actor = actor
        return Allow(ctx)


class AttachPermissionsStage(Stage):
    authenticates = True

    def __init__(self, registry: Optional[PermissionRegistry] = None):
        self.registry = registry or DEFAULT_REGISTRY

    def __call__(self, ctx: RequestContext) -> Outcome:
        if ctx.actor is None:
            return Deny(DenialReason.UNAUTHENTICATED, 'Authentication required', EVENT_MISSING_TOKEN)
        ctx.permissions = self.registry.permissions_for(ctx.actor.role)
        return Allow(ctx)


# --- Stage 3: enforcement ---

class PermissionStage(Stage):
    def __init__(self, permission: str):
        self.permission = Permission(permission)

    def __call__(self, ctx: RequestContext) -> Outcome:
        if self.permission in ctx.permissions:
            return Allow(ctx)
        return Deny(DenialReason.FORBIDDEN, FORBIDDEN_MESSAGE, EVENT_ACCESS_DENIED, {
            'permission': str(self.permission),
            'userRole': ctx.actor.role.value if ctx.actor else None,
            'path': ctx.path,
        })


class AnyPermissionStage(Stage):
    def __init__(self, *permissions: str):
        self.permissions = tuple(Permission(p) for p in permissions)

    def __call__(self, ctx: RequestContext) -> Outcome:
        if any(p in ctx.permissions for p in self.permissions):
            return Allow(ctx)
        return Deny(DenialReason.FORBIDDEN, FORBIDDEN_MESSAGE, EVENT_ACCESS_DENIED, {
            'anyOf': [str(p) for p in self.permissions],
            'userRole': ctx.actor.role.value if ctx.actor else None,
            'path': ctx.path,
        })


class OwnershipStage(Stage):
    """Resource-instance check. Not-found and not-owner both surface as the same 403."""

    def __init__(self, resource_type, resolver: OwnershipResolver, id_keys: Sequence[str] = RESOURCE_ID_KEYS):
        self.resource_type = resource_type
        self.resolver = resolver
        self.id_keys = tuple(id_keys)

    def _resource_id(self, ctx: RequestContext):
        for key in self.id_keys:
            if ctx.view_args.get(key) is not None:
                return ctx.view_args[key]
        return None

    def __call__(self, ctx: RequestContext) -> Outcome:
        actor = ctx.actor
        if actor is not None and actor.role is Role.SYSTEM_ADMIN:
            return Allow(ctx)
        rtype = getattr(self.resource_type, 'value', self.resource_type)
        resource_id = self._resource_id(ctx)
        rid = str(resource_id) if resource_id is not None else None
        if actor is None:
            return Deny(DenialReason.UNAUTHENTICATED, 'Authentication required', EVENT_MISSING_TOKEN,
                        resource_type=rtype, resource_id=rid)
        try:
            owned = self.resolver.owns(self.resource_type, resource_id, actor.id)
        except InfraError as e:
            return Deny(DenialReason.INFRA_ERROR, 'Error checking resource ownership', EVENT_OWNERSHIP_CHECK_ERROR,
                        {'error': str(e), 'path': ctx.path}, resource_type=rtype, resource_id=rid)
        if owned:
            return Allow(ctx)
        return Deny(DenialReason.FORBIDDEN, FORBIDDEN_MESSAGE, EVENT_ACCESS_DENIED, {
            'reason': f'{rtype} ownership validation failed',
            'path': ctx.path,
        }, resource_type=rtype, resource_id=rid)


class RoleAllowListStage(Stage):
    """Legacy literal role match; no permission semantics."""

    def __init__(self, *roles):
        self.roles = frozenset(Role(r) for r in roles)

    def __call__(self, ctx: RequestContext) -> Outcome:
        if ctx.actor is not None and ctx.actor.role in self.roles:
            return Allow(ctx)
        return Deny(DenialReason.FORBIDDEN, FORBIDDEN_MESSAGE, EVENT_ACCESS_DENIED, {
            'reason': 'role not allowed',
            'allowed': sorted(r.value for r in self.roles),
            'userRole': ctx.actor.role.value if ctx.actor else None,
            'path': ctx.path,
        })


# --- Runner ---

class AuthorizationChain:
    def __init__(self, stages: Iterable[Stage], audit=None):
        self.stages = list(stages)
        seen_enforcement = False
        for stage in self.stages:
            if stage.authenticates and seen_enforcement:
                raise ValueError('authentication stages must precede enforcement stages')
            seen_enforcement = seen_enforcement or not stage.authenticates
        self.audit = audit

    def run(self, ctx: RequestContext) -> Outcome:
        ctx.transition(State.AUTHENTICATING)
        authn = [s for s in self.stages if s.authenticates]
        authz = [s for s in self.stages if not s.authenticates]
        for stage in authn:
            outcome = stage(ctx)
            if isinstance(outcome, Deny):
                ctx.transition(State.UNAUTHENTICATED)
                return self._respond(ctx, outcome)
        ctx.transition(State.AUTHENTICATED)
        ctx.transition(State.AUTHORIZING)
        for stage in authz:
            outcome = stage(ctx)
            if isinstance(outcome, Deny):
                ctx.transition(State.DENIED)
                return self._respond(ctx, outcome)
        ctx.transition(State.ALLOWED)
        ctx.transition(State.HANDLER)
        return Allow(ctx)

    def _respond(self, ctx: RequestContext, deny: Deny) -> Deny:
        if self.audit is not None:
            actor_id = deny.actor_id if deny.actor_id is not None else (ctx.actor.id if ctx.actor else None)
            self.audit.record(
                deny.event_type,
                actor_id,
                {**deny.details, 'method': ctx.method},
                actor_role=ctx.actor.role.value if ctx.actor else None,
                resource_type=deny.resource_type,
                resource_id=deny.resource_id,
                granted=False,
                ip=ctx.ip,
                user_agent=ctx.user_agent,
            )
        ctx.transition(State.AUDIT_AND_RESPOND)
        return deny


@dataclass(frozen=True)
class AuthzServices:
    """Collaborators the chain needs, built once in create_app and stored on app.extensions."""
    registry: PermissionRegistry
    verifier: CredentialVerifier
    directory: ActorDirectory
    resolver: OwnershipResolver
    audit: Any = None

    def chain(self, *enforcement: Stage) -> AuthorizationChain:
        stages: List[Stage] = [AuthenticateStage(self.verifier, self.directory), AttachPermissionsStage(self.registry)]
        stages.extend(enforcement)
        return AuthorizationChain(stages, audit=self.audit)
