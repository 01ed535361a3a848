from flask import Blueprint, request, abort, g
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from storerate import get_db
from storerate.models.authz import User
from storerate.constants.permissions import P, ResourceType, EVENT_USER_CREATE, EVENT_USER_ROLE_CHANGE
from storerate.config.pagination import normalize_pagination
from storerate.decorators.auth import require_permission, require_ownership, get_authz
from storerate.services.policy import filter_user_data, can_assign_role, can_manage_user
from storerate.services.audit import record_event, log_permission_check
from storerate.utils.validation import (
    json_body, query_text, require_fields, require_text, optional_text, validate_email, validate_role,
)

users_bp = Blueprint('users', __name__)


def _get_user_or_404(user_id: int) -> User:
    user = get_db().execute(select(User).where(User.id == user_id)).scalar_one_or_none()
    if not user:
        abort(404, description='User not found')
    return user


@users_bp.get('')
@require_permission(P.USER_READ_ALL)
def list_users():
    session = get_db()
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    stmt = select(User)
    role = request.args.get('role')
    if role:
        stmt = stmt.where(User.role == validate_role(role).value)
    name = query_text('name')
    if name:
        stmt = stmt.where(User.name.ilike(f'%{name}%'))
    total = session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = session.execute(stmt.order_by(User.id.asc()).offset(offset).limit(limit)).scalars().all()
    return {
        'success': True,
        'data': [filter_user_data(g.actor, u.to_dict()) for u in rows],
        'pagination': {'total': total, 'limit': limit, 'offset': offset, 'returned': len(rows)},
    }


@users_bp.post('')
@require_permission(P.USER_CREATE)
def create_user():
    data = json_body()
    require_fields(data, ('name', 'email', 'password'))
    name = require_text(data, 'name')
    password = require_text(data, 'password')
    email = validate_email(data['email'])
    role = validate_role(data.get('role', 'normal_user'))
    allowed = can_assign_role(g.actor.role, role, get_authz().registry)
    log_permission_check(g.actor, P.USER_CREATE, f'role:{role.value}', allowed)
    if not allowed:
        abort(403, description='Insufficient permissions')
    session = get_db()
    user = User(name=name, email=email, address=optional_text(data, 'address'), role=role.value, password_hash='')
    user.set_password(password)
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(400, description='User with this email already exists')
    record_event(EVENT_USER_CREATE, g.actor.id, {'created_user_id': user.id, 'role': role.value},
                 actor_role=g.actor.role.value, resource_type=ResourceType.USER.value, resource_id=str(user.id),
                 granted=True)
    return {'success': True, 'message': 'User created successfully', 'data': filter_user_data(g.actor, user.to_dict())}, 201


@users_bp.get('/<int:user_id>')
@require_ownership(ResourceType.USER)
def get_user(user_id: int):
    user = _get_user_or_404(user_id)
    return {'success': True, 'data': filter_user_data(g.actor, user.to_dict())}


@users_bp.put('/<int:user_id>')
@require_ownership(ResourceType.PROFILE)
def update_profile(user_id: int):
    data = json_body()
    user = _get_user_or_404(user_id)
    if 'name' in data:
        user.name = require_text(data, 'name')
    if 'address' in data:
        user.address = optional_text(data, 'address')
    get_db().commit()
    return {'success': True, 'message': 'Profile updated successfully', 'data': filter_user_data(g.actor, user.to_dict())}


@users_bp.put('/<int:user_id>/role')
@require_permission(P.USER_UPDATE_ANY)
def change_role(user_id: int):
    data = json_body()
    new_role = validate_role(data.get('role'))
    user = _get_user_or_404(user_id)
    old_role = user.role
    registry = get_authz().registry
    allowed = can_manage_user(g.actor.role, old_role, registry) and can_assign_role(g.actor.role, new_role, registry)
    log_permission_check(g.actor, P.USER_UPDATE_ANY, f'user:{user_id}', allowed)
    if not allowed:
        abort(403, description='Insufficient permissions')
    user.role = new_role.value
    get_db().commit()
    record_event(EVENT_USER_ROLE_CHANGE, g.actor.id, {'from': old_role, 'to': new_role.value},
                 actor_role=g.actor.role.value, resource_type=ResourceType.USER.value, resource_id=str(user_id),
                 granted=True)
    return {'success': True, 'data': {'user_id': user_id, 'role': new_role.value}}
