from flask import Blueprint, request, abort, g
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from storerate import get_db
from storerate.models.authz import User
from storerate.constants.permissions import Role, EVENT_LOGIN, EVENT_LOGIN_FAILED, EVENT_PASSWORD_CHANGE
from storerate.decorators.auth import authenticate, authenticated
from storerate.services.identity import issue_token
from storerate.services.audit import record_event
from storerate.services.pipeline import Deny
from storerate.utils.validation import json_body, require_fields, require_text, optional_text, validate_email

auth_bp = Blueprint('auth', __name__)

MIN_PASSWORD_LENGTH = 6


@auth_bp.post('/register')
def register():
    data = json_body()
    require_fields(data, ('name', 'email', 'password'))
    name = require_text(data, 'name')
    password = require_text(data, 'password')
    email = validate_email(data['email'])
    session = get_db()
    if session.execute(select(User).where(User.email == email)).scalar_one_or_none():
        abort(400, description='User with this email already exists')
    # self-registration always yields the lowest role
    user = User(name=name, email=email, address=optional_text(data, 'address'), role=Role.NORMAL_USER.value,
                password_hash='')
    user.set_password(password)
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(400, description='User with this email already exists')
    return {
        'success': True,
        'message': 'User registered successfully',
        'data': {'user': user.to_dict(), 'token': issue_token(user.id, user.role)},
    }, 201


@auth_bp.post('/login')
def login():
    data = json_body()
    email = data.get('email'); password = data.get('password')
    if not email or not password:
        abort(400, description='email & password required')
    if not isinstance(email, str) or not isinstance(password, str):
        abort(400, description='email & password must be strings')
    session = get_db()
    user = session.execute(select(User).where(User.email == email.strip().lower())).scalar_one_or_none()
    if not user or not user.verify_password(password):
        record_event(EVENT_LOGIN_FAILED, user.id if user else None, {'email': email}, granted=False)
        abort(401, description='Invalid email or password')
    record_event(EVENT_LOGIN, user.id, {}, actor_role=user.role, granted=True)
    return {
        'success': True,
        'message': 'Login successful',
        'data': {'user': user.to_dict(), 'token': issue_token(user.id, user.role)},
    }


@auth_bp.get('/verify')
def verify():
    result = authenticate(request)
    if isinstance(result, Deny):
        abort(result.status, description=result.message)
    token = request.headers.get('Authorization', '').split()[-1]
    return {'success': True, 'data': {'user': result.to_dict(), 'token': token}}


@auth_bp.post('/refresh')
def refresh():
    result = authenticate(request)
    if isinstance(result, Deny):
        abort(result.status, description=result.message)
    # re-issue from the persisted role, not the old claim
    return {'success': True, 'data': {'token': issue_token(result.id, result.role)}}


@auth_bp.put('/password')
@authenticated
def change_password():
    data = json_body()
    require_fields(data, ('currentPassword', 'newPassword'))
    current = require_text(data, 'currentPassword')
    new = require_text(data, 'newPassword')
    if len(new) < MIN_PASSWORD_LENGTH:
        abort(400, description=f'newPassword must be at least {MIN_PASSWORD_LENGTH} characters')
    session = get_db()
    user = session.execute(select(User).where(User.id == g.actor.id)).scalar_one()
    if not user.verify_password(current):
        abort(400, description='Current password is incorrect')
    user.set_password(new)
    session.commit()
    record_event(EVENT_PASSWORD_CHANGE, user.id, {}, actor_role=g.actor.role.value, granted=True)
    return {'success': True, 'message': 'Password updated successfully'}
