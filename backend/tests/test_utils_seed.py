"""Test seeding utilities to reduce duplication.

The test database is shared for the whole session, so helpers generate unique emails
and callers should capture ids rather than rely on absolute values.
"""
import uuid
from datetime import timedelta
from typing import Optional
from flask_jwt_extended import create_access_token
from sqlalchemy import select
from storerate import get_db
from storerate.models.authz import User
from storerate.models.store import Store
from storerate.models.rating import Rating
from storerate.models.audit import AuditEventRecord


def unique_email(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}@example.com"


def ensure_user(prefix: str, role: str = 'normal_user', password: str = 'pw') -> User:
    session = get_db()
    u = User(name=prefix, email=unique_email(prefix), role=role, password_hash='')
    u.set_password(password)
    session.add(u); session.commit(); session.refresh(u)
    return u


def ensure_store(name: str, owner_id: Optional[int] = None) -> Store:
    session = get_db()
    s = Store(name=name, email=unique_email(name.lower().replace(' ', '-')), address='1 Main St', owner_id=owner_id)
    session.add(s); session.commit(); session.refresh(s)
    return s


def ensure_rating(user_id: int, store_id: int, value: int = 4) -> Rating:
    session = get_db()
    r = Rating(user_id=user_id, store_id=store_id, rating=value, comment='ok')
    session.add(r); session.commit(); session.refresh(r)
    return r


def login(client, email: str, password: str = 'pw') -> str:
    resp = client.post('/api/auth/login', json={'email': email, 'password': password})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()['data']['token']


def auth_headers(token: str):
    return {'Authorization': f'Bearer {token}'}


def user_headers(client, user: User):
    return auth_headers(login(client, user.email))


def forged_token(app, user_id: int, role: str, expires: Optional[timedelta] = None) -> str:
    """Sign a token directly (bypassing /login) with arbitrary claims."""
    with app.app_context():
        return create_access_token(identity=str(user_id), additional_claims={'role': role},
                                   expires_delta=expires if expires is not None else timedelta(hours=1))


def audit_events(event_type: Optional[str] = None, user_id: Optional[int] = None):
    session = get_db()
    stmt = select(AuditEventRecord)
    if event_type is not None:
        stmt = stmt.where(AuditEventRecord.event_type == event_type)
    if user_id is not None:
        stmt = stmt.where(AuditEventRecord.user_id == user_id)
    rows = session.execute(stmt.order_by(AuditEventRecord.id.asc())).scalars().all()
    session.commit()
    return rows


def set_role(user_id: int, role: str):
    session = get_db()
    user = session.execute(select(User).where(User.id == user_id)).scalar_one()
    user.role = role
    session.commit()


def delete_user(user_id: int):
    session = get_db()
    user = session.execute(select(User).where(User.id == user_id)).scalar_one()
    session.delete(user)
    session.commit()
