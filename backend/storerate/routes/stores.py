from flask import Blueprint, request, abort, g
from sqlalchemy import select, func, delete
from sqlalchemy.exc import IntegrityError
from storerate import get_db
from storerate.models.authz import User
from storerate.models.store import Store
from storerate.models.rating import Rating
from storerate.constants.permissions import P, Role, ResourceType, EVENT_STORE_CREATE, EVENT_STORE_DELETE
from storerate.config.pagination import normalize_pagination
from storerate.decorators.auth import (
    require_permission, require_ownership, require_admin_or_store_owner, require_store_owner,
)
from storerate.services.policy import filter_store_data
from storerate.services.audit import record_event
from storerate.utils.validation import (
    json_body, query_text, require_fields, require_text, optional_text, require_int, validate_email,
)

stores_bp = Blueprint('stores', __name__)

DUPLICATE_EMAIL = 'Store with this email already exists'


def _store_json(store: Store, avg, count):
    data = store.to_dict()
    data['average_rating'] = round(float(avg), 2) if avg is not None else None
    data['total_ratings'] = int(count or 0)
    return data


def _rated_stores():
    return (
        select(Store, func.avg(Rating.rating), func.count(Rating.id))
        .outerjoin(Rating, Rating.store_id == Store.id)
        .group_by(Store.id)
    )


def _commit_or_duplicate(session):
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(400, description=DUPLICATE_EMAIL)


@stores_bp.get('')
@require_permission(P.STORE_READ)
def list_stores():
    session = get_db()
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    stmt = _rated_stores()
    search = query_text('search')
    if search:
        stmt = stmt.where(Store.name.ilike(f'%{search}%') | Store.address.ilike(f'%{search}%'))
    total = session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = session.execute(stmt.order_by(Store.id.asc()).offset(offset).limit(limit)).all()
    return {
        'success': True,
        'data': [filter_store_data(g.actor, _store_json(s, avg, cnt)) for s, avg, cnt in rows],
        'pagination': {'total': total, 'limit': limit, 'offset': offset, 'returned': len(rows)},
    }


@stores_bp.get('/mine')
@require_store_owner
def my_stores():
    rows = get_db().execute(
        select(Store, func.avg(Rating.rating), func.count(Rating.id), func.count(func.distinct(Rating.user_id)))
        .outerjoin(Rating, Rating.store_id == Store.id)
        .where(Store.owner_id == g.actor.id)
        .group_by(Store.id)
        .order_by(Store.id.desc())
    ).all()
    stores = []
    for store, avg, count, raters in rows:
        data = _store_json(store, avg, count)
        # unrated stores report 0 here, as on the owner dashboard
        data['average_rating'] = data['average_rating'] or 0
        data['total_rating_users'] = int(raters or 0)
        stores.append(data)
    return {'success': True, 'data': {'stores': stores}}


@stores_bp.get('/mine/ratings')
@require_store_owner
def my_store_ratings():
    rows = get_db().execute(
        select(Rating, User.name, User.email, Store.name)
        .join(Store, Store.id == Rating.store_id)
        .join(User, User.id == Rating.user_id)
        .where(Store.owner_id == g.actor.id)
        .order_by(Rating.id.desc())
    ).all()
    ratings = [
        {**r.to_dict(), 'user_name': user_name, 'user_email': user_email, 'store_name': store_name}
        for r, user_name, user_email, store_name in rows
    ]
    return {'success': True, 'data': {'ratings': ratings, 'total': len(ratings)}}


@stores_bp.get('/<int:store_id>')
@require_permission(P.STORE_READ)
def get_store(store_id: int):
    row = get_db().execute(_rated_stores().where(Store.id == store_id)).first()
    if not row:
        abort(404, description='Store not found')
    store, avg, cnt = row
    return {'success': True, 'data': filter_store_data(g.actor, _store_json(store, avg, cnt))}


@stores_bp.post('')
@require_permission(P.STORE_CREATE)
def create_store():
    data = json_body()
    require_fields(data, ('name', 'email'))
    name = require_text(data, 'name')
    session = get_db()
    owner_id = require_int(data, 'owner_id', required=False)
    if owner_id is not None:
        owner = session.execute(select(User).where(User.id == owner_id)).scalar_one_or_none()
        if not owner or owner.role != Role.STORE_OWNER.value:
            abort(400, description='owner_id must reference a store owner')
    store = Store(name=name, email=validate_email(data['email']), address=optional_text(data, 'address'),
                  owner_id=owner_id)
    session.add(store)
    _commit_or_duplicate(session)
    record_event(EVENT_STORE_CREATE, g.actor.id, {'owner_id': owner_id}, actor_role=g.actor.role.value,
                 resource_type=ResourceType.STORE.value, resource_id=str(store.id), granted=True)
    return {'success': True, 'data': filter_store_data(g.actor, _store_json(store, None, 0))}, 201


@stores_bp.put('/<int:store_id>')
@require_ownership(ResourceType.STORE)
def update_store(store_id: int):
    data = json_body()
    session = get_db()
    store = session.execute(select(Store).where(Store.id == store_id)).scalar_one_or_none()
    if not store:
        abort(404, description='Store not found')
    if 'name' in data:
        store.name = require_text(data, 'name')
    if 'address' in data:
        store.address = optional_text(data, 'address')
    if 'email' in data:
        store.email = validate_email(data['email'])
    _commit_or_duplicate(session)
    return {'success': True, 'data': filter_store_data(g.actor, store.to_dict())}


@stores_bp.delete('/<int:store_id>')
@require_permission(P.STORE_DELETE_ANY)
def delete_store(store_id: int):
    session = get_db()
    store = session.execute(select(Store).where(Store.id == store_id)).scalar_one_or_none()
    if not store:
        abort(404, description='Store not found')
    session.execute(delete(Rating).where(Rating.store_id == store_id))
    session.delete(store)
    session.commit()
    record_event(EVENT_STORE_DELETE, g.actor.id, {}, actor_role=g.actor.role.value,
                 resource_type=ResourceType.STORE.value, resource_id=str(store_id), granted=True)
    return {'success': True, 'message': 'Store deleted'}


@stores_bp.get('/<int:store_id>/ratings')
@require_admin_or_store_owner
@require_ownership(ResourceType.STORE)
def store_ratings(store_id: int):
    session = get_db()
    rows = session.execute(
        select(Rating, User.name, User.email)
        .join(User, User.id == Rating.user_id)
        .where(Rating.store_id == store_id)
        .order_by(Rating.id.desc())
    ).all()
    return {
        'success': True,
        'data': [{**r.to_dict(), 'user_name': name, 'user_email': email} for r, name, email in rows],
    }
