from flask import Blueprint, abort, g
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from storerate import get_db
from storerate.models.store import Store
from storerate.models.rating import Rating
from storerate.constants.permissions import P, ResourceType
from storerate.decorators.auth import require_permission, require_ownership, require_user
from storerate.utils.validation import json_body, require_fields, require_int, optional_text, validate_rating_value

ratings_bp = Blueprint('ratings', __name__)


def _get_rating_or_404(rating_id: int) -> Rating:
    rating = get_db().execute(select(Rating).where(Rating.id == rating_id)).scalar_one_or_none()
    if not rating:
        abort(404, description='Rating not found')
    return rating


@ratings_bp.post('')
@require_permission(P.RATING_CREATE)
def create_rating():
    data = json_body()
    require_fields(data, ('store_id', 'rating'))
    value = validate_rating_value(data['rating'], Rating.MIN_VALUE, Rating.MAX_VALUE)
    store_id = require_int(data, 'store_id')
    session = get_db()
    store = session.execute(select(Store).where(Store.id == store_id)).scalar_one_or_none()
    if not store:
        abort(404, description='Store not found')
    rating = Rating(user_id=g.actor.id, store_id=store.id, rating=value, comment=optional_text(data, 'comment'))
    session.add(rating)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(400, description='You have already rated this store')
    return {'success': True, 'message': 'Rating submitted successfully', 'data': rating.to_dict()}, 201


@ratings_bp.get('/mine')
@require_user
def my_ratings():
    rows = get_db().execute(
        select(Rating, Store.name)
        .join(Store, Store.id == Rating.store_id)
        .where(Rating.user_id == g.actor.id)
        .order_by(Rating.id.desc())
    ).all()
    return {'success': True, 'data': [{**r.to_dict(), 'store_name': name} for r, name in rows]}


@ratings_bp.put('/<int:rating_id>')
@require_ownership(ResourceType.RATING)
def update_rating(rating_id: int):
    data = json_body()
    rating = _get_rating_or_404(rating_id)
    if 'rating' in data:
        rating.rating = validate_rating_value(data['rating'], Rating.MIN_VALUE, Rating.MAX_VALUE)
    if 'comment' in data:
        rating.comment = optional_text(data, 'comment')
    get_db().commit()
    return {'success': True, 'message': 'Rating updated successfully', 'data': rating.to_dict()}


@ratings_bp.delete('/<int:rating_id>')
@require_ownership(ResourceType.RATING)
def delete_rating(rating_id: int):
    session = get_db()
    rating = _get_rating_or_404(rating_id)
    session.delete(rating)
    session.commit()
    return {'success': True, 'message': 'Rating deleted'}
