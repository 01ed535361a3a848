from flask import Blueprint, g
from sqlalchemy import select, func
from storerate import get_db
from storerate.models.authz import User
from storerate.models.store import Store
from storerate.models.rating import Rating
from storerate.constants.permissions import P
from storerate.decorators.auth import require_permission, require_store_owner

dashboard_bp = Blueprint('dashboard', __name__)


def _count(model) -> int:
    return get_db().execute(select(func.count()).select_from(model)).scalar_one()


@dashboard_bp.get('/admin-stats')
@require_permission(P.SYSTEM_STATS)
def admin_stats():
    average = get_db().execute(select(func.avg(Rating.rating))).scalar_one()
    return {
        'success': True,
        'data': {
            'totalUsers': _count(User),
            'totalStores': _count(Store),
            'totalRatings': _count(Rating),
            'averageRating': round(float(average or 0), 2),
        },
    }


@dashboard_bp.get('/owner-stats')
@require_store_owner
def owner_stats():
    """Totals across every store the caller owns; the average is weighted by rating count."""
    rows = get_db().execute(
        select(Store.id, func.sum(Rating.rating), func.count(Rating.id))
        .outerjoin(Rating, Rating.store_id == Store.id)
        .where(Store.owner_id == g.actor.id)
        .group_by(Store.id)
    ).all()
    total_ratings = sum(int(count or 0) for _, _, count in rows)
    rating_sum = sum(int(total or 0) for _, total, _ in rows)
    average = rating_sum / total_ratings if total_ratings else 0
    return {
        'success': True,
        'data': {
            'averageRating': round(average, 2),
            'totalRatings': total_ratings,
            'storeCount': len(rows),
        },
    }
