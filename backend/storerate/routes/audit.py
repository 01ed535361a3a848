from flask import Blueprint, request, abort
from sqlalchemy import select, func
from storerate import get_db
from storerate.models.audit import AuditEventRecord
from storerate.constants.permissions import P
from storerate.config.pagination import normalize_pagination
from storerate.decorators.auth import require_permission

audit_bp = Blueprint('audit', __name__)


@audit_bp.get('/events')
@require_permission(P.SYSTEM_AUDIT)
def list_events():
    session = get_db()
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    stmt = select(AuditEventRecord)
    event_type = request.args.get('event_type')
    if event_type:
        stmt = stmt.where(AuditEventRecord.event_type == event_type)
    user_id = request.args.get('user_id')
    if user_id:
        try:
            stmt = stmt.where(AuditEventRecord.user_id == int(user_id))
        except ValueError:
            abort(400, description='user_id must be an integer')
    total = session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = session.execute(stmt.order_by(AuditEventRecord.id.desc()).offset(offset).limit(limit)).scalars().all()
    return {
        'success': True,
        'data': [r.to_dict() for r in rows],
        'pagination': {'total': total, 'limit': limit, 'offset': offset, 'returned': len(rows)},
    }
