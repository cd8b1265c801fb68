from __future__ import annotations
from flask import Blueprint, request
from workshop import get_db
from workshop.decorators.auth import require_permissions
from workshop.models.audit import AuditLog
from workshop.serializers import audit_json
from workshop.utils.dates import parse_datetime
from workshop.utils.filters import apply_filters
from workshop.utils.listing import paginated
from workshop.utils.sorting import apply_multi_sort

logs_bp = Blueprint('logs', __name__)

LOG_SORT = {
    'created_at': AuditLog.created_at,
    'level': AuditLog.level,
    'action': AuditLog.action,
    'id': AuditLog.id,
}

LOG_FILTERS = {
    'level': {
        'op': lambda q, v: q.filter(AuditLog.level==v),
        'validate': lambda v: v in AuditLog.ALL_LEVELS,
    },
    'module': {'op': lambda q, v: q.filter(AuditLog.module==v)},
    'action': {'op': lambda q, v: q.filter(AuditLog.action==v)},
    'entity': {'op': lambda q, v: q.filter(AuditLog.entity==v)},
    'entity_id': {'op': lambda q, v: q.filter(AuditLog.entity_id==str(v))},
    'actor_user_id': {'op': lambda q, v: q.filter(AuditLog.actor_user_id==v), 'coerce': int},
    'start_date': {'op': lambda q, v: q.filter(AuditLog.created_at >= v), 'coerce': parse_datetime},
    'end_date': {'op': lambda q, v: q.filter(AuditLog.created_at <= v), 'coerce': parse_datetime},
}


@logs_bp.get('')
@require_permissions('LOG.READ')
def list_logs():
    q = get_db().query(AuditLog)
    q = apply_filters(q, LOG_FILTERS, request.args)
    q = apply_multi_sort(q, request.args.get('sort'), LOG_SORT, AuditLog.id)
    return paginated(q, audit_json)
