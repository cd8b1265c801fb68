from __future__ import annotations
from datetime import timedelta
from flask import Blueprint
from sqlalchemy import select, func
from workshop import get_db
from workshop.decorators.auth import require_permissions
from workshop.models.client import Client
from workshop.models.mechanic import Mechanic
from workshop.models.quote import Quote
from workshop.models.work_order import WorkOrder
from workshop.routes.mechanics import mechanic_stats
from workshop.services.cache import cache, cache_key
from workshop.utils.dates import utcnow

dashboard_bp = Blueprint('dashboard', __name__)

STATS_TTL = 300
RECENT_DAYS = 30


def _count(session, model, *criteria) -> int:
    return session.execute(select(func.count(model.id)).where(model.is_deleted==False, *criteria)).scalar_one()  # noqa: E712


def _status_counts(session, model, statuses) -> dict:
    rows = session.execute(
        select(model.status, func.count(model.id)).where(model.is_deleted==False).group_by(model.status)  # noqa: E712
    ).all()
    found = {s: int(n) for s, n in rows}
    out = {s: found.get(s, 0) for s in statuses}
    out['total'] = sum(found.values())
    return out


def gather_stats(session) -> dict:
    since = utcnow() - timedelta(days=RECENT_DAYS)
    revenue_total, delivered = session.execute(
        select(func.coalesce(func.sum(WorkOrder.final_cost), 0), func.count(WorkOrder.id)).where(
            WorkOrder.is_deleted==False,  # noqa: E712
            WorkOrder.status==WorkOrder.STATUS_DELIVERED,
            WorkOrder.final_cost.is_not(None),
        )
    ).one()
    revenue_total = int(revenue_total or 0)
    return {
        'clients': {
            'total': _count(session, Client),
            'new_last_30_days': _count(session, Client, Client.created_at >= since),
        },
        'quotes': _status_counts(session, Quote, Quote.ALL_STATUSES),
        'orders': _status_counts(session, WorkOrder, WorkOrder.ALL_STATUSES),
        'mechanics': {
            'total': _count(session, Mechanic),
            'active': _count(session, Mechanic, Mechanic.is_active==True),  # noqa: E712
        },
        'revenue': {
            'total': revenue_total,
            'completed_orders': int(delivered),
            'average_order_value': round(revenue_total / delivered) if delivered else 0,
        },
        'recent_activity': {
            'orders_last_30_days': _count(session, WorkOrder, WorkOrder.created_at >= since),
        },
    }


@dashboard_bp.get('/stats')
@require_permissions('DASH.READ')
def general_stats():
    key = cache_key('dashboard', 'stats')
    cached = cache.get(key)
    if cached is not None:
        return dict(cached, cached=True)
    body = gather_stats(get_db())
    cache.set(key, body, STATS_TTL)
    return dict(body, cached=False)


@dashboard_bp.get('/mechanics-stats')
@require_permissions('DASH.READ')
def mechanics_stats():
    session = get_db()
    mechanics = session.execute(select(Mechanic).where(
        Mechanic.is_deleted==False, Mechanic.is_active==True  # noqa: E712
    ).order_by(Mechanic.id)).scalars().all()
    rows = []
    for m in mechanics:
        stats = mechanic_stats(session, m)
        rows.append({
            'mechanic_id': m.id,
            'name': m.full_name,
            'username': m.user.username if m.user else None,
            **stats,
        })
    return {'data': rows}
