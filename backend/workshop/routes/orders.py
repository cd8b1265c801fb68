from __future__ import annotations
from flask import Blueprint, request
from sqlalchemy import or_
from workshop import get_db
from workshop.decorators.auth import require_permissions
from workshop.models.work_order import WorkOrder
from workshop.serializers import order_json, notification_json
from workshop.services import workflow
from workshop.services.policy import current_user_id, current_mechanic_id, assert_order_access
from workshop.utils.dates import parse_datetime
from workshop.utils.filters import apply_filters
from workshop.utils.listing import paginated
from workshop.utils.sorting import apply_multi_sort
from workshop.utils.validation import clean_str, require_fields

orders_bp = Blueprint('orders', __name__)

ORDER_SORT = {
    'number': WorkOrder.number,
    'status': WorkOrder.status,
    'estimated_cost': WorkOrder.estimated_cost,
    'estimated_delivery': WorkOrder.estimated_delivery,
    'created_at': WorkOrder.created_at,
    'id': WorkOrder.id,
}


def _search(q, term):
    like = f"%{term}%"
    return q.filter(or_(WorkOrder.number.ilike(like), WorkOrder.vehicle_plate.ilike(like)))


ORDER_FILTERS = {
    'status': {
        'op': lambda q, v: q.filter(WorkOrder.status==v),
        'validate': lambda v: v in WorkOrder.ALL_STATUSES,
    },
    'mechanic_id': {'op': lambda q, v: q.filter(WorkOrder.mechanic_id==v), 'coerce': int},
    'client_id': {'op': lambda q, v: q.filter(WorkOrder.client_id==v), 'coerce': int},
    'start_date': {'op': lambda q, v: q.filter(WorkOrder.created_at >= v), 'coerce': parse_datetime},
    'end_date': {'op': lambda q, v: q.filter(WorkOrder.created_at <= v), 'coerce': parse_datetime},
    'search': {'op': _search},
}


def _load_order(order_id: int) -> WorkOrder:
    order = workflow.get_order(get_db(), order_id)
    assert_order_access(order)
    return order


@orders_bp.get('')
@require_permissions('ORD.READ')
def list_orders():
    session = get_db()
    q = session.query(WorkOrder).filter(WorkOrder.is_deleted==False)  # noqa: E712
    mech_id = current_mechanic_id()
    if mech_id is not None:
        q = q.filter(WorkOrder.mechanic_id==mech_id)
    q = apply_filters(q, ORDER_FILTERS, request.args)
    q = apply_multi_sort(q, request.args.get('sort'), ORDER_SORT, WorkOrder.id)
    return paginated(q, lambda o: order_json(o, detail=False))


@orders_bp.get('/<int:order_id>')
@require_permissions('ORD.READ')
def get_order(order_id: int):
    return order_json(_load_order(order_id))


@orders_bp.put('/<int:order_id>')
@require_permissions('ORD.UPDATE')
def update_order(order_id: int):
    order = _load_order(order_id)
    workflow.update_order_fields(get_db(), order, request.json or {}, current_user_id())
    return order_json(order)


@orders_bp.put('/<int:order_id>/status')
@require_permissions('ORD.STATUS')
def change_order_status(order_id: int):
    data = request.json or {}
    require_fields(data, 'status')
    order = _load_order(order_id)
    target = clean_str(data.get('status'), 'status', max_len=30)
    result = workflow.change_status(get_db(), order, target, current_user_id(), data.get('note'))
    notif = result['notification']
    return {
        'order': order_json(order),
        'previous_status': result['previous_status'],
        'email_sent': bool(notif is not None and notif.status == notif.STATUS_SENT),
        'notification': notification_json(notif) if notif is not None else None,
    }


@orders_bp.put('/<int:order_id>/assign')
@require_permissions('ORD.ASSIGN')
def assign_order(order_id: int):
    data = request.json or {}
    require_fields(data, 'mechanic_id')
    order = _load_order(order_id)
    workflow.assign_mechanic(get_db(), order, data.get('mechanic_id'), current_user_id())
    return order_json(order)


@orders_bp.post('/<int:order_id>/notify-ready')
@require_permissions('ORD.STATUS')
def notify_ready(order_id: int):
    order = _load_order(order_id)
    notif = workflow.retry_ready_notification(get_db(), order, current_user_id())
    return {
        'order': order_json(order),
        'email_sent': notif.status == notif.STATUS_SENT,
        'notification': notification_json(notif),
    }


@orders_bp.delete('/<int:order_id>')
@require_permissions('ORD.DELETE')
def delete_order(order_id: int):
    order = _load_order(order_id)
    workflow.delete_order(get_db(), order, current_user_id())
    return order_json(order)

