from __future__ import annotations
"""Work order lifecycle.

Status changes, mechanic assignment, field edits and soft delete all follow
the same shape: validate, stage the mutation, commit once, then run the
best-effort side channels (ready email, audit entry, cache invalidation).
Side channels never undo or block the committed change.
"""
import logging
from typing import Any, Dict, Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from workshop.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from workshop.models.client import Client
from workshop.models.mechanic import Mechanic
from workshop.models.work_order import WorkOrder, StatusHistory, OrderNotification
from workshop.services.audit import record_audit
from workshop.services.cache import cache
from workshop.services.mailer import mailer
from workshop.utils.dates import utcnow, parse_datetime
from workshop.utils.fsm import TransitionValidator
from workshop.utils.validation import clean_str, clean_int

logger = logging.getLogger(__name__)

NOTE_MAX_LEN = 500
ASSIGNED_NOTE = 'Mechanic assigned'


def _require_mechanic(ctx) -> Optional[str]:
    if not ctx.get('mechanic_id'):
        return 'Must assign a mechanic before starting work'
    return None


ORDER_FSM = TransitionValidator({
    WorkOrder.STATUS_PENDING_ASSIGNMENT: {WorkOrder.STATUS_ASSIGNED},
    WorkOrder.STATUS_ASSIGNED: {WorkOrder.STATUS_IN_PROGRESS, WorkOrder.STATUS_PENDING_ASSIGNMENT},
    WorkOrder.STATUS_IN_PROGRESS: {WorkOrder.STATUS_READY, WorkOrder.STATUS_ASSIGNED},
    WorkOrder.STATUS_READY: {WorkOrder.STATUS_DELIVERED, WorkOrder.STATUS_IN_PROGRESS},
    WorkOrder.STATUS_DELIVERED: set(),
}, guards={WorkOrder.STATUS_IN_PROGRESS: _require_mechanic})


def check_transition(current: str, target: str, mechanic_id: Optional[int]) -> Optional[str]:
    """None when allowed, otherwise the human readable rejection reason."""
    return ORDER_FSM.check(current, target, {'mechanic_id': mechanic_id})


def commit_or_conflict(session, detail: str = 'Record was modified concurrently'):
    try:
        session.commit()
    except (StaleDataError, IntegrityError) as e:
        session.rollback()
        logger.warning('Commit rejected: %s', e)
        raise ConflictError(detail)


def assign_number(entity, prefix: str):
    """Derive the display number from the primary key; needs a prior flush."""
    entity.number = f"{prefix}-{entity.id:04d}"
    return entity.number


def get_order(session, order_id: int, include_deleted: bool = False) -> WorkOrder:
    q = select(WorkOrder).where(WorkOrder.id == order_id)
    if not include_deleted:
        q = q.where(WorkOrder.is_deleted == False)  # noqa: E712
    order = session.execute(q).scalar_one_or_none()
    if not order:
        raise NotFoundError('Work order not found')
    return order


# ---------------- Status changes ---------------- #

def apply_status_change(order: WorkOrder, target: str, actor_id: Optional[int], note: Optional[str] = None) -> StatusHistory:
    """Validate and stage a transition plus its history entry. Does not commit."""
    note = clean_str(note, 'note', max_len=NOTE_MAX_LEN, required=False)
    ORDER_FSM.assert_can_transition(order.status, target, {'mechanic_id': order.mechanic_id})
    now = utcnow()
    entry = StatusHistory(previous_status=order.status, new_status=target, changed_by=actor_id, changed_at=now, note=note)
    order.history.append(entry)
    order.status = target
    if target == WorkOrder.STATUS_DELIVERED:
        order.actual_delivery = now
    return entry


def change_status(session, order: WorkOrder, target: str, actor_id: Optional[int], note: Optional[str] = None) -> Dict[str, Any]:
    """Persist a status change atomically with its history entry.

    Returns {'order', 'previous_status', 'notification'}; `notification` is the
    ready-email outcome when the change entered `listo`.
    """
    previous = order.status
    apply_status_change(order, target, actor_id, note)
    commit_or_conflict(session)
    logger.info('Order %s status %s -> %s by %s', order.number, previous, target, actor_id)
    notification = None
    if target == WorkOrder.STATUS_READY:
        notification = send_ready_notification(session, order)
    record_audit('ORDER.STATUS', 'orders', 'WorkOrder', order.id, {
        'number': order.number, 'from': previous, 'to': target, 'note': note,
    }, actor_id=actor_id)
    cache.invalidate_orders(order.id, order.client_id)
    return {'order': order, 'previous_status': previous, 'notification': notification}


# ---------------- Ready notification ---------------- #

def _record_notification(order: WorkOrder, success: bool, attempts: int, error: Optional[str]) -> OrderNotification:
    now = utcnow()
    notif = OrderNotification(
        type=OrderNotification.TYPE_READY,
        method='email',
        status=OrderNotification.STATUS_SENT if success else OrderNotification.STATUS_FAILED,
        attempts=attempts,
        sent_at=now if success else None,
        error=error,
    )
    order.notifications.append(notif)
    if success:
        order.ready_email_sent = True
        order.ready_email_sent_at = now
    return notif


def send_ready_notification(session, order: WorkOrder) -> Optional[OrderNotification]:
    """Best-effort "ready for pickup" email.

    Skipped once an earlier attempt succeeded. The outcome is recorded in the
    order's notification log; nothing here raises to the caller.
    """
    if order.ready_email_sent:
        logger.info('Ready email for %s already sent; skipping', order.number)
        return None
    client = session.get(Client, order.client_id)
    if not client or not client.email:
        success, attempts, error = False, 0, 'Client has no valid email'
    else:
        try:
            result = mailer.send_ready_notification(order, client)
            success, attempts, error = result.success, result.attempts, result.error
        except Exception as e:
            # template or transport bug: still record the failure
            logger.exception('Ready email for %s raised', order.number)
            success, attempts, error = False, 1, str(e) or e.__class__.__name__
    notif = _record_notification(order, success, attempts, error)
    try:
        session.commit()
    except Exception:
        session.rollback()
        logger.exception('Could not record ready notification for %s', order.number)
        return None
    record_audit(
        'ORDER.READY_EMAIL.SENT' if success else 'ORDER.READY_EMAIL.FAILED', 'email', 'WorkOrder', order.id,
        {'number': order.number, 'attempts': attempts, 'error': error},
        level='info' if success else 'error', actor_id=None,
    )
    return notif


def retry_ready_notification(session, order: WorkOrder, actor_id: Optional[int]) -> OrderNotification:
    """Explicit staff retry after a failed ready email."""
    if order.status != WorkOrder.STATUS_READY:
        raise InvalidTransitionError('Ready notification can only be sent while the order is listo')
    if order.ready_email_sent:
        raise ConflictError('Ready notification was already sent')
    notif = send_ready_notification(session, order)
    if notif is None:
        raise ConflictError('Ready notification could not be recorded')
    cache.invalidate_orders(order.id, order.client_id)
    return notif


# ---------------- Assignment / edits / delete ---------------- #

def assign_mechanic(session, order: WorkOrder, mechanic_id: Any, actor_id: Optional[int]) -> WorkOrder:
    mechanic_id = clean_int(mechanic_id, 'mechanic_id', min_value=1)
    mechanic = session.get(Mechanic, mechanic_id)
    if not mechanic or mechanic.is_deleted:
        raise NotFoundError('Mechanic not found')
    if not mechanic.is_active:
        raise ValidationError('Mechanic is not active')
    if order.status == WorkOrder.STATUS_DELIVERED:
        raise InvalidTransitionError('Cannot reassign a delivered order')
    previous_mechanic = order.mechanic_id
    order.mechanic_id = mechanic.id
    previous_status = order.status
    if order.status == WorkOrder.STATUS_PENDING_ASSIGNMENT:
        apply_status_change(order, WorkOrder.STATUS_ASSIGNED, actor_id, ASSIGNED_NOTE)
    commit_or_conflict(session)
    logger.info('Order %s assigned to mechanic %s', order.number, mechanic.id)
    record_audit('ORDER.ASSIGN', 'orders', 'WorkOrder', order.id, {
        'number': order.number,
        'previous_mechanic_id': previous_mechanic,
        'mechanic_id': mechanic.id,
        'mechanic_name': mechanic.full_name,
        'from': previous_status,
        'to': order.status,
    }, actor_id=actor_id)
    cache.invalidate_orders(order.id, order.client_id)
    cache.invalidate_mechanics(mechanic.id)
    return order


def update_order_fields(session, order: WorkOrder, data: Dict[str, Any], actor_id: Optional[int]) -> WorkOrder:
    """Edit the free-form fields; status and mechanic have their own operations."""
    if order.status == WorkOrder.STATUS_DELIVERED:
        raise InvalidTransitionError('Delivered orders cannot be edited')
    changed = []
    if 'additional_notes' in data:
        order.additional_notes = clean_str(data.get('additional_notes'), 'additional_notes', max_len=2000, required=False)
        changed.append('additional_notes')
    if 'additional_work' in data:
        order.additional_work = clean_str(data.get('additional_work'), 'additional_work', max_len=2000, required=False)
        changed.append('additional_work')
    if 'final_cost' in data:
        order.final_cost = clean_int(data.get('final_cost'), 'final_cost', min_value=0, required=False)
        changed.append('final_cost')
    if 'estimated_delivery' in data:
        try:
            order.estimated_delivery = parse_datetime(data.get('estimated_delivery'))
        except ValueError:
            raise ValidationError('estimated_delivery invalid')
        changed.append('estimated_delivery')
    if not changed:
        raise ValidationError('No updatable fields supplied')
    commit_or_conflict(session)
    record_audit('ORDER.UPDATE', 'orders', 'WorkOrder', order.id, {'number': order.number, 'fields': changed}, actor_id=actor_id)
    cache.invalidate_orders(order.id, order.client_id)
    return order


def delete_order(session, order: WorkOrder, actor_id: Optional[int]) -> WorkOrder:
    if order.is_deleted:
        raise NotFoundError('Work order not found')
    if not order.can_delete():
        raise ConflictError('Only orders pending assignment can be deleted')
    order.mark_deleted(actor_id)
    commit_or_conflict(session)
    record_audit('ORDER.DELETE', 'orders', 'WorkOrder', order.id, {'number': order.number}, level='warn', actor_id=actor_id)
    cache.invalidate_orders(order.id, order.client_id)
    return order


# ---------------- Creation (called from quote approval) ---------------- #

def build_order_from_quote(session, quote, actor_id: Optional[int]) -> WorkOrder:
    """Stage a new order snapshotting the quote. Does not commit."""
    order = WorkOrder(
        quote_id=quote.id,
        client_id=quote.client_id,
        vehicle_brand=quote.vehicle_brand,
        vehicle_model=quote.vehicle_model,
        vehicle_year=quote.vehicle_year,
        vehicle_plate=quote.vehicle_plate,
        vehicle_mileage=quote.vehicle_mileage,
        work_description=f"{quote.description}\n\nTrabajo propuesto:\n{quote.proposed_work}",
        estimated_cost=quote.estimated_cost,
        status=WorkOrder.STATUS_PENDING_ASSIGNMENT,
        created_by=actor_id,
    )
    order.history.append(StatusHistory(
        previous_status=None,
        new_status=WorkOrder.STATUS_PENDING_ASSIGNMENT,
        changed_by=actor_id,
        changed_at=utcnow(),
        note=f"Created from quote {quote.number}",
    ))
    session.add(order)
    session.flush()
    assign_number(order, WorkOrder.NUMBER_PREFIX)
    quote.work_order_id = order.id
    return order


__all__ = [
    'ORDER_FSM', 'check_transition', 'apply_status_change', 'change_status', 'send_ready_notification',
    'retry_ready_notification', 'assign_mechanic', 'update_order_fields', 'delete_order',
    'build_order_from_quote', 'get_order', 'commit_or_conflict', 'assign_number',
]
