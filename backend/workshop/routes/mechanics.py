from __future__ import annotations
from flask import Blueprint, request
from sqlalchemy import select
from workshop import get_db
from workshop.decorators.auth import require_permissions
from workshop.decorators.audit import audit_log
from workshop.errors import ConflictError, NotFoundError, ValidationError
from workshop.models.mechanic import Mechanic
from workshop.models.user import User
from workshop.models.work_order import WorkOrder
from workshop.serializers import mechanic_json, order_json
from workshop.services.cache import cache
from workshop.services.policy import current_user_id
from workshop.utils.listing import paginated
from workshop.utils.sorting import apply_multi_sort
from workshop.utils.validation import clean_str, clean_int, clean_bool, validate_status

mechanics_bp = Blueprint('mechanics', __name__)

MECHANIC_SORT = {
    'first_name': Mechanic.first_name,
    'last_name_paternal': Mechanic.last_name_paternal,
    'created_at': Mechanic.created_at,
    'id': Mechanic.id,
}


def _load_mechanic(session, mechanic_id: int, allow_deleted: bool = False) -> Mechanic:
    m = session.get(Mechanic, mechanic_id)
    if not m or (m.is_deleted and not allow_deleted):
        raise NotFoundError('Mechanic not found')
    return m


def mechanic_stats(session, mechanic: Mechanic) -> dict:
    orders = session.execute(select(WorkOrder).where(
        WorkOrder.mechanic_id==mechanic.id, WorkOrder.is_deleted==False  # noqa: E712
    )).scalars().all()
    active = [o for o in orders if o.status in (WorkOrder.STATUS_ASSIGNED, WorkOrder.STATUS_IN_PROGRESS, WorkOrder.STATUS_READY)]
    delivered = [o for o in orders if o.status == WorkOrder.STATUS_DELIVERED]
    hours = [o.repair_time()['total_hours'] for o in delivered if o.repair_time()]
    avg_days = round(sum(hours) / len(hours) / 24, 1) if hours else 0.0
    return {
        'total_orders': len(orders),
        'active_orders': len(active),
        'completed_orders': len(delivered),
        'avg_completion_days': avg_days,
    }


def _mechanic_with_stats(session, m: Mechanic) -> dict:
    body = mechanic_json(m)
    body['stats'] = mechanic_stats(session, m)
    return body


def _clean_profile(data: dict, partial: bool = False) -> dict:
    out = {}
    specs = [
        ('first_name', dict(max_len=100)),
        ('last_name_paternal', dict(max_len=100)),
        ('last_name_maternal', dict(max_len=100, required=False)),
        ('phone', dict(min_len=9, max_len=20)),
    ]
    for name, opts in specs:
        if partial and name not in data:
            continue
        out[name] = clean_str(data.get(name), name, **opts)
    if 'is_active' in data:
        out['is_active'] = clean_bool(data.get('is_active'), 'is_active')
    return out


@mechanics_bp.get('')
@require_permissions('MEC.READ')
def list_mechanics():
    session = get_db()
    q = session.query(Mechanic)
    if request.args.get('include_deleted') != 'true':
        q = q.filter(Mechanic.is_deleted==False)  # noqa: E712
    is_active = request.args.get('is_active')
    if is_active is not None:
        q = q.filter(Mechanic.is_active==(is_active == 'true'))
    q = apply_multi_sort(q, request.args.get('sort'), MECHANIC_SORT, Mechanic.id)
    return paginated(q, lambda m: _mechanic_with_stats(session, m))


@mechanics_bp.get('/<int:mechanic_id>')
@require_permissions('MEC.READ')
def get_mechanic(mechanic_id: int):
    session = get_db()
    return _mechanic_with_stats(session, _load_mechanic(session, mechanic_id))


@mechanics_bp.post('')
@require_permissions('MEC.MANAGE')
@audit_log('MECHANIC.CREATE', module='mechanics', entity='Mechanic', entity_id_key='id', meta_keys=['user_id', 'full_name'])
def create_mechanic():
    session = get_db()
    data = request.json or {}
    user_id = clean_int(data.get('user_id'), 'user_id', min_value=1)
    user = session.get(User, user_id)
    if not user or user.is_deleted:
        raise NotFoundError('User not found')
    if user.role != User.ROLE_MECHANIC:
        raise ValidationError('User must have the mechanic role')
    if session.execute(select(Mechanic.id).where(Mechanic.user_id==user_id)).first():
        raise ConflictError('A mechanic profile already exists for this user')
    m = Mechanic(user_id=user_id, **_clean_profile(data))
    session.add(m)
    session.commit()
    cache.invalidate_mechanics(m.id)
    return mechanic_json(m), 201


def _prefetch_mechanic(mechanic_id):
    m = get_db().get(Mechanic, mechanic_id)
    return mechanic_json(m) if m else {}


@mechanics_bp.put('/<int:mechanic_id>')
@require_permissions('MEC.MANAGE')
@audit_log('MECHANIC.UPDATE', module='mechanics', entity='Mechanic', entity_id_key='id',
           diff_keys=['first_name', 'last_name_paternal', 'last_name_maternal', 'phone', 'is_active'],
           pre_fetch=lambda a, kw: _prefetch_mechanic(kw.get('mechanic_id')))
def update_mechanic(mechanic_id: int):
    session = get_db()
    m = _load_mechanic(session, mechanic_id)
    fields = _clean_profile(request.json or {}, partial=True)
    if not fields:
        raise ValidationError('No updatable fields supplied')
    for k, v in fields.items():
        setattr(m, k, v)
    session.commit()
    cache.invalidate_mechanics(m.id)
    return mechanic_json(m)


@mechanics_bp.delete('/<int:mechanic_id>')
@require_permissions('MEC.MANAGE')
@audit_log('MECHANIC.DELETE', module='mechanics', entity='Mechanic', entity_id_key='id', level='warn')
def delete_mechanic(mechanic_id: int):
    session = get_db()
    m = _load_mechanic(session, mechanic_id)
    active = session.execute(select(WorkOrder.id).where(
        WorkOrder.mechanic_id==m.id, WorkOrder.status!=WorkOrder.STATUS_DELIVERED, WorkOrder.is_deleted==False  # noqa: E712
    )).first()
    if active:
        raise ConflictError('Mechanic has active work orders')
    m.mark_deleted(current_user_id())
    session.commit()
    cache.invalidate_mechanics(m.id)
    return mechanic_json(m)


@mechanics_bp.get('/<int:mechanic_id>/orders')
@require_permissions('MEC.READ')
def mechanic_orders(mechanic_id: int):
    session = get_db()
    m = _load_mechanic(session, mechanic_id, allow_deleted=True)
    q = session.query(WorkOrder).filter(WorkOrder.mechanic_id==m.id, WorkOrder.is_deleted==False)  # noqa: E712
    status = request.args.get('status')
    if status:
        q = q.filter(WorkOrder.status==validate_status(status, WorkOrder.ALL_STATUSES))
    q = q.order_by(WorkOrder.id.desc())
    payload = paginated(q, lambda o: order_json(o, detail=False))
    payload['mechanic'] = mechanic_json(m)
    return payload
