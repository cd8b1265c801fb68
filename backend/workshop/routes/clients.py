from __future__ import annotations
from flask import Blueprint, request
from sqlalchemy import select, func, or_
from workshop import get_db
from workshop.decorators.auth import require_permissions
from workshop.decorators.audit import audit_log
from workshop.errors import ConflictError, NotFoundError, ValidationError
from workshop.models.client import Client
from workshop.models.quote import Quote
from workshop.models.work_order import WorkOrder
from workshop.serializers import client_json, quote_json, order_json
from workshop.services.cache import cache, cache_key
from workshop.services.policy import current_user_id
from workshop.utils.dates import parse_datetime
from workshop.utils.listing import paginated
from workshop.utils.sorting import apply_multi_sort
from workshop.utils.validation import clean_str, clean_email

clients_bp = Blueprint('clients', __name__)

CLIENT_SORT = {
    'first_name': Client.first_name,
    'last_name_paternal': Client.last_name_paternal,
    'email': Client.email,
    'created_at': Client.created_at,
    'id': Client.id,
}


def _load_client(session, client_id: int, allow_deleted: bool = False) -> Client:
    c = session.get(Client, client_id)
    if not c or (c.is_deleted and not allow_deleted):
        raise NotFoundError('Client not found')
    return c


def _clean_client_fields(data: dict, partial: bool = False) -> dict:
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
    if not partial or 'email' in data:
        out['email'] = clean_email(data.get('email'))
    return out


def _assert_email_free(session, email: str, exclude_id: int = None):
    q = select(Client.id).where(Client.email==email)
    if exclude_id is not None:
        q = q.where(Client.id != exclude_id)
    if session.execute(q).first():
        raise ConflictError('Email already registered for another client')


def delete_block_reason(session, client: Client):
    """Why the client cannot be soft deleted, or None."""
    approved = session.execute(select(Quote.id).where(
        Quote.client_id==client.id, Quote.status==Quote.STATUS_APPROVED, Quote.is_deleted==False  # noqa: E712
    )).first()
    if approved:
        return 'Client has approved quotes'
    active = session.execute(select(WorkOrder.id).where(
        WorkOrder.client_id==client.id, WorkOrder.status!=WorkOrder.STATUS_DELIVERED, WorkOrder.is_deleted==False  # noqa: E712
    )).first()
    if active:
        return 'Client has active work orders'
    return None


def client_stats(session, client: Client) -> dict:
    quotes = session.execute(select(Quote.status, func.count()).where(
        Quote.client_id==client.id, Quote.is_deleted==False  # noqa: E712
    ).group_by(Quote.status)).all()
    orders = session.execute(select(WorkOrder.status, func.count(), func.coalesce(func.sum(WorkOrder.final_cost), 0)).where(
        WorkOrder.client_id==client.id, WorkOrder.is_deleted==False  # noqa: E712
    ).group_by(WorkOrder.status)).all()
    q_counts = {s: n for s, n in quotes}
    o_counts = {s: n for s, n, _ in orders}
    spent = sum(total for s, _, total in orders if s == WorkOrder.STATUS_DELIVERED)
    return {
        'total_quotes': sum(q_counts.values()),
        'approved_quotes': q_counts.get(Quote.STATUS_APPROVED, 0),
        'total_orders': sum(o_counts.values()),
        'completed_orders': o_counts.get(WorkOrder.STATUS_DELIVERED, 0),
        'total_spent': int(spent or 0),
    }


@clients_bp.get('')
@require_permissions('CLI.READ')
def list_clients():
    key = cache_key('clients', 'list', request.query_string.decode() or 'all')
    cached = cache.get(key)
    if cached is not None:
        return cached
    session = get_db()
    q = session.query(Client)
    if request.args.get('include_deleted') != 'true':
        q = q.filter(Client.is_deleted==False)  # noqa: E712
    search = request.args.get('search')
    if search:
        like = f"%{search}%"
        q = q.filter(or_(
            Client.first_name.ilike(like), Client.last_name_paternal.ilike(like),
            Client.last_name_maternal.ilike(like), Client.email.ilike(like),
        ))
    q = apply_multi_sort(q, request.args.get('sort'), CLIENT_SORT, Client.id)
    payload = paginated(q, client_json)
    cache.set(key, payload)
    return payload


@clients_bp.get('/<int:client_id>')
@require_permissions('CLI.READ')
def get_client(client_id: int):
    key = cache_key('client', client_id)
    cached = cache.get(key)
    if cached is not None:
        return cached
    session = get_db()
    c = _load_client(session, client_id)
    body = client_json(c)
    body['stats'] = client_stats(session, c)
    cache.set(key, body)
    return body


@clients_bp.post('')
@require_permissions('CLI.MANAGE')
@audit_log('CLIENT.CREATE', module='clients', entity='Client', entity_id_key='id', meta_keys=['email', 'full_name'])
def create_client():
    session = get_db()
    fields = _clean_client_fields(request.json or {})
    _assert_email_free(session, fields['email'])
    c = Client(**fields)
    session.add(c)
    session.commit()
    cache.invalidate_clients(c.id)
    return client_json(c), 201


def _prefetch_client(client_id):
    c = get_db().get(Client, client_id)
    return client_json(c) if c else {}


@clients_bp.put('/<int:client_id>')
@require_permissions('CLI.MANAGE')
@audit_log('CLIENT.UPDATE', module='clients', entity='Client', entity_id_key='id',
           diff_keys=['first_name', 'last_name_paternal', 'last_name_maternal', 'phone', 'email'],
           pre_fetch=lambda a, kw: _prefetch_client(kw.get('client_id')))
def update_client(client_id: int):
    session = get_db()
    c = _load_client(session, client_id)
    fields = _clean_client_fields(request.json or {}, partial=True)
    if not fields:
        raise ValidationError('No updatable fields supplied')
    if 'email' in fields and fields['email'] != c.email:
        _assert_email_free(session, fields['email'], exclude_id=c.id)
    for k, v in fields.items():
        setattr(c, k, v)
    session.commit()
    cache.invalidate_clients(c.id)
    return client_json(c)


@clients_bp.delete('/<int:client_id>')
@require_permissions('CLI.MANAGE')
@audit_log('CLIENT.DELETE', module='clients', entity='Client', entity_id_key='id', meta_keys=['email'], level='warn')
def delete_client(client_id: int):
    session = get_db()
    c = _load_client(session, client_id)
    reason = delete_block_reason(session, c)
    if reason:
        raise ConflictError(reason)
    c.mark_deleted(current_user_id())
    session.commit()
    cache.invalidate_clients(c.id)
    return client_json(c)


@clients_bp.get('/<int:client_id>/history')
@require_permissions('CLI.READ')
def client_history(client_id: int):
    session = get_db()
    c = _load_client(session, client_id, allow_deleted=True)
    kind = request.args.get('type', 'all')
    if kind not in ('all', 'quotes', 'orders'):
        raise ValidationError('type must be all, quotes or orders')
    status = request.args.get('status')
    try:
        start = parse_datetime(request.args.get('start_date'))
        end = parse_datetime(request.args.get('end_date'))
    except ValueError:
        raise ValidationError('start_date/end_date must be ISO dates')
    quotes, orders = [], []
    if kind in ('all', 'quotes'):
        q = session.query(Quote).filter(Quote.client_id==c.id, Quote.is_deleted==False)  # noqa: E712
        if status:
            q = q.filter(Quote.status==status)
        if start:
            q = q.filter(Quote.created_at >= start)
        if end:
            q = q.filter(Quote.created_at <= end)
        quotes = [quote_json(x) for x in q.order_by(Quote.id.desc()).all()]
    if kind in ('all', 'orders'):
        q = session.query(WorkOrder).filter(WorkOrder.client_id==c.id, WorkOrder.is_deleted==False)  # noqa: E712
        if status:
            q = q.filter(WorkOrder.status==status)
        if start:
            q = q.filter(WorkOrder.created_at >= start)
        if end:
            q = q.filter(WorkOrder.created_at <= end)
        orders = [order_json(x, detail=False) for x in q.order_by(WorkOrder.id.desc()).all()]
    return {'client': client_json(c), 'quotes': quotes, 'orders': orders, 'summary': client_stats(session, c)}
