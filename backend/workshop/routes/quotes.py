from __future__ import annotations
import logging
from datetime import date
from flask import Blueprint, request, render_template, current_app
from sqlalchemy import or_
from workshop import get_db
from workshop.decorators.auth import require_permissions
from workshop.decorators.audit import audit_log
from workshop.decorators.rate_limit import rate_limit
from workshop.errors import ConflictError, InvalidTransitionError, NotFoundError, TokenError, ValidationError
from workshop.models.client import Client
from workshop.models.quote import Quote, ApprovalToken
from workshop.serializers import quote_json, order_json
from workshop.services import approvals
from workshop.services.cache import cache, cache_key
from workshop.services.mailer import workshop_info
from workshop.services.policy import current_user_id
from workshop.services.workflow import assign_number, commit_or_conflict
from workshop.utils.dates import parse_datetime
from workshop.utils.listing import paginated
from workshop.utils.sorting import apply_multi_sort
from workshop.utils.validation import clean_str, clean_int, validate_status

logger = logging.getLogger(__name__)

quotes_bp = Blueprint('quotes', __name__)

QUOTE_SORT = {
    'number': Quote.number,
    'status': Quote.status,
    'estimated_cost': Quote.estimated_cost,
    'valid_until': Quote.valid_until,
    'created_at': Quote.created_at,
    'id': Quote.id,
}

TEXT_MIN, TEXT_MAX = 20, 2000


def _clean_vehicle(raw) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError('vehicle required')
    return {
        'vehicle_brand': clean_str(raw.get('brand'), 'vehicle.brand', max_len=100),
        'vehicle_model': clean_str(raw.get('model'), 'vehicle.model', max_len=100),
        'vehicle_year': clean_int(raw.get('year'), 'vehicle.year', min_value=1950, max_value=date.today().year + 1),
        'vehicle_plate': clean_str(raw.get('license_plate'), 'vehicle.license_plate', max_len=20).upper(),
        'vehicle_mileage': clean_int(raw.get('mileage'), 'vehicle.mileage', min_value=0, required=False),
    }


def _clean_quote_fields(data: dict, partial: bool = False) -> dict:
    out = {}
    if not partial or 'vehicle' in data:
        out.update(_clean_vehicle(data.get('vehicle')))
    if not partial or 'description' in data:
        out['description'] = clean_str(data.get('description'), 'description', min_len=TEXT_MIN, max_len=TEXT_MAX)
    if not partial or 'proposed_work' in data:
        out['proposed_work'] = clean_str(data.get('proposed_work'), 'proposed_work', min_len=TEXT_MIN, max_len=TEXT_MAX)
    if not partial or 'estimated_cost' in data:
        out['estimated_cost'] = clean_int(data.get('estimated_cost'), 'estimated_cost', min_value=0)
    if 'notes' in data:
        out['notes'] = clean_str(data.get('notes'), 'notes', max_len=1000, required=False)
    if data.get('valid_until'):
        try:
            out['valid_until'] = parse_datetime(data.get('valid_until'))
        except ValueError:
            raise ValidationError('valid_until invalid')
    return out


def _active_client(session, client_id) -> Client:
    client_id = clean_int(client_id, 'client_id', min_value=1)
    client = session.get(Client, client_id)
    if not client or client.is_deleted:
        raise NotFoundError('Client not found')
    return client


@quotes_bp.get('')
@require_permissions('QUO.READ')
def list_quotes():
    key = cache_key('quotes', 'list', request.query_string.decode() or 'all')
    cached = cache.get(key)
    if cached is not None:
        return cached
    session = get_db()
    q = session.query(Quote).filter(Quote.is_deleted==False)  # noqa: E712
    status = request.args.get('status')
    if status:
        q = q.filter(Quote.status==validate_status(status, Quote.ALL_STATUSES))
    client_id = request.args.get('client_id')
    if client_id:
        q = q.filter(Quote.client_id==clean_int(client_id, 'client_id'))
    try:
        start = parse_datetime(request.args.get('start_date'))
        end = parse_datetime(request.args.get('end_date'))
    except ValueError:
        raise ValidationError('start_date/end_date must be ISO dates')
    if start:
        q = q.filter(Quote.created_at >= start)
    if end:
        q = q.filter(Quote.created_at <= end)
    search = request.args.get('search')
    if search:
        q = q.filter(or_(Quote.number.ilike(f"%{search}%"), Quote.vehicle_plate.ilike(f"%{search}%")))
    q = apply_multi_sort(q, request.args.get('sort'), QUOTE_SORT, Quote.id)
    payload = paginated(q, quote_json)
    cache.set(key, payload, 180)
    return payload


@quotes_bp.get('/<int:quote_id>')
@require_permissions('QUO.READ')
def get_quote(quote_id: int):
    key = cache_key('quote', quote_id)
    cached = cache.get(key)
    if cached is not None:
        return cached
    session = get_db()
    body = quote_json(approvals.get_quote(session, quote_id))
    cache.set(key, body)
    return body


@quotes_bp.post('')
@require_permissions('QUO.MANAGE')
@audit_log('QUOTE.CREATE', module='quotes', entity='Quote', entity_id_key='id', meta_keys=['number', 'client_id', 'estimated_cost'])
def create_quote():
    session = get_db()
    data = request.json or {}
    client = _active_client(session, data.get('client_id'))
    fields = _clean_quote_fields(data)
    fields.setdefault('valid_until', approvals.default_valid_until(current_app.config.get('QUOTE_VALIDITY_DAYS', 7)))
    quote = Quote(client_id=client.id, status=Quote.STATUS_PENDING, created_by=current_user_id(), **fields)
    session.add(quote)
    session.flush()
    assign_number(quote, Quote.NUMBER_PREFIX)
    session.commit()
    cache.invalidate_quotes(quote.id, quote.client_id)
    return quote_json(quote), 201


def _prefetch_quote(quote_id):
    q = get_db().get(Quote, quote_id)
    return quote_json(q) if q else {}


@quotes_bp.put('/<int:quote_id>')
@require_permissions('QUO.MANAGE')
@audit_log('QUOTE.UPDATE', module='quotes', entity='Quote', entity_id_key='id',
           diff_keys=['vehicle', 'description', 'proposed_work', 'estimated_cost', 'valid_until', 'notes'],
           pre_fetch=lambda a, kw: _prefetch_quote(kw.get('quote_id')))
def update_quote(quote_id: int):
    session = get_db()
    quote = approvals.get_quote(session, quote_id)
    if not quote.can_edit():
        raise InvalidTransitionError('Only pending quotes can be edited')
    fields = _clean_quote_fields(request.json or {}, partial=True)
    if not fields:
        raise ValidationError('No updatable fields supplied')
    for k, v in fields.items():
        setattr(quote, k, v)
    commit_or_conflict(session)
    cache.invalidate_quotes(quote.id, quote.client_id)
    return quote_json(quote)


@quotes_bp.delete('/<int:quote_id>')
@require_permissions('QUO.MANAGE')
@audit_log('QUOTE.DELETE', module='quotes', entity='Quote', entity_id_key='id', meta_keys=['number'], level='warn')
def delete_quote(quote_id: int):
    session = get_db()
    quote = approvals.get_quote(session, quote_id)
    if not quote.can_delete():
        raise ConflictError('Only pending quotes without a work order can be deleted')
    approvals.burn_tokens(quote)
    quote.mark_deleted(current_user_id())
    commit_or_conflict(session)
    cache.invalidate_quotes(quote.id, quote.client_id)
    return quote_json(quote)


@quotes_bp.post('/<int:quote_id>/send-email')
@require_permissions('QUO.SEND')
def send_quote_email(quote_id: int):
    session = get_db()
    quote = approvals.get_quote(session, quote_id)
    result = approvals.send_quote(session, quote, current_user_id())
    return {
        'quote': quote_json(quote),
        'email_sent': result.success,
        'attempts': result.attempts,
        'error': result.error,
    }


# ---------------- Public token links ---------------- #

def _outcome_page(status: int, kind: str, title: str, lines, order_number=None):
    html = render_template('public/outcome.html', kind=kind, title=title, lines=lines,
                           order_number=order_number, workshop=workshop_info())
    return html, status, {'Content-Type': 'text/html; charset=utf-8'}


TOKEN_PAGE_TEXT = {
    'invalid_token': 'El enlace no es válido.',
    'token_used': 'Este enlace ya fue utilizado.',
    'expired': 'El presupuesto ha expirado.',
    'already_processed': 'El presupuesto ya fue procesado.',
}


def _public_decision(quote_id: int, decision: str):
    session = get_db()
    try:
        quote, order = approvals.redeem_token(
            session, quote_id, request.args.get('token'), decision,
            ip=request.remote_addr, user_agent=request.headers.get('User-Agent'),
        )
    except TokenError as e:
        session.rollback()
        logger.warning('Token %s rejected for quote %s from %s: %s', decision, quote_id, request.remote_addr, e.reason)
        return _outcome_page(400, 'error', 'No fue posible procesar el presupuesto',
                             [TOKEN_PAGE_TEXT.get(e.reason, e.description), 'Por favor, contacte al taller para más información.'])
    except (NotFoundError, ConflictError) as e:
        session.rollback()
        logger.warning('Public %s for quote %s from %s failed: %s %s', decision, quote_id, request.remote_addr, e.code, e.description)
        return _outcome_page(e.code, 'error', 'No fue posible procesar el presupuesto', [e.description])
    if decision == ApprovalToken.TYPE_APPROVE:
        return _outcome_page(200, 'approved', 'Presupuesto Aprobado', [
            f'Gracias por aprobar el presupuesto {quote.number}.',
            'Se ha creado automáticamente la orden de trabajo:',
        ], order_number=order.number)
    return _outcome_page(200, 'rejected', 'Presupuesto Rechazado', [
        f'Ha rechazado el presupuesto {quote.number}.',
        'Si desea modificar el presupuesto, no dude en contactarnos.',
    ])


@quotes_bp.get('/<int:quote_id>/approve')
@rate_limit('public', 'RATE_LIMIT_PUBLIC_MAX', 'RATE_LIMIT_PUBLIC_WINDOW')
def approve_by_token(quote_id: int):
    return _public_decision(quote_id, ApprovalToken.TYPE_APPROVE)


@quotes_bp.get('/<int:quote_id>/reject')
@rate_limit('public', 'RATE_LIMIT_PUBLIC_MAX', 'RATE_LIMIT_PUBLIC_WINDOW')
def reject_by_token(quote_id: int):
    return _public_decision(quote_id, ApprovalToken.TYPE_REJECT)


# ---------------- Manual staff decisions ---------------- #

def _manual_decision(quote_id: int, decision: str):
    session = get_db()
    quote = approvals.get_quote(session, quote_id)
    notes = clean_str((request.json or {}).get('notes') if request.is_json else None, 'notes', max_len=1000, required=False)
    quote, order = approvals.decide_manually(session, quote, decision, current_user_id(), notes)
    body = {'quote': quote_json(quote)}
    if order is not None:
        body['work_order'] = order_json(order)
    return body


@quotes_bp.put('/<int:quote_id>/approve')
@require_permissions('QUO.DECIDE')
def approve_manually(quote_id: int):
    return _manual_decision(quote_id, ApprovalToken.TYPE_APPROVE)


@quotes_bp.put('/<int:quote_id>/reject')
@require_permissions('QUO.DECIDE')
def reject_manually(quote_id: int):
    return _manual_decision(quote_id, ApprovalToken.TYPE_REJECT)
