from __future__ import annotations
"""Quote approval protocol.

Sending a quote issues a fresh pair of one-time tokens (approve / reject).
Redeeming either token burns both. Token burn, the quote status change and
(on approval) the new work order are committed together or not at all.
"""
import logging
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple
from sqlalchemy import select
from workshop.errors import (
    InvalidTransitionError, NotFoundError, TokenError, ValidationError,
    TOKEN_INVALID, TOKEN_USED, TOKEN_EXPIRED, TOKEN_ALREADY_PROCESSED,
)
from workshop.models.client import Client
from workshop.models.quote import Quote, ApprovalToken
from workshop.services.audit import record_audit
from workshop.services.cache import cache
from workshop.services.mailer import mailer, DeliveryResult
from workshop.services.workflow import build_order_from_quote, commit_or_conflict
from workshop.utils.dates import utcnow
from workshop.utils.fsm import TransitionValidator

logger = logging.getLogger(__name__)

QUOTE_FSM = TransitionValidator({
    Quote.STATUS_PENDING: {Quote.STATUS_APPROVED, Quote.STATUS_REJECTED},
    Quote.STATUS_APPROVED: set(),
    Quote.STATUS_REJECTED: set(),
})

DECISION_STATUS = {
    ApprovalToken.TYPE_APPROVE: Quote.STATUS_APPROVED,
    ApprovalToken.TYPE_REJECT: Quote.STATUS_REJECTED,
}


def get_quote(session, quote_id: int, include_deleted: bool = False) -> Quote:
    q = select(Quote).where(Quote.id == quote_id)
    if not include_deleted:
        q = q.where(Quote.is_deleted == False)  # noqa: E712
    quote = session.execute(q).scalar_one_or_none()
    if not quote:
        raise NotFoundError('Quote not found')
    return quote


def default_valid_until(days: int):
    return utcnow() + timedelta(days=days)


# ---------------- Tokens ---------------- #

def generate_tokens(quote: Quote) -> Dict[str, str]:
    """Replace any prior pair with two new opaque tokens. Does not commit."""
    quote.tokens.clear()
    out = {}
    for kind in ApprovalToken.ALL_TYPES:
        value = secrets.token_urlsafe(32)
        quote.tokens.append(ApprovalToken(token=value, type=kind))
        out[kind] = value
    return out


def check_token(quote: Quote, token: Optional[str], now=None) -> Tuple[Optional[str], Optional[ApprovalToken]]:
    """Pure validation: (reason, None) on rejection, (None, token_row) when redeemable.

    Checks run in a fixed order: unknown, used, expired, quote not pending.
    """
    match = None
    if token:
        presented = token.encode('utf-8')
        for t in quote.tokens:
            if secrets.compare_digest(t.token.encode('utf-8'), presented):
                match = t
                break
    if match is None:
        return TOKEN_INVALID, None
    if match.used:
        return TOKEN_USED, None
    if quote.is_expired(now):
        return TOKEN_EXPIRED, None
    if quote.status != Quote.STATUS_PENDING:
        return TOKEN_ALREADY_PROCESSED, None
    return None, match


def validate_token(quote: Quote, token: Optional[str], now=None) -> ApprovalToken:
    reason, match = check_token(quote, token, now)
    if reason:
        raise TokenError(reason)
    return match


def burn_tokens(quote: Quote, presented: Optional[ApprovalToken] = None, ip: Optional[str] = None, user_agent: Optional[str] = None):
    """Mark the presented token and every sibling used. Does not commit."""
    now = utcnow()
    for t in quote.tokens:
        if t.used:
            continue
        t.used = True
        t.used_at = now
        if presented is not None and t is presented:
            t.ip_address = ip
            t.user_agent = (user_agent or '')[:255] or None


# ---------------- Decisions ---------------- #

def _stage_decision(session, quote: Quote, decision: str, actor_id: Optional[int]):
    target = DECISION_STATUS[decision]
    QUOTE_FSM.assert_can_transition(quote.status, target)
    quote.status = target
    order = None
    if target == Quote.STATUS_APPROVED:
        order = build_order_from_quote(session, quote, actor_id)
    return order


def _after_decision(quote: Quote, order, decision: str, actor_id: Optional[int], meta: Dict[str, Any]):
    action = 'QUOTE.APPROVE' if decision == ApprovalToken.TYPE_APPROVE else 'QUOTE.REJECT'
    meta = dict(meta, number=quote.number)
    if order is not None:
        meta['order_id'] = order.id
        meta['order_number'] = order.number
    record_audit(action, 'quotes', 'Quote', quote.id, meta, actor_id=actor_id)
    if order is not None:
        record_audit('ORDER.CREATE', 'orders', 'WorkOrder', order.id, {'number': order.number, 'quote_id': quote.id}, actor_id=actor_id)
    cache.invalidate_quotes(quote.id, quote.client_id)
    if order is not None:
        cache.invalidate_orders(client_id=quote.client_id)


def redeem_token(session, quote_id: int, token: Optional[str], decision: str,
                 ip: Optional[str] = None, user_agent: Optional[str] = None):
    """Public approve/reject through an emailed link.

    Returns (quote, order); order is None for rejections.
    """
    if not token:
        raise TokenError(TOKEN_INVALID, 'Token is required')
    quote = get_quote(session, quote_id)
    presented = validate_token(quote, token)
    if presented.type != decision:
        raise TokenError(TOKEN_INVALID, 'Token is not valid for this action')
    burn_tokens(quote, presented, ip, user_agent)
    order = _stage_decision(session, quote, decision, None)
    commit_or_conflict(session, 'Quote was processed concurrently')
    logger.info('Quote %s %s via token from %s', quote.number, DECISION_STATUS[decision], ip)
    _after_decision(quote, order, decision, None, {'via': 'token', 'token_type': presented.type, 'ip': ip})
    return quote, order


def decide_manually(session, quote: Quote, decision: str, actor_id: Optional[int], notes: Optional[str] = None):
    """Staff override with the same side effects as token redemption."""
    if quote.status != Quote.STATUS_PENDING:
        raise InvalidTransitionError('Quote has already been processed')
    burn_tokens(quote)
    if notes:
        quote.notes = notes
    order = _stage_decision(session, quote, decision, actor_id)
    commit_or_conflict(session, 'Quote was processed concurrently')
    logger.info('Quote %s %s manually by %s', quote.number, quote.status, actor_id)
    _after_decision(quote, order, decision, actor_id, {'via': 'manual'})
    return quote, order


# ---------------- Sending ---------------- #

def send_quote(session, quote: Quote, actor_id: Optional[int]) -> DeliveryResult:
    """Issue a token pair and email it to the client.

    The regenerated tokens are committed before dispatch, so a failed email
    leaves them in place for a later resend.
    """
    if quote.status != Quote.STATUS_PENDING:
        raise InvalidTransitionError('Only pending quotes can be sent')
    client = session.get(Client, quote.client_id)
    if not client or client.is_deleted:
        raise NotFoundError('Client not found')
    if not client.email:
        raise ValidationError('Client has no email address')
    tokens = generate_tokens(quote)
    quote.email_attempts = (quote.email_attempts or 0) + 1
    commit_or_conflict(session)
    try:
        result = mailer.send_quote_email(quote, client, tokens[ApprovalToken.TYPE_APPROVE], tokens[ApprovalToken.TYPE_REJECT])
    except Exception as e:
        logger.exception('Quote email for %s raised', quote.number)
        result = DeliveryResult(success=False, error=str(e) or e.__class__.__name__, attempts=1)
    if result.success:
        quote.email_sent = True
        quote.email_sent_at = utcnow()
        commit_or_conflict(session)
    record_audit(
        'QUOTE.EMAIL.SENT' if result.success else 'QUOTE.EMAIL.FAILED', 'email', 'Quote', quote.id,
        {'number': quote.number, 'to': client.email, 'attempts': result.attempts, 'error': result.error},
        level='info' if result.success else 'error', actor_id=actor_id,
    )
    cache.invalidate_quotes(quote.id, quote.client_id)
    return result


__all__ = [
    'QUOTE_FSM', 'get_quote', 'generate_tokens', 'check_token', 'validate_token', 'burn_tokens',
    'redeem_token', 'decide_manually', 'send_quote', 'default_valid_until',
]
