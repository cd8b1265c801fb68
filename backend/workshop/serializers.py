from __future__ import annotations
"""JSON shapes for API responses.

Approval token strings are never serialized: quotes expose only each token's
type and usage state.
"""
from typing import Any, Dict, Optional
from workshop.utils.dates import iso


def _soft_delete_fields(obj) -> Dict[str, Any]:
    out: Dict[str, Any] = {'is_deleted': obj.is_deleted}
    if obj.is_deleted:
        out['deleted_at'] = iso(obj.deleted_at)
        out['deleted_by'] = obj.deleted_by
    return out


def user_json(u) -> Dict[str, Any]:
    return {
        'id': u.id,
        'username': u.username,
        'role': u.role,
        'status': u.status,
        'last_login_at': iso(u.last_login_at),
        'created_at': iso(u.created_at),
        'updated_at': iso(u.updated_at),
        **_soft_delete_fields(u),
    }


def client_json(c) -> Dict[str, Any]:
    return {
        'id': c.id,
        'first_name': c.first_name,
        'last_name_paternal': c.last_name_paternal,
        'last_name_maternal': c.last_name_maternal,
        'full_name': c.full_name,
        'phone': c.phone,
        'email': c.email,
        'created_at': iso(c.created_at),
        'updated_at': iso(c.updated_at),
        **_soft_delete_fields(c),
    }


def client_summary(c) -> Optional[Dict[str, Any]]:
    if c is None:
        return None
    return {'id': c.id, 'full_name': c.full_name, 'email': c.email, 'phone': c.phone}


def mechanic_json(m) -> Dict[str, Any]:
    return {
        'id': m.id,
        'user_id': m.user_id,
        'username': m.user.username if m.user else None,
        'first_name': m.first_name,
        'last_name_paternal': m.last_name_paternal,
        'last_name_maternal': m.last_name_maternal,
        'full_name': m.full_name,
        'phone': m.phone,
        'is_active': m.is_active,
        'created_at': iso(m.created_at),
        'updated_at': iso(m.updated_at),
        **_soft_delete_fields(m),
    }


def mechanic_summary(m) -> Optional[Dict[str, Any]]:
    if m is None:
        return None
    return {'id': m.id, 'full_name': m.full_name, 'phone': m.phone}


def token_json(t) -> Dict[str, Any]:
    return {'type': t.type, 'used': t.used, 'used_at': iso(t.used_at)}


def quote_json(q) -> Dict[str, Any]:
    return {
        'id': q.id,
        'number': q.number,
        'client_id': q.client_id,
        'client': client_summary(q.client),
        'vehicle': q.vehicle,
        'description': q.description,
        'proposed_work': q.proposed_work,
        'estimated_cost': q.estimated_cost,
        'valid_until': iso(q.valid_until),
        'status': q.status,
        'tokens': [token_json(t) for t in q.tokens],
        'email_sent': q.email_sent,
        'email_sent_at': iso(q.email_sent_at),
        'email_attempts': q.email_attempts,
        'work_order_id': q.work_order_id,
        'notes': q.notes,
        'version': q.version_id,
        'created_at': iso(q.created_at),
        'updated_at': iso(q.updated_at),
        **_soft_delete_fields(q),
    }


def history_json(h) -> Dict[str, Any]:
    return {
        'previous_status': h.previous_status,
        'new_status': h.new_status,
        'changed_by': h.changed_by,
        'changed_at': iso(h.changed_at),
        'note': h.note,
    }


def notification_json(n) -> Dict[str, Any]:
    return {
        'type': n.type,
        'method': n.method,
        'status': n.status,
        'attempts': n.attempts,
        'sent_at': iso(n.sent_at),
        'error': n.error,
    }


def order_json(o, detail: bool = True) -> Dict[str, Any]:
    body = {
        'id': o.id,
        'number': o.number,
        'quote_id': o.quote_id,
        'client_id': o.client_id,
        'client': client_summary(o.client),
        'mechanic_id': o.mechanic_id,
        'mechanic': mechanic_summary(o.mechanic),
        'vehicle': o.vehicle,
        'work_description': o.work_description,
        'estimated_cost': o.estimated_cost,
        'final_cost': o.final_cost,
        'status': o.status,
        'estimated_delivery': iso(o.estimated_delivery),
        'actual_delivery': iso(o.actual_delivery),
        'additional_notes': o.additional_notes,
        'additional_work': o.additional_work,
        'ready_email_sent': o.ready_email_sent,
        'ready_email_sent_at': iso(o.ready_email_sent_at),
        'repair_time': o.repair_time(),
        'version': o.version_id,
        'created_at': iso(o.created_at),
        'updated_at': iso(o.updated_at),
        **_soft_delete_fields(o),
    }
    if detail:
        body['status_history'] = [history_json(h) for h in o.history]
        body['notifications'] = [notification_json(n) for n in o.notifications]
    return body


def audit_json(a) -> Dict[str, Any]:
    return {
        'id': a.id,
        'level': a.level,
        'action': a.action,
        'module': a.module,
        'actor_user_id': a.actor_user_id,
        'entity': a.entity,
        'entity_id': a.entity_id,
        'meta': a.meta or {},
        'ip_address': a.ip_address,
        'user_agent': a.user_agent,
        'request_id': a.request_id,
        'created_at': iso(a.created_at),
    }
