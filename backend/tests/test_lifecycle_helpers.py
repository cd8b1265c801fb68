"""Reusable test helpers for the quote and work order lifecycles.

Patterns unified:
 - Auth header creation using direct JWT claims (bypassing /login).
 - Quote payloads and token lookup after sending a quote.
 - Driving a work order through a sequence of statuses.
"""
from __future__ import annotations
from typing import Dict, List, Optional
from flask_jwt_extended import create_access_token
from sqlalchemy import select
from workshop import get_db
from workshop.constants.permissions import ALL_PERMISSION_CODES, permissions_for_role
from workshop.models.quote import ApprovalToken

# ---------- Generic Auth Helpers ---------- #

def jwt_headers(user_id: int, perms: Optional[List[str]] = None, role: str = 'admin'):
    token = create_access_token(identity=str(user_id), additional_claims={
        'role': role,
        'perms': list(perms) if perms is not None else permissions_for_role(role),
    })
    return {'Authorization': f'Bearer {token}'}


def admin_headers(user) -> Dict[str, str]:
    return jwt_headers(user.id, list(ALL_PERMISSION_CODES), role='admin')


def mechanic_headers(mechanic) -> Dict[str, str]:
    return jwt_headers(mechanic.user_id, role='mechanic')

# ---------- Quote Helpers ---------- #

def quote_payload(client_id: int, **overrides) -> dict:
    body = {
        'client_id': client_id,
        'vehicle': {'brand': 'Nissan', 'model': 'V16', 'year': 2012, 'license_plate': 'ab-1234', 'mileage': 150000},
        'description': 'Pérdida de aceite en el cárter y ruido en el motor',
        'proposed_work': 'Cambio de empaquetadura de cárter y revisión general',
        'estimated_cost': 180000,
        'notes': 'Cliente espera en el taller',
    }
    body.update(overrides)
    return body


def live_tokens(quote_id: int) -> Dict[str, str]:
    """Unused token strings for a quote, keyed by type."""
    rows = get_db().execute(select(ApprovalToken).where(
        ApprovalToken.quote_id==quote_id, ApprovalToken.used==False  # noqa: E712
    )).scalars().all()
    return {t.type: t.token for t in rows}


def send_quote(client, quote_id: int, headers: Dict[str, str]) -> Dict[str, str]:
    resp = client.post(f'/api/quotes/{quote_id}/send-email', headers=headers)
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['email_sent'] is True
    return live_tokens(quote_id)

# ---------- Work Order Helpers ---------- #

def put_status(client, order_id: int, status: str, headers: Dict[str, str], note: str = None):
    body = {'status': status}
    if note is not None:
        body['note'] = note
    return client.put(f'/api/orders/{order_id}/status', json=body, headers=headers)


def walk_statuses(client, order_id: int, statuses: List[str], headers: Dict[str, str]):
    resp = None
    for status in statuses:
        resp = put_status(client, order_id, status, headers)
        assert resp.status_code == 200, resp.get_json()
        assert resp.get_json()['order']['status'] == status
    return resp


__all__ = [
    'jwt_headers', 'admin_headers', 'mechanic_headers', 'quote_payload', 'live_tokens', 'send_quote',
    'put_status', 'walk_statuses',
]
