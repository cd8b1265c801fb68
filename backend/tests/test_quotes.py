import logging
from datetime import timedelta
from sqlalchemy import select
from workshop import get_db
from workshop.models.audit import AuditLog
from workshop.models.quote import Quote, ApprovalToken
from workshop.models.work_order import WorkOrder
from workshop.services.approvals import check_token
from workshop.errors import TOKEN_INVALID, TOKEN_USED, TOKEN_EXPIRED, TOKEN_ALREADY_PROCESSED
from workshop.utils.dates import utcnow
from tests.test_utils_seed import ensure_user, ensure_client, create_quote
from tests.test_lifecycle_helpers import admin_headers, quote_payload, live_tokens, send_quote


def _admin():
    return admin_headers(ensure_user())


def test_create_quote_assigns_number_and_defaults(client):
    headers = _admin()
    c = ensure_client()
    resp = client.post('/api/quotes', json=quote_payload(c.id), headers=headers)
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['number'] == f"PRES-{body['id']:04d}"
    assert body['status'] == 'pending'
    assert body['vehicle']['license_plate'] == 'AB-1234'
    assert body['email_sent'] is False
    assert body['tokens'] == []
    assert body['valid_until'] is not None
    assert body['client']['id'] == c.id


def test_create_quote_validation(client):
    headers = _admin()
    c = ensure_client()
    cases = [
        {'description': 'muy corto'},
        {'proposed_work': 'x' * 2001},
        {'estimated_cost': -5},
        {'vehicle': {'brand': 'Fiat', 'model': 'Uno', 'year': 1900, 'license_plate': 'XX11'}},
        {'vehicle': {'brand': 'Fiat', 'model': 'Uno', 'year': 2010, 'license_plate': 'X' * 21}},
        {'vehicle': None},
        {'notes': 'n' * 1001},
    ]
    for override in cases:
        resp = client.post('/api/quotes', json=quote_payload(c.id, **override), headers=headers)
        assert resp.status_code == 400, override
        assert resp.get_json()['error']['code'] == 'validation'
    resp = client.post('/api/quotes', json=quote_payload(999999), headers=headers)
    assert resp.status_code == 404


def test_send_email_issues_token_pair(client, outbox):
    headers = _admin()
    q = create_quote()
    resp = client.post(f'/api/quotes/{q.id}/send-email', headers=headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['email_sent'] is True
    assert body['quote']['email_sent'] is True
    assert body['quote']['email_attempts'] == 1
    tokens = live_tokens(q.id)
    assert set(tokens) == {'approve', 'reject'}
    assert tokens['approve'] != tokens['reject']
    # token strings travel only by email
    for value in tokens.values():
        assert value not in resp.get_data(as_text=True)
        assert value not in client.get(f'/api/quotes/{q.id}', headers=headers).get_data(as_text=True)
    assert len(outbox) == 1
    html = outbox[0]['html']
    assert f"/api/quotes/{q.id}/approve?token={tokens['approve']}" in html
    assert f"/api/quotes/{q.id}/reject?token={tokens['reject']}" in html

    # resending replaces the pair
    client.post(f'/api/quotes/{q.id}/send-email', headers=headers)
    again = live_tokens(q.id)
    assert again['approve'] != tokens['approve']
    rows = get_db().execute(select(ApprovalToken).where(ApprovalToken.quote_id==q.id)).scalars().all()
    assert len(rows) == 2


def test_send_email_failure_keeps_tokens(client, monkeypatch):
    import smtplib
    from workshop.services.mailer import mailer
    headers = _admin()
    q = create_quote()

    def boom(msg, to):
        raise smtplib.SMTPException('relay refused')
    monkeypatch.setattr(mailer, '_deliver', boom)
    resp = client.post(f'/api/quotes/{q.id}/send-email', headers=headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['email_sent'] is False
    assert 'relay refused' in body['error']
    assert body['quote']['email_sent'] is False
    assert body['quote']['email_attempts'] == 1
    assert set(live_tokens(q.id)) == {'approve', 'reject'}
    failed = get_db().execute(select(AuditLog).where(
        AuditLog.action=='QUOTE.EMAIL.FAILED', AuditLog.entity_id==str(q.id)
    )).scalars().all()
    assert len(failed) == 1


def test_send_email_requires_pending(client):
    headers = _admin()
    q = create_quote(status=Quote.STATUS_REJECTED)
    resp = client.post(f'/api/quotes/{q.id}/send-email', headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['code'] == 'invalid_transition'


def test_public_approve_creates_order(client):
    headers = _admin()
    q = create_quote()
    tokens = send_quote(client, q.id, headers)
    resp = client.get(f"/api/quotes/{q.id}/approve?token={tokens['approve']}", headers={'User-Agent': 'pytest-browser'})
    assert resp.status_code == 200
    assert resp.content_type.startswith('text/html')
    page = resp.get_data(as_text=True)
    assert 'Presupuesto Aprobado' in page

    session = get_db()
    quote = session.get(Quote, q.id)
    assert quote.status == 'approved'
    order = session.execute(select(WorkOrder).where(WorkOrder.quote_id==q.id)).scalar_one()
    assert quote.work_order_id == order.id
    assert order.number in page
    assert order.status == 'pendiente_asignacion'
    assert order.estimated_cost == quote.estimated_cost
    assert order.vehicle == quote.vehicle
    assert quote.description in order.work_description
    assert quote.proposed_work in order.work_description
    assert [h.new_status for h in order.history] == ['pendiente_asignacion']
    used = {t.type: t for t in quote.tokens}
    assert used['approve'].used and used['reject'].used
    assert used['approve'].user_agent == 'pytest-browser'
    assert used['approve'].used_at is not None

    actions = {a.action for a in session.execute(select(AuditLog).where(AuditLog.entity_id==str(q.id))).scalars()}
    assert 'QUOTE.APPROVE' in actions


def test_public_reject_creates_nothing(client):
    headers = _admin()
    q = create_quote()
    tokens = send_quote(client, q.id, headers)
    resp = client.get(f"/api/quotes/{q.id}/reject?token={tokens['reject']}")
    assert resp.status_code == 200
    assert 'Presupuesto Rechazado' in resp.get_data(as_text=True)
    session = get_db()
    assert session.get(Quote, q.id).status == 'rejected'
    assert session.execute(select(WorkOrder).where(WorkOrder.quote_id==q.id)).first() is None


def test_token_reuse_and_sibling_burned(client):
    headers = _admin()
    q = create_quote()
    tokens = send_quote(client, q.id, headers)
    assert client.get(f"/api/quotes/{q.id}/approve?token={tokens['approve']}").status_code == 200
    again = client.get(f"/api/quotes/{q.id}/approve?token={tokens['approve']}")
    assert again.status_code == 400
    assert 'ya fue utilizado' in again.get_data(as_text=True)
    sibling = client.get(f"/api/quotes/{q.id}/reject?token={tokens['reject']}")
    assert sibling.status_code == 400
    assert 'ya fue utilizado' in sibling.get_data(as_text=True)
    orders = get_db().execute(select(WorkOrder).where(WorkOrder.quote_id==q.id)).scalars().all()
    assert len(orders) == 1


def test_expired_quote_token(client):
    headers = _admin()
    q = create_quote()
    tokens = send_quote(client, q.id, headers)
    session = get_db()
    q.valid_until = utcnow() - timedelta(minutes=1)
    session.commit()
    resp = client.get(f"/api/quotes/{q.id}/approve?token={tokens['approve']}")
    assert resp.status_code == 400
    assert 'expirado' in resp.get_data(as_text=True)
    assert session.get(Quote, q.id).status == 'pending'


def test_wrong_or_missing_token(client):
    headers = _admin()
    q = create_quote()
    tokens = send_quote(client, q.id, headers)
    # reject token presented on the approve link
    resp = client.get(f"/api/quotes/{q.id}/approve?token={tokens['reject']}")
    assert resp.status_code == 400
    assert client.get(f'/api/quotes/{q.id}/approve?token=bogus').status_code == 400
    assert client.get(f'/api/quotes/{q.id}/approve').status_code == 400
    # nothing was burned
    assert set(live_tokens(q.id)) == {'approve', 'reject'}
    assert get_db().get(Quote, q.id).status == 'pending'


def test_unknown_quote_public_link(client):
    resp = client.get('/api/quotes/999999/approve?token=whatever')
    assert resp.status_code == 404
    assert resp.content_type.startswith('text/html')


def test_approval_is_atomic(client, monkeypatch):
    from workshop.services import approvals
    headers = _admin()
    q = create_quote()
    tokens = send_quote(client, q.id, headers)

    def explode(session, quote, actor_id):
        raise RuntimeError('order insert failed')
    monkeypatch.setattr(approvals, 'build_order_from_quote', explode)
    resp = client.get(f"/api/quotes/{q.id}/approve?token={tokens['approve']}")
    assert resp.status_code == 500
    session = get_db()
    quote = session.get(Quote, q.id)
    session.refresh(quote)
    assert quote.status == 'pending'
    assert quote.work_order_id is None
    assert set(live_tokens(q.id)) == {'approve', 'reject'}

    monkeypatch.undo()
    resp = client.get(f"/api/quotes/{q.id}/approve?token={tokens['approve']}")
    assert resp.status_code == 200


def test_manual_decisions(client):
    headers = _admin()
    q = create_quote()
    tokens = send_quote(client, q.id, headers)
    resp = client.put(f'/api/quotes/{q.id}/approve', json={'notes': 'Aprobado por teléfono'}, headers=headers)
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['quote']['status'] == 'approved'
    assert body['quote']['notes'] == 'Aprobado por teléfono'
    assert body['work_order']['status'] == 'pendiente_asignacion'
    assert all(t['used'] for t in body['quote']['tokens'])
    # emailed links are dead after a manual decision
    assert client.get(f"/api/quotes/{q.id}/reject?token={tokens['reject']}").status_code == 400

    resp = client.put(f'/api/quotes/{q.id}/reject', headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['code'] == 'invalid_transition'

    other = create_quote()
    resp = client.put(f'/api/quotes/{other.id}/reject', headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['quote']['status'] == 'rejected'
    assert 'work_order' not in resp.get_json()
    entry = get_db().execute(select(AuditLog).where(
        AuditLog.action=='QUOTE.REJECT', AuditLog.entity_id==str(other.id)
    )).scalar_one()
    assert entry.meta['via'] == 'manual'


def test_update_and_delete_rules(client):
    headers = _admin()
    q = create_quote()
    resp = client.put(f'/api/quotes/{q.id}', json={'estimated_cost': 99000}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['estimated_cost'] == 99000
    assert client.put(f'/api/quotes/{q.id}', json={}, headers=headers).status_code == 400

    client.put(f'/api/quotes/{q.id}/approve', headers=headers)
    resp = client.put(f'/api/quotes/{q.id}', json={'estimated_cost': 1}, headers=headers)
    assert resp.status_code == 400
    assert client.delete(f'/api/quotes/{q.id}', headers=headers).status_code == 409

    pending = create_quote()
    resp = client.delete(f'/api/quotes/{pending.id}', headers=headers)
    assert resp.status_code == 200
    assert client.get(f'/api/quotes/{pending.id}', headers=headers).status_code == 404


def test_list_quotes_filters(client):
    headers = _admin()
    c = ensure_client()
    create_quote(client=c)
    create_quote(client=c, status=Quote.STATUS_APPROVED)
    body = client.get(f'/api/quotes?client_id={c.id}', headers=headers).get_json()
    assert body['pagination']['total'] == 2
    body = client.get(f'/api/quotes?client_id={c.id}&status=approved', headers=headers).get_json()
    assert body['pagination']['total'] == 1
    assert client.get('/api/quotes?status=maybe', headers=headers).status_code == 400


def test_non_ascii_token_is_invalid(client):
    headers = _admin()
    q = create_quote()
    send_quote(client, q.id, headers)
    resp = client.get(f'/api/quotes/{q.id}/approve?token=%C3%B1and%C3%BA')
    assert resp.status_code == 400
    assert 'El enlace no es válido.' in resp.get_data(as_text=True)
    assert set(live_tokens(q.id)) == {'approve', 'reject'}


def test_public_link_failures_are_logged(client, caplog):
    caplog.set_level(logging.WARNING, logger='workshop.routes.quotes')
    q = create_quote()
    send_quote(client, q.id, _admin())
    client.get(f'/api/quotes/{q.id}/reject?token=bogus', environ_base={'REMOTE_ADDR': '10.1.2.3'})
    rejected = [r for r in caplog.records if r.name == 'workshop.routes.quotes']
    assert len(rejected) == 1
    assert rejected[0].levelno == logging.WARNING
    assert '10.1.2.3' in rejected[0].getMessage()
    assert TOKEN_INVALID in rejected[0].getMessage()

    caplog.clear()
    client.get('/api/quotes/999999/approve?token=whatever')
    missing = [r for r in caplog.records if r.name == 'workshop.routes.quotes']
    assert len(missing) == 1
    assert '999999' in missing[0].getMessage()
    assert '404' in missing[0].getMessage()


def _quote_with_tokens(status='pending', expired=False, used=False):
    now = utcnow()
    q = Quote(status=status, valid_until=now - timedelta(days=1) if expired else now + timedelta(days=1))
    q.tokens = [
        ApprovalToken(token='approve-token', type=ApprovalToken.TYPE_APPROVE, used=used),
        ApprovalToken(token='reject-token', type=ApprovalToken.TYPE_REJECT, used=used),
    ]
    return q


def test_check_token_reasons_and_order():
    assert check_token(_quote_with_tokens(), 'approve-token')[0] is None
    assert check_token(_quote_with_tokens(), 'other')[0] == TOKEN_INVALID
    assert check_token(_quote_with_tokens(), None)[0] == TOKEN_INVALID
    assert check_token(_quote_with_tokens(status='approved'), 'reject-token')[0] == TOKEN_ALREADY_PROCESSED
    assert check_token(_quote_with_tokens(status='rejected'), 'approve-token')[0] == TOKEN_ALREADY_PROCESSED
    # used wins over expired, expired wins over processed
    assert check_token(_quote_with_tokens(status='approved', expired=True, used=True), 'approve-token')[0] == TOKEN_USED
    assert check_token(_quote_with_tokens(status='approved', expired=True), 'approve-token')[0] == TOKEN_EXPIRED


def test_token_on_processed_quote_is_refused(client):
    q = create_quote()
    tokens = send_quote(client, q.id, _admin())
    session = get_db()
    # status moved on without burning the links
    q.status = Quote.STATUS_REJECTED
    session.commit()
    resp = client.get(f"/api/quotes/{q.id}/approve?token={tokens['approve']}")
    assert resp.status_code == 400
    assert 'El presupuesto ya fue procesado.' in resp.get_data(as_text=True)
    session.refresh(q)
    assert q.status == Quote.STATUS_REJECTED
    assert q.work_order_id is None
