import smtplib
from sqlalchemy import select, text
from workshop import get_db
from workshop.models.audit import AuditLog
from workshop.models.work_order import WorkOrder
from workshop.services.mailer import mailer
from tests.test_utils_seed import ensure_user, ensure_mechanic, ensure_client, create_order
from tests.test_lifecycle_helpers import admin_headers, put_status, walk_statuses


def _setup():
    admin = ensure_user()
    mech = ensure_mechanic()
    return admin_headers(admin), mech


def test_full_lifecycle_with_single_ready_email(client, outbox):
    headers, mech = _setup()
    order = create_order()
    resp = client.put(f'/api/orders/{order.id}/assign', json={'mechanic_id': mech.id}, headers=headers)
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['status'] == 'asignada'
    assert body['mechanic']['id'] == mech.id
    assert body['status_history'][-1]['note'] == 'Mechanic assigned'
    assert body['status_history'][-1]['previous_status'] == 'pendiente_asignacion'

    walk_statuses(client, order.id, ['en_progreso'], headers)
    resp = put_status(client, order.id, 'listo', headers, note='Listo para retiro')
    body = resp.get_json()
    assert resp.status_code == 200
    assert body['email_sent'] is True
    assert body['notification']['status'] == 'enviado'
    assert body['order']['ready_email_sent'] is True
    assert len(outbox) == 1
    assert outbox[0]['to'] == order.client.email
    assert order.number in outbox[0]['subject'] or order.number in outbox[0]['html']

    # Leaving and re-entering listo never re-sends once an email succeeded
    walk_statuses(client, order.id, ['en_progreso'], headers)
    resp = put_status(client, order.id, 'listo', headers)
    assert resp.status_code == 200
    assert resp.get_json()['email_sent'] is False
    assert resp.get_json()['notification'] is None
    assert len(outbox) == 1

    resp = put_status(client, order.id, 'entregado', headers)
    body = resp.get_json()['order']
    assert body['status'] == 'entregado'
    assert body['actual_delivery'] is not None
    session = get_db()
    session.refresh(order)
    assert order.actual_delivery >= order.created_at
    assert body['repair_time'] is not None
    statuses = [h['new_status'] for h in body['status_history']]
    assert statuses == ['pendiente_asignacion', 'asignada', 'en_progreso', 'listo', 'en_progreso', 'listo', 'entregado']


def test_invalid_transition_leaves_order_unchanged(client):
    headers, _ = _setup()
    order = create_order()
    resp = put_status(client, order.id, 'listo', headers)
    assert resp.status_code == 400
    err = resp.get_json()['error']
    assert err['code'] == 'invalid_transition'
    assert 'pendiente_asignacion -> listo' in err['detail']
    detail = client.get(f'/api/orders/{order.id}', headers=headers).get_json()
    assert detail['status'] == 'pendiente_asignacion'
    assert len(detail['status_history']) == 1


def test_unknown_status_rejected(client):
    headers, _ = _setup()
    order = create_order()
    resp = put_status(client, order.id, 'volando', headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['code'] == 'invalid_transition'


def test_start_without_mechanic_rejected(client):
    headers, _ = _setup()
    order = create_order()
    walk_statuses(client, order.id, ['asignada'], headers)
    resp = put_status(client, order.id, 'en_progreso', headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'Must assign a mechanic before starting work'


def test_note_length_validated(client):
    headers, mech = _setup()
    order = create_order(mechanic=mech)
    resp = put_status(client, order.id, 'en_progreso', headers, note='x' * 501)
    assert resp.status_code == 400
    assert resp.get_json()['error']['code'] == 'validation'


def test_ready_email_failure_does_not_block_transition(client, outbox, monkeypatch):
    headers, mech = _setup()
    order = create_order(mechanic=mech)
    walk_statuses(client, order.id, ['en_progreso'], headers)

    def boom(msg, to):
        raise smtplib.SMTPException('smtp down')
    monkeypatch.setattr(mailer, '_deliver', boom)
    resp = put_status(client, order.id, 'listo', headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['order']['status'] == 'listo'
    assert body['email_sent'] is False
    assert body['notification']['status'] == 'fallido'
    assert body['notification']['attempts'] == 3
    assert 'smtp down' in body['notification']['error']
    assert body['order']['ready_email_sent'] is False

    failed = get_db().execute(select(AuditLog).where(
        AuditLog.action=='ORDER.READY_EMAIL.FAILED', AuditLog.entity_id==str(order.id)
    )).scalars().all()
    assert len(failed) == 1
    assert failed[0].level == 'error'

    monkeypatch.undo()
    resp = client.post(f'/api/orders/{order.id}/notify-ready', headers=headers)
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['email_sent'] is True
    assert len(outbox) == 1
    assert len(resp.get_json()['order']['notifications']) == 2

    resp = client.post(f'/api/orders/{order.id}/notify-ready', headers=headers)
    assert resp.status_code == 409


def test_notify_ready_requires_listo(client):
    headers, mech = _setup()
    order = create_order(mechanic=mech)
    resp = client.post(f'/api/orders/{order.id}/notify-ready', headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['code'] == 'invalid_transition'


def test_stale_version_conflict(client):
    headers, mech = _setup()
    order = create_order(mechanic=mech)
    session = get_db()
    # Another writer bumps the row behind this session's back
    session.execute(text('UPDATE work_orders SET version_id = version_id + 1 WHERE id = :id'), {'id': order.id})
    session.commit()
    resp = put_status(client, order.id, 'en_progreso', headers)
    assert resp.status_code == 409
    assert resp.get_json()['error']['code'] == 'conflict'
    fresh = session.get(WorkOrder, order.id)
    session.refresh(fresh)
    assert fresh.status == 'asignada'
    assert len(fresh.history) == 1


def test_assign_validations(client):
    headers, _ = _setup()
    order = create_order()
    resp = client.put(f'/api/orders/{order.id}/assign', json={'mechanic_id': 999999}, headers=headers)
    assert resp.status_code == 404
    inactive = ensure_mechanic(is_active=False)
    resp = client.put(f'/api/orders/{order.id}/assign', json={'mechanic_id': inactive.id}, headers=headers)
    assert resp.status_code == 400
    resp = client.put(f'/api/orders/{order.id}/assign', json={}, headers=headers)
    assert resp.status_code == 400


def test_reassign_keeps_status(client):
    headers, mech = _setup()
    other = ensure_mechanic()
    order = create_order(mechanic=mech)
    walk_statuses(client, order.id, ['en_progreso'], headers)
    resp = client.put(f'/api/orders/{order.id}/assign', json={'mechanic_id': other.id}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['status'] == 'en_progreso'
    assert resp.get_json()['mechanic_id'] == other.id


def test_field_edit_and_delivered_lock(client):
    headers, mech = _setup()
    order = create_order(mechanic=mech)
    resp = client.put(f'/api/orders/{order.id}', json={'final_cost': -1}, headers=headers)
    assert resp.status_code == 400
    resp = client.put(f'/api/orders/{order.id}', json={
        'final_cost': 265000, 'additional_work': 'Alineación', 'estimated_delivery': '2030-01-15T10:00:00Z',
    }, headers=headers)
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['final_cost'] == 265000
    assert body['additional_work'] == 'Alineación'
    assert body['estimated_delivery'].startswith('2030-01-15T10:00:00')
    resp = client.put(f'/api/orders/{order.id}', json={}, headers=headers)
    assert resp.status_code == 400

    walk_statuses(client, order.id, ['en_progreso', 'listo', 'entregado'], headers)
    resp = client.put(f'/api/orders/{order.id}', json={'final_cost': 1}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['code'] == 'invalid_transition'
    resp = client.put(f'/api/orders/{order.id}/assign', json={'mechanic_id': mech.id}, headers=headers)
    assert resp.status_code == 400
    resp = put_status(client, order.id, 'listo', headers)
    assert resp.status_code == 400


def test_soft_delete_rules(client):
    headers, mech = _setup()
    pending = create_order()
    resp = client.delete(f'/api/orders/{pending.id}', headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['is_deleted'] is True
    assert client.delete(f'/api/orders/{pending.id}', headers=headers).status_code == 404
    assert client.get(f'/api/orders/{pending.id}', headers=headers).status_code == 404

    assigned = create_order(mechanic=mech)
    resp = client.delete(f'/api/orders/{assigned.id}', headers=headers)
    assert resp.status_code == 409


def test_status_change_audited(client):
    headers, mech = _setup()
    order = create_order(mechanic=mech)
    put_status(client, order.id, 'en_progreso', headers, note='Comienza')
    rows = get_db().execute(select(AuditLog).where(
        AuditLog.action=='ORDER.STATUS', AuditLog.entity_id==str(order.id)
    )).scalars().all()
    assert len(rows) == 1
    assert rows[0].meta['from'] == 'asignada'
    assert rows[0].meta['to'] == 'en_progreso'
    assert rows[0].meta['note'] == 'Comienza'


def test_list_filters_and_pagination(client):
    headers, mech = _setup()
    c = ensure_client()
    for _ in range(3):
        create_order(client=c)
    create_order(client=c, mechanic=mech)
    resp = client.get(f'/api/orders?client_id={c.id}&limit=2', headers=headers)
    body = resp.get_json()
    assert resp.status_code == 200
    assert body['pagination']['total'] == 4
    assert body['pagination']['returned'] == 2
    assert body['pagination']['pages'] == 2
    assert 'status_history' not in body['data'][0]
    resp = client.get(f'/api/orders?client_id={c.id}&status=asignada', headers=headers)
    assert resp.get_json()['pagination']['total'] == 1
    assert client.get('/api/orders?status=bogus', headers=headers).status_code == 400
    assert client.get('/api/orders?sort=-nope', headers=headers).status_code == 400
    ids = [o['id'] for o in client.get(f'/api/orders?client_id={c.id}&sort=id', headers=headers).get_json()['data']]
    assert ids == sorted(ids)
