from tests.test_utils_seed import ensure_user, ensure_mechanic, create_order
from tests.test_lifecycle_helpers import admin_headers, mechanic_headers, jwt_headers, put_status
from workshop.models.user import User


def test_mechanic_lists_only_own_orders(client):
    mine = ensure_mechanic()
    other = ensure_mechanic()
    own_order = create_order(mechanic=mine)
    foreign_order = create_order(mechanic=other)
    unassigned = create_order()

    resp = client.get('/api/orders?limit=100', headers=mechanic_headers(mine))
    assert resp.status_code == 200
    ids = {o['id'] for o in resp.get_json()['data']}
    assert own_order.id in ids
    assert foreign_order.id not in ids
    assert unassigned.id not in ids
    assert all(o['mechanic_id'] == mine.id for o in resp.get_json()['data'])

    # filtering by another mechanic cannot widen the scope
    resp = client.get(f'/api/orders?mechanic_id={other.id}', headers=mechanic_headers(mine))
    assert resp.get_json()['pagination']['total'] == 0

    admin_ids = {o['id'] for o in client.get('/api/orders?limit=100', headers=admin_headers(ensure_user())).get_json()['data']}
    assert {own_order.id, foreign_order.id, unassigned.id} <= admin_ids


def test_foreign_order_is_forbidden(client):
    mine = ensure_mechanic()
    other = ensure_mechanic()
    foreign = create_order(mechanic=other)
    headers = mechanic_headers(mine)
    resp = client.get(f'/api/orders/{foreign.id}', headers=headers)
    assert resp.status_code == 403
    assert resp.get_json()['error']['code'] == 'forbidden'
    assert put_status(client, foreign.id, 'en_progreso', headers).status_code == 403
    assert client.put(f'/api/orders/{foreign.id}', json={'additional_notes': 'x'}, headers=headers).status_code == 403


def test_mechanic_user_without_profile_is_forbidden(client):
    user = ensure_user(role=User.ROLE_MECHANIC)
    resp = client.get('/api/orders', headers=jwt_headers(user.id, role='mechanic'))
    assert resp.status_code == 403
    assert resp.get_json()['error']['detail'] == 'Mechanic profile not found'


def test_mechanic_works_own_order_but_cannot_assign_or_delete(client):
    mine = ensure_mechanic()
    order = create_order(mechanic=mine)
    headers = mechanic_headers(mine)

    resp = put_status(client, order.id, 'en_progreso', headers, note='Comenzando desarme')
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['previous_status'] == 'asignada'

    resp = client.put(f'/api/orders/{order.id}', json={'additional_work': 'Cambio de bujías'}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['additional_work'] == 'Cambio de bujías'

    other = ensure_mechanic()
    resp = client.put(f'/api/orders/{order.id}/assign', json={'mechanic_id': other.id}, headers=headers)
    assert resp.status_code == 403
    assert client.delete(f'/api/orders/{order.id}', headers=headers).status_code == 403
    assert client.get('/api/quotes', headers=headers).status_code == 403
    assert client.get('/api/clients', headers=headers).status_code == 403
