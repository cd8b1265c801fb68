from tests.test_utils_seed import ensure_user, ensure_client, ensure_mechanic, create_quote, create_order, unique
from tests.test_lifecycle_helpers import admin_headers, mechanic_headers, jwt_headers
from workshop.models.quote import Quote


def _client_payload(**overrides):
    body = {
        'first_name': 'María',
        'last_name_paternal': 'González',
        'last_name_maternal': 'Rojas',
        'phone': '+56987654321',
        'email': f"{unique('maria')}@Example.com",
    }
    body.update(overrides)
    return body


# ---------------- Users ---------------- #

def test_user_crud_and_guards(client):
    admin = ensure_user()
    headers = admin_headers(admin)
    name = unique('mech')
    resp = client.post('/api/users', json={'username': name, 'password': 'secret123'}, headers=headers)
    assert resp.status_code == 201
    created = resp.get_json()
    assert created['role'] == 'mechanic'
    assert created['status'] == 'active'
    assert 'password_hash' not in created

    dup = client.post('/api/users', json={'username': name, 'password': 'secret123'}, headers=headers)
    assert dup.status_code == 409
    short = client.post('/api/users', json={'username': unique('u'), 'password': '123'}, headers=headers)
    assert short.status_code == 400

    resp = client.put(f"/api/users/{created['id']}/toggle-status", headers=headers)
    assert resp.get_json()['status'] == 'inactive'
    resp = client.put(f"/api/users/{created['id']}/password", json={'new_password': 'another123'}, headers=headers)
    assert resp.status_code == 200

    assert client.put(f'/api/users/{admin.id}/toggle-status', headers=headers).status_code == 400
    assert client.delete(f'/api/users/{admin.id}', headers=headers).status_code == 400
    resp = client.delete(f"/api/users/{created['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['is_deleted'] is True


def test_user_endpoints_need_permission(client):
    mech = ensure_mechanic()
    assert client.get('/api/users', headers=mechanic_headers(mech)).status_code == 403


# ---------------- Clients ---------------- #

def test_client_crud(client):
    headers = admin_headers(ensure_user())
    resp = client.post('/api/clients', json=_client_payload(), headers=headers)
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['email'] == body['email'].lower()
    assert body['full_name'] == 'María González Rojas'

    dup = client.post('/api/clients', json=_client_payload(email=body['email']), headers=headers)
    assert dup.status_code == 409
    bad = client.post('/api/clients', json=_client_payload(email='not-an-email'), headers=headers)
    assert bad.status_code == 400
    short_phone = client.post('/api/clients', json=_client_payload(phone='123'), headers=headers)
    assert short_phone.status_code == 400

    resp = client.put(f"/api/clients/{body['id']}", json={'phone': '+56900000000'}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['phone'] == '+56900000000'

    detail = client.get(f"/api/clients/{body['id']}", headers=headers).get_json()
    assert detail['stats']['total_quotes'] == 0

    resp = client.delete(f"/api/clients/{body['id']}", headers=headers)
    assert resp.status_code == 200
    assert client.get(f"/api/clients/{body['id']}", headers=headers).status_code == 404


def test_client_delete_refused_with_approved_quote(client):
    headers = admin_headers(ensure_user())
    c = ensure_client()
    create_quote(client=c, status=Quote.STATUS_APPROVED)
    resp = client.delete(f'/api/clients/{c.id}', headers=headers)
    assert resp.status_code == 409
    assert resp.get_json()['error']['detail'] == 'Client has approved quotes'


def test_client_history(client):
    headers = admin_headers(ensure_user())
    c = ensure_client()
    create_quote(client=c)
    create_order(client=c)
    body = client.get(f'/api/clients/{c.id}/history', headers=headers).get_json()
    assert len(body['quotes']) == 2
    assert len(body['orders']) == 1
    body = client.get(f'/api/clients/{c.id}/history?type=orders', headers=headers).get_json()
    assert 'quotes' not in body or body['quotes'] == []
    assert client.get(f'/api/clients/{c.id}/history?type=bogus', headers=headers).status_code == 400


# ---------------- Mechanics ---------------- #

def test_mechanic_profile_rules(client):
    headers = admin_headers(ensure_user())
    admin_user = ensure_user(role='admin')
    payload = {'first_name': 'Luis', 'last_name_paternal': 'Mora', 'phone': '+56955556666'}
    resp = client.post('/api/mechanics', json=dict(payload, user_id=admin_user.id), headers=headers)
    assert resp.status_code == 400

    mech_user = ensure_user(role='mechanic')
    resp = client.post('/api/mechanics', json=dict(payload, user_id=mech_user.id), headers=headers)
    assert resp.status_code == 201, resp.get_json()
    mech_id = resp.get_json()['id']
    assert resp.get_json()['username'] == mech_user.username
    dup = client.post('/api/mechanics', json=dict(payload, user_id=mech_user.id), headers=headers)
    assert dup.status_code == 409

    resp = client.put(f'/api/mechanics/{mech_id}', json={'is_active': False}, headers=headers)
    assert resp.get_json()['is_active'] is False
    assert client.put(f'/api/mechanics/{mech_id}', json={'is_active': 'no'}, headers=headers).status_code == 400

    detail = client.get(f'/api/mechanics/{mech_id}', headers=headers).get_json()
    assert detail['stats'] == {'total_orders': 0, 'active_orders': 0, 'completed_orders': 0, 'avg_completion_days': 0.0}


def test_mechanic_delete_refused_with_active_orders(client):
    headers = admin_headers(ensure_user())
    mech = ensure_mechanic()
    create_order(mechanic=mech)
    resp = client.delete(f'/api/mechanics/{mech.id}', headers=headers)
    assert resp.status_code == 409
    orders = client.get(f'/api/mechanics/{mech.id}/orders', headers=headers).get_json()
    assert orders['pagination']['total'] == 1
    assert orders['mechanic']['id'] == mech.id

    idle = ensure_mechanic()
    assert client.delete(f'/api/mechanics/{idle.id}', headers=headers).status_code == 200


def test_permission_denied_shape(client):
    user = ensure_user()
    headers = jwt_headers(user.id, perms=['CLI.READ'])
    resp = client.post('/api/clients', json=_client_payload(), headers=headers)
    assert resp.status_code == 403
    err = resp.get_json()['error']
    assert err['code'] == 'forbidden'
    assert err['detail'] == 'Missing permission'
    assert err['missing'] == ['CLI.MANAGE']
