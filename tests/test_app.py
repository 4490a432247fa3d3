import json

import pytest
import requests

from models import db, Customer, BRANCH_NORTH

HCM = '12 Lê Lợi, Phường Bến Nghé, Quận 1, Thành phố Hồ Chí Minh'


@pytest.fixture()
def staff(app, make_user, make_customer):
    """Two sellers and a manager at head office, one seller up north."""
    with app.app_context():
        make_user('hoa', role='manager')
        lan = make_user('lan')
        make_user('minh')
        tuan = make_user('tuan', branch=BRANCH_NORTH)
        return {
            'lan_shop': make_customer(lan, name='Lan Shop').id,
            'tuan_shop': make_customer(tuan, name='Tuan Shop').id,
        }


def order_payload(customer_id, **extra):
    return {
        'customer_id': customer_id,
        'date': '2025-06-02',
        'ice_creams': [{'line': 'Pro', 'size': '500ml', 'flavor': 'Kem Xoài', 'quantity': 2}],
        'toppings': [{'name': 'Ốc quế', 'unit': 'Hộp', 'quantity': 1, 'price': 20000}],
        'shipping_cost': 30000,
        **extra,
    }


def test_api_requires_login(client):
    resp = client.get('/api/orders')
    assert resp.status_code == 401
    assert resp.get_json() == {'success': False, 'error': 'Authentication required'}


def test_default_admin_can_log_in(client):
    resp = client.post('/api/login', json={'username': 'admin', 'password': '123'})
    body = resp.get_json()
    assert resp.status_code == 200
    assert body['user']['role'] == 'admin'
    assert body['synced'] is False
    assert client.get('/api/me').get_json()['user']['username'] == 'admin'

    client.post('/api/logout')
    assert client.get('/api/me').status_code == 401


def test_wrong_password(client):
    resp = client.post('/api/login', json={'username': 'admin', 'password': 'nope'})
    assert resp.status_code == 401


def test_catalog_and_price(client, login_as):
    login_as('admin', '123')
    assert len(client.get('/api/catalog').get_json()['flavors']) == 34
    assert client.get('/api/price?line=Pro%20Max&size=500ml').get_json()['price'] == 79000
    resp = client.get('/api/price?line=PRO&size=80gr')
    assert resp.status_code == 400


def test_staff_places_an_order(client, staff, login_as):
    login_as('lan')
    resp = client.post('/api/orders', json=order_payload(staff['lan_shop']))
    assert resp.status_code == 201
    order = resp.get_json()['order']
    assert order['total_revenue'] == 96000 + 20000
    assert order['total_payment'] == 146000
    assert order['items'][0]['line'] == 'PRO'
    assert 'warning' not in resp.get_json()

    log = client.get('/api/orders').get_json()
    assert [o['id'] for o in log] == [order['id']]
    assert log[0]['quantity_sold'] == 2

    detail = client.get(f"/api/orders/{order['id']}").get_json()
    assert detail['breakdown']['remaining'] == 146000

    customer = client.get(f"/api/customers/{staff['lan_shop']}").get_json()
    assert customer['stats']['order_count'] == 1
    assert [o['id'] for o in customer['orders']] == [order['id']]


def test_order_errors_come_back_as_400(client, staff, login_as):
    login_as('lan')
    resp = client.post('/api/orders', json=order_payload(staff['lan_shop'], deposit=10 ** 9))
    assert resp.status_code == 400
    assert 'Deposit' in resp.get_json()['error']

    resp = client.post('/api/orders', json=order_payload('missing'))
    assert resp.status_code == 400

    resp = client.get('/api/orders?start=yesterday')
    assert resp.status_code == 400


def test_staff_cannot_touch_other_records(client, staff, login_as):
    login_as('lan')
    assert client.post('/api/orders', json=order_payload(staff['tuan_shop'])).status_code == 403
    assert client.get(f"/api/customers/{staff['tuan_shop']}").status_code == 403
    assert client.get('/api/customers/nobody').status_code == 404
    assert client.get('/api/reports/analysis').status_code == 403
    assert client.post('/api/users', json={'username': 'x'}).status_code == 403
    assert [c['name'] for c in client.get('/api/customers').get_json()] == ['Lan Shop']


def test_manager_sees_branch_orders(client, staff, login_as):
    login_as('lan')
    order_id = client.post('/api/orders', json=order_payload(staff['lan_shop'])).get_json()['order']['id']
    client.post('/api/logout')

    login_as('hoa')
    assert client.get(f'/api/orders/{order_id}').status_code == 200
    overview = client.get('/api/reports/overview?range=year').get_json()
    assert 'top_employees' in overview
    assert client.get('/api/reports/analysis?range=year').status_code == 200
    assert client.get('/api/reports/total-sales?month=2025-06').get_json()['total_revenue'] == 116000
    assert client.get('/api/reports/overview?range=decade').status_code == 400


def test_manager_reassigns_within_branch_only(client, staff, login_as):
    login_as('hoa')
    resp = client.put(f"/api/customers/{staff['lan_shop']}", json={'created_by': 'u_minh', 'note': 'VIP'})
    assert resp.status_code == 200
    assert resp.get_json()['customer']['created_by_name'] == 'Minh'

    resp = client.put(f"/api/customers/{staff['lan_shop']}", json={'created_by': 'u_tuan'})
    assert resp.status_code == 403


def test_add_customer(client, staff, login_as):
    login_as('minh')
    resp = client.post('/api/customers', json={'name': 'Cô Ba', 'company': 'Tạp hóa Ba',
                                               'phone': '0909', 'address': HCM})
    assert resp.status_code == 201
    assert resp.get_json()['customer']['created_by'] == 'u_minh'

    resp = client.post('/api/customers', json={'name': 'Cô Ba'})
    assert resp.status_code == 400
    assert 'company' in resp.get_json()['error']


def test_admin_manages_users(client, login_as):
    login_as('admin', '123')
    resp = client.post('/api/users', json={'username': 'quan', 'full_name': 'Phạm Quân',
                                           'password': 'pw', 'role': 'manager', 'branch': BRANCH_NORTH})
    assert resp.status_code == 201
    user_id = resp.get_json()['user']['id']

    assert client.post('/api/users', json={'username': 'quan', 'full_name': 'X',
                                           'password': 'pw'}).status_code == 400
    assert client.put(f'/api/users/{user_id}', json={'role': 'boss'}).status_code == 400
    resp = client.put(f'/api/users/{user_id}', json={'position': 'Trưởng vùng', 'password': 'new'})
    assert resp.get_json()['user']['position'] == 'Trưởng vùng'
    assert client.put('/api/users/ghost', json={}).status_code == 404

    # a blank or missing password leaves the old one in place
    client.put(f'/api/users/{user_id}', json={'phone': '0987', 'password': ''})
    client.put(f'/api/users/{user_id}', json={'position': 'Giám sát'})

    client.post('/api/logout')
    login_as('quan', 'new')


def test_order_numbers_out_of_range(client, staff, login_as):
    login_as('lan')
    payload = order_payload(staff['lan_shop'])
    payload['ice_creams'][0]['quantity'] = 10 ** 20
    resp = client.post('/api/orders', json=payload)
    assert resp.status_code == 400

    body = json.dumps(order_payload(staff['lan_shop'])).replace('"quantity": 2', '"quantity": Infinity')
    resp = client.post('/api/orders', data=body, content_type='application/json')
    assert resp.status_code == 400
    assert 'whole number' in resp.get_json()['error']


def test_login_survives_duplicate_sheet_users(app, client, monkeypatch):
    class Reply:
        status_code = 200

        def raise_for_status(self):
            pass

        def json(self):
            return {'status': 'ok', 'data': {'users': [
                {'id': 'a', 'fullName': 'Admin A', 'username': 'admin', 'password': '123', 'role': 'admin'},
                {'id': 'b', 'fullName': 'Admin B', 'username': 'admin', 'password': '456', 'role': 'admin'},
            ]}}

    monkeypatch.setitem(app.config, 'SHEET_API_URL', 'https://sheet.test/exec')
    monkeypatch.setattr(requests, 'post', lambda *args, **kwargs: Reply())
    resp = client.post('/api/login', json={'username': 'admin', 'password': '123'})
    assert resp.status_code == 200
    assert resp.get_json()['synced'] is True
    assert resp.get_json()['user']['id'] == 'a'


def test_sheet_down_keeps_local_copy(app, client, staff, login_as, monkeypatch):
    def offline(*args, **kwargs):
        raise requests.ConnectionError('offline')

    monkeypatch.setitem(app.config, 'SHEET_API_URL', 'https://sheet.test/exec')
    monkeypatch.setattr(requests, 'post', offline)

    resp = login_as('minh')
    assert resp.get_json()['synced'] is False
    resp = client.post('/api/customers', json={'name': 'Cô Năm', 'company': 'Kem Năm',
                                               'phone': '0911', 'address': HCM})
    assert resp.status_code == 201
    assert 'warning' in resp.get_json()

    with app.app_context():
        saved = db.session.get(Customer, resp.get_json()['customer']['id'])
        assert saved.pending == 'ADD_CUSTOMER'


def test_admin_pushes_pending_records(app, client, staff, login_as, monkeypatch):
    sent = []

    class Ok:
        status_code = 200

        def raise_for_status(self):
            pass

        def json(self):
            return {'status': 'ok', 'data': None}

    def online(url, data=None, **kwargs):
        sent.append(json.loads(data)['action'])
        return Ok()

    login_as('admin', '123')
    client.post('/api/customers', json={'name': 'Cô Bảy', 'company': 'Kem Bảy',
                                        'phone': '0912', 'address': HCM})

    monkeypatch.setitem(app.config, 'SHEET_API_URL', 'https://sheet.test/exec')
    monkeypatch.setattr(requests, 'post', online)
    body = client.post('/api/sync/push').get_json()
    assert body == {'success': True, 'sent': 1, 'failed': 0}
    assert sent == ['ADD_CUSTOMER']
