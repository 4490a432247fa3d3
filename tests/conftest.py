import os

# must be set before the app module creates its tables
os.environ['DATABASE_URL'] = 'sqlite:///:memory:'
os.environ.pop('SHEET_API_URL', None)

from datetime import date

import pytest

from app import app as flask_app
from models import db, User, Customer, BRANCH_HEAD_OFFICE
from orders import assemble_order
from staff import ensure_default_admin


@pytest.fixture()
def app():
    flask_app.config.update(TESTING=True, SHEET_API_URL='')
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        ensure_default_admin('123')
    yield flask_app


@pytest.fixture()
def ctx(app):
    with app.app_context():
        yield
        db.session.remove()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user():
    def make(username, role='staff', branch=BRANCH_HEAD_OFFICE, password='pw', full_name=None):
        user = User(id=f'u_{username}', username=username, full_name=full_name or username.title(),
                    role=role, branch=branch)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user
    return make


@pytest.fixture()
def make_customer():
    counter = iter(range(1, 10000))

    def make(owner, name=None, address='12 Lê Lợi, Phường Bến Nghé, Quận 1, Thành phố Hồ Chí Minh'):
        n = next(counter)
        customer = Customer(id=f'c{n}', name=name or f'Customer {n}', company=f'Shop {n}',
                            phone='0900000000', address=address,
                            created_by=owner.id, created_by_name=owner.full_name)
        db.session.add(customer)
        db.session.commit()
        return customer
    return make


@pytest.fixture()
def make_order():
    def make(owner, customer, when=None, ice_creams=None, toppings=None, **extra):
        data = {
            'date': (when or date.today()).isoformat(),
            'ice_creams': ice_creams if ice_creams is not None else
            [{'line': 'PRO', 'size': '500ml', 'flavor': 'Kem Xoài', 'quantity': 1}],
            'toppings': toppings or [],
            **extra,
        }
        order = assemble_order(owner, customer, data)
        db.session.add(order)
        db.session.commit()
        return order
    return make


def login(client, username, password='pw'):
    return client.post('/api/login', json={'username': username, 'password': password})


@pytest.fixture()
def login_as(client):
    def do(username, password='pw'):
        resp = login(client, username, password)
        assert resp.status_code == 200, resp.get_json()
        return resp
    return do
