# app.py - handles system logic and routing for the ice cream sales manager
# run this file starting the server: python app.py

import logging
import os
from datetime import date

import click
from flask import Flask, request, jsonify
from flask_login import LoginManager, login_user, logout_user, login_required, current_user

from models import db, User, Customer, Order, ROLE_ADMIN, ROLE_MANAGER
from pricing import PricingError, catalog, unit_price, normalize_line
from permissions import json_error, roles_required, can_see, users_for_user
from orders import OrderError, assemble_order, order_breakdown
from customers import CustomerError, add_customer, update_customer
from staff import UserError, authenticate, ensure_default_admin, add_user, update_user
from reports import (ReportError, overview, analysis, sales_log, total_sales,
                     customer_list, customer_stats, order_history)
from sheet_sync import client_from_config, pull_all, push, push_pending, last_sync

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///babyboss.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'babyboss-dev-key')
app.config['SHEET_API_URL'] = os.environ.get('SHEET_API_URL', '')
app.config['SHEET_API_TIMEOUT'] = float(os.environ.get('SHEET_API_TIMEOUT', 15))
app.config['DEFAULT_ADMIN_PASSWORD'] = os.environ.get('DEFAULT_ADMIN_PASSWORD', '123')

db.init_app(app)

# login manager setup
login_manager = LoginManager()
login_manager.init_app(app)


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, user_id)


@login_manager.unauthorized_handler
def unauthorized():
    return json_error('Authentication required', 401)


def init_db():
    db.create_all()
    ensure_default_admin(app.config['DEFAULT_ADMIN_PASSWORD'])


# setup database and the built in admin
with app.app_context():
    init_db()


def sheet_client():
    return client_from_config(app.config)


def request_data():
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    if not isinstance(data, dict):
        raise ReportError('Expected a JSON object')
    return data


def query_date(name):
    value = request.args.get(name)
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ReportError(f'Invalid date for {name}: {value!r}') from None


def saved(payload, warning, code=200):
    body = {'success': True, **payload}
    if warning:
        body['warning'] = warning
    return jsonify(body), code


# domain errors become 400s, scope violations 403s
@app.errorhandler(OrderError)
@app.errorhandler(CustomerError)
@app.errorhandler(UserError)
@app.errorhandler(PricingError)
@app.errorhandler(ReportError)
def bad_request(e):
    db.session.rollback()
    return json_error(str(e), 400)


@app.errorhandler(PermissionError)
def forbidden(e):
    db.session.rollback()
    return json_error(str(e) or 'Forbidden', 403)


@app.errorhandler(404)
def not_found(_e):
    return json_error('Not found', 404)


# login and logout
@app.route('/api/login', methods=['POST'])
def login():
    data = request_data()
    # fetch the latest staff list first; the local copy is used if the sheet is down
    synced = pull_all(sheet_client())
    ensure_default_admin(app.config['DEFAULT_ADMIN_PASSWORD'])
    user = authenticate(data.get('username'), data.get('password'))
    if user is None:
        return json_error('Invalid username or password', 401)
    login_user(user)
    logger.info('%s logged in', user.username)
    return jsonify({'success': True, 'user': user.to_dict(), 'synced': synced})


@app.route('/api/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'success': True})


@app.route('/api/me')
@login_required
def me():
    return jsonify({'user': current_user.to_dict(), 'last_sync': last_sync()})


# price list, flavors and branches for the order form
@app.route('/api/catalog')
@login_required
def get_catalog():
    return jsonify(catalog())


@app.route('/api/price')
@login_required
def get_price():
    line = normalize_line(request.args.get('line'))
    size = request.args.get('size')
    return jsonify({'line': line, 'size': size, 'price': unit_price(line, size)})


# staff management (admin only for changes)
@app.route('/api/users', methods=['GET', 'POST'])
@login_required
def users():
    if request.method == 'GET':
        return jsonify([u.to_dict() for u in users_for_user(current_user)])
    if current_user.role != ROLE_ADMIN:
        return json_error('Forbidden: insufficient role', 403)
    user = add_user(request_data())
    warning = push(sheet_client(), user)
    return saved({'user': user.to_dict()}, warning, 201)


@app.route('/api/users/<user_id>', methods=['PUT'])
@roles_required(ROLE_ADMIN)
def edit_user(user_id):
    user = db.get_or_404(User, user_id)
    update_user(user, request_data())
    warning = push(sheet_client(), user)
    return saved({'user': user.to_dict()}, warning)


# customers visible to the current user
@app.route('/api/customers', methods=['GET', 'POST'])
@login_required
def customers():
    if request.method == 'POST':
        customer = add_customer(current_user, request_data())
        logger.info('Customer %s added by %s', customer.id, current_user.username)
        warning = push(sheet_client(), customer)
        return saved({'customer': customer.to_dict()}, warning, 201)

    rows = customer_list(
        current_user,
        branch=request.args.get('branch'),
        owner=request.args.get('owner'),
        province=request.args.get('province'),
        first_buy_month=request.args.get('first_buy_month'),
        last_buy_month=request.args.get('last_buy_month'),
    )
    return jsonify(rows)


@app.route('/api/customers/<customer_id>', methods=['GET', 'PUT'])
@login_required
def customer_detail(customer_id):
    customer = db.get_or_404(Customer, customer_id)
    if not can_see(current_user, customer):
        return json_error('Forbidden', 403)
    if request.method == 'PUT':
        update_customer(current_user, customer, request_data())
        warning = push(sheet_client(), customer)
        return saved({'customer': customer.to_dict()}, warning)
    return jsonify({
        **customer.to_dict(),
        'stats': customer_stats(customer.id),
        'orders': [o.to_dict() for o in order_history(customer.id)],
    })


# order entry and the sales log
@app.route('/api/orders', methods=['GET', 'POST'])
@login_required
def orders():
    if request.method == 'GET':
        rows = sales_log(
            current_user,
            start=query_date('start'),
            end=query_date('end'),
            branch=request.args.get('branch'),
            creator=request.args.get('creator'),
        )
        return jsonify(rows)

    data = request_data()
    customer = db.session.get(Customer, str(data.get('customer_id') or ''))
    if customer is None:
        raise OrderError('Please choose a customer')
    if not can_see(current_user, customer):
        return json_error('Forbidden', 403)
    order = assemble_order(current_user, customer, data)
    order.pending = 'ADD_ORDER'
    db.session.add(order)
    db.session.commit()
    logger.info('Order %s saved for %s (%d dong)', order.id, customer.name, order.total_payment)
    warning = push(sheet_client(), order)
    return saved({'order': order.to_dict()}, warning, 201)


@app.route('/api/orders/<order_id>')
@login_required
def order_detail(order_id):
    order = db.get_or_404(Order, order_id)
    if not can_see(current_user, order):
        return json_error('Forbidden', 403)
    return jsonify({**order.to_dict(), 'breakdown': order_breakdown(order)})


# dashboards
@app.route('/api/reports/overview')
@login_required
def report_overview():
    return jsonify(overview(current_user, request.args.get('range', 'month')))


@app.route('/api/reports/analysis')
@roles_required(ROLE_ADMIN, ROLE_MANAGER)
def report_analysis():
    return jsonify(analysis(current_user, request.args.get('range', 'month'),
                            branch=request.args.get('branch')))


@app.route('/api/reports/total-sales')
@login_required
def report_total_sales():
    return jsonify(total_sales(current_user, request.args.get('month'),
                               branch=request.args.get('branch')))


# manual sync with the google sheet
@app.route('/api/sync/pull', methods=['POST'])
@roles_required(ROLE_ADMIN)
def sync_pull():
    ok = pull_all(sheet_client())
    return jsonify({'success': ok, 'last_sync': last_sync()})


@app.route('/api/sync/push', methods=['POST'])
@roles_required(ROLE_ADMIN)
def sync_push():
    sent, failed = push_pending(sheet_client())
    return jsonify({'success': failed == 0, 'sent': sent, 'failed': failed})


@app.cli.command('sync')
def sync_command():
    """Pull users, customers and orders from the sheet."""
    if pull_all(sheet_client()):
        click.echo(f'Synced at {last_sync()}')
    else:
        click.echo('Sync failed or SHEET_API_URL is not set; local data kept.')


@app.cli.command('push')
def push_command():
    """Send records that were saved while the sheet was unreachable."""
    sent, failed = push_pending(sheet_client())
    click.echo(f'{sent} sent, {failed} failed')


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    app.run(debug=True, port=5001)
