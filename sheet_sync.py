# sheet_sync.py - keeps the local database in step with the google sheet
# the sheet is an apps script web app: every call posts {"action", "data"} and gets
# back {"status": "ok" | "error", "data", "message"}. writes land locally first and
# are pushed one by one; a record that could not be sent keeps its pending action
# until push_pending retries it. a pull swaps in the sheet rows but keeps unsent ones.

import json
import logging
from datetime import date, datetime

import requests
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import generate_password_hash

from models import db, User, Customer, Order, IceCreamItem, ToppingItem, SyncState, ROLE_STAFF

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = 'last_sync'


class SheetSyncError(Exception):
    pass


class SheetClient:
    def __init__(self, url, timeout=15):
        self.url = url
        self.timeout = timeout

    def call(self, action, data=None):
        payload = json.dumps({'action': action, 'data': data or {}})
        try:
            # plain text body, apps script does not answer CORS preflights
            resp = requests.post(self.url, data=payload.encode('utf-8'),
                                 headers={'Content-Type': 'text/plain;charset=utf-8'},
                                 timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise SheetSyncError(f'{action}: {e}') from e
        try:
            body = resp.json()
        except ValueError:
            raise SheetSyncError(f'{action}: sheet did not answer with JSON') from None
        if not isinstance(body, dict):
            raise SheetSyncError(f'{action}: unexpected answer from sheet')
        if body.get('status') == 'error':
            raise SheetSyncError(f'{action}: {body.get("message")}')
        return body.get('data')


def client_from_config(config):
    url = config.get('SHEET_API_URL')
    if not url:
        return None
    return SheetClient(url, timeout=config.get('SHEET_API_TIMEOUT', 15))


# --- wire format (camelCase columns of the sheet) ---

def _int(value):
    if value in (None, ''):
        return 0
    return int(float(value))


def _flag(value):
    return value is True or str(value).strip().upper() == 'TRUE'


def _day(value):
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _timestamp(value):
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).replace(tzinfo=None)
    except ValueError:
        return None


def user_to_sheet(user):
    return {
        'id': user.id,
        'fullName': user.full_name,
        'phone': user.phone,
        'position': user.position,
        'username': user.username,
        'passwordHash': user.password_hash,
        'role': user.role,
        'branch': user.branch,
    }


def user_from_sheet(row):
    if row.get('passwordHash'):
        password_hash = row['passwordHash']
    else:
        # older sheets keep the password in clear text
        password_hash = generate_password_hash(str(row.get('password') or ''))
    return User(
        id=str(row['id']),
        full_name=row.get('fullName') or '',
        phone=str(row.get('phone') or ''),
        position=row.get('position') or '',
        username=str(row['username']),
        password_hash=password_hash,
        role=(row.get('role') or ROLE_STAFF).lower(),
        branch=row.get('branch') or '',
    )


def customer_to_sheet(customer):
    return {
        'id': customer.id,
        'name': customer.name,
        'company': customer.company,
        'position': customer.position,
        'phone': customer.phone,
        'email': customer.email,
        'address': customer.address,
        'note': customer.note,
        'repName': customer.rep_name,
        'repPhone': customer.rep_phone,
        'repPosition': customer.rep_position,
        'createdBy': customer.created_by,
        'createdByName': customer.created_by_name,
        'createdAt': customer.created_at.isoformat() if customer.created_at else None,
    }


def customer_from_sheet(row):
    return Customer(
        id=str(row['id']),
        name=row.get('name') or '',
        company=row.get('company') or '',
        position=row.get('position') or '',
        phone=str(row.get('phone') or ''),
        email=row.get('email') or '',
        address=row.get('address') or '',
        note=row.get('note') or '',
        rep_name=row.get('repName') or '',
        rep_phone=str(row.get('repPhone') or ''),
        rep_position=row.get('repPosition') or '',
        created_by=str(row.get('createdBy') or ''),
        created_by_name=row.get('createdByName') or '',
        created_at=_timestamp(row.get('createdAt')),
    )


def order_to_sheet(order):
    return {
        'id': order.id,
        'date': order.date.isoformat(),
        'customerId': order.customer_id,
        'customerName': order.customer_name,
        'companyName': order.company_name,
        'items': [{'line': i.line, 'size': i.size, 'flavor': i.flavor, 'quantity': i.quantity,
                   'price': i.price, 'total': i.total, 'isGift': i.is_gift} for i in order.items],
        'toppings': [{'name': t.name, 'unit': t.unit, 'quantity': t.quantity,
                      'price': t.price, 'total': t.total, 'isGift': t.is_gift} for t in order.toppings],
        'hasInvoice': order.has_invoice,
        'revenueIceCream': order.revenue_ice_cream,
        'revenueTopping': order.revenue_topping,
        'totalRevenue': order.total_revenue,
        'shippingCost': order.shipping_cost,
        'totalPayment': order.total_payment,
        'deposit': order.deposit,
        'createdBy': order.created_by,
        'createdByName': order.created_by_name,
    }


def order_from_sheet(row):
    items = row.get('items') if isinstance(row.get('items'), list) else []
    toppings = row.get('toppings') if isinstance(row.get('toppings'), list) else []
    order = Order(
        id=str(row['id']),
        date=_day(row['date']),
        customer_id=str(row.get('customerId') or ''),
        customer_name=row.get('customerName') or '',
        company_name=row.get('companyName') or '',
        has_invoice=_flag(row.get('hasInvoice')),
        revenue_ice_cream=_int(row.get('revenueIceCream')),
        revenue_topping=_int(row.get('revenueTopping')),
        total_revenue=_int(row.get('totalRevenue')),
        shipping_cost=_int(row.get('shippingCost')),
        total_payment=_int(row.get('totalPayment')),
        deposit=_int(row.get('deposit')),
        created_by=str(row.get('createdBy') or ''),
        created_by_name=row.get('createdByName') or '',
    )
    for n, i in enumerate(items):
        order.items.append(IceCreamItem(
            position=n, line=i.get('line') or '', size=i.get('size') or '', flavor=i.get('flavor') or '',
            quantity=_int(i.get('quantity')), price=_int(i.get('price')), total=_int(i.get('total')),
            is_gift=_flag(i.get('isGift'))))
    for n, t in enumerate(toppings):
        order.toppings.append(ToppingItem(
            position=n, name=t.get('name') or '', unit=t.get('unit') or '',
            quantity=_int(t.get('quantity')), price=_int(t.get('price')), total=_int(t.get('total')),
            is_gift=_flag(t.get('isGift'))))
    return order


TO_SHEET = {User: user_to_sheet, Customer: customer_to_sheet, Order: order_to_sheet}


# --- pull ---

def _replace(model, remote):
    """Swap the synced rows of ``model`` for ``remote``; unsent local rows stay."""
    kept = model.query.filter(model.pending.isnot(None)).all()
    for row in model.query.filter(model.pending.is_(None)).all():
        db.session.delete(row)
    db.session.flush()

    seen_ids = {r.id for r in kept}
    taken_usernames = {r.username for r in kept} if model is User else set()
    added = 0
    for record in remote:
        if record.id in seen_ids:
            logger.warning('Skipping sheet %s %s, the id is already used', model.__name__.lower(), record.id)
            continue
        if model is User and record.username in taken_usernames:
            logger.warning('Skipping sheet user %s, the username is already used', record.username)
            continue
        seen_ids.add(record.id)
        if model is User:
            taken_usernames.add(record.username)
        db.session.add(record)
        added += 1
    return added


def last_sync():
    state = db.session.get(SyncState, LAST_SYNC_KEY)
    return state.value if state else None


def pull_all(client):
    """Refresh the local tables from the sheet; returns True when it worked."""
    if client is None:
        return False
    try:
        data = client.call('GET_ALL_DATA')
    except SheetSyncError as e:
        logger.warning('Sync failed, keeping local data: %s', e)
        return False
    if not isinstance(data, dict):
        return False

    try:
        counts = {}
        if data.get('users'):
            counts['users'] = _replace(User, [user_from_sheet(r) for r in data['users']])
        if data.get('customers') is not None:
            counts['customers'] = _replace(Customer, [customer_from_sheet(r) for r in data['customers']])
        if data.get('orders') is not None:
            counts['orders'] = _replace(Order, [order_from_sheet(r) for r in data['orders']])
        db.session.merge(SyncState(key=LAST_SYNC_KEY, value=datetime.utcnow().isoformat()))
        db.session.commit()
    except (KeyError, TypeError, ValueError, OverflowError, SQLAlchemyError) as e:
        db.session.rollback()
        logger.warning('Sheet returned malformed data, keeping local data: %s', e)
        return False

    logger.info('Pulled from sheet: %s', counts)
    return True


# --- push ---

def push(client, record):
    """Send one pending record. Returns a warning message, or None when nothing went wrong."""
    action = record.pending
    if client is None or action is None:
        return None
    try:
        client.call(action, TO_SHEET[type(record)](record))
    except SheetSyncError as e:
        logger.warning('Could not push %s %s: %s', action, record.id, e)
        return 'Saved locally, but not yet synced to the sheet'
    record.pending = None
    db.session.commit()
    return None


def push_pending(client):
    """Retry every unsent record. Returns (sent, failed)."""
    sent = failed = 0
    if client is None:
        return sent, failed
    # users first so the sheet knows the owners of customers and orders
    for model in (User, Customer, Order):
        for record in model.query.filter(model.pending.isnot(None)).all():
            if push(client, record) is None:
                sent += 1
            else:
                failed += 1
    logger.info('Pushed %d pending records, %d failed', sent, failed)
    return sent, failed
