# this file defines the database structure for the sales manager
# it is the local copy of the google sheet; 5 tables hold staff, customers and orders

import uuid
from datetime import datetime

from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()

ROLE_STAFF = 'staff'
ROLE_MANAGER = 'manager'
ROLE_ADMIN = 'admin'
ROLES = (ROLE_STAFF, ROLE_MANAGER, ROLE_ADMIN)

BRANCH_HEAD_OFFICE = 'Baby Boss Hội sở'
BRANCH_NORTH = 'Baby Boss miền Bắc'
BRANCHES = (BRANCH_HEAD_OFFICE, BRANCH_NORTH)


def new_id():
    return uuid.uuid4().hex


def mark_pending(record, action):
    # an unsent ADD already carries the latest values
    if not (record.pending or '').startswith('ADD_'):
        record.pending = action


# table 1: users - staff accounts with role and branch
class User(UserMixin, db.Model):
    id = db.Column(db.String(64), primary_key=True, default=new_id)
    full_name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(30), default='')
    position = db.Column(db.String(80), default='')
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(200), nullable=False) # stored as a secure hash
    role = db.Column(db.String(20), nullable=False, default=ROLE_STAFF)
    branch = db.Column(db.String(80), nullable=False, default=BRANCH_HEAD_OFFICE)
    pending = db.Column(db.String(20)) # sheet action still to send, None once synced

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'full_name': self.full_name,
            'phone': self.phone,
            'position': self.position,
            'username': self.username,
            'role': self.role,
            'branch': self.branch,
        }

    def __repr__(self):
        return f'<User {self.username} ({self.role})>'


# table 2: customers - shops and companies registered by a salesperson
class Customer(db.Model):
    id = db.Column(db.String(64), primary_key=True, default=new_id)
    name = db.Column(db.String(120), nullable=False)
    company = db.Column(db.String(200), nullable=False)
    position = db.Column(db.String(80), default='')
    phone = db.Column(db.String(30), nullable=False)
    email = db.Column(db.String(120), default='')
    address = db.Column(db.String(300), default='') # "street, ward, district, province"
    note = db.Column(db.String(500), default='')
    rep_name = db.Column(db.String(120), default='')
    rep_phone = db.Column(db.String(30), default='')
    rep_position = db.Column(db.String(80), default='')
    created_by = db.Column(db.String(64), nullable=False, index=True) # user id, kept even if the user is removed
    created_by_name = db.Column(db.String(120), default='')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    pending = db.Column(db.String(20))

    @property
    def province(self):
        parts = (self.address or '').split(',')
        return parts[-1].strip()

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'company': self.company,
            'position': self.position,
            'phone': self.phone,
            'email': self.email,
            'address': self.address,
            'note': self.note,
            'rep_name': self.rep_name,
            'rep_phone': self.rep_phone,
            'rep_position': self.rep_position,
            'created_by': self.created_by,
            'created_by_name': self.created_by_name,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Customer {self.name}>'


# table 3: orders - one row per order, money fields are whole dong
class Order(db.Model):
    id = db.Column(db.String(64), primary_key=True, default=new_id)
    date = db.Column(db.Date, nullable=False, index=True)
    customer_id = db.Column(db.String(64), nullable=False, index=True)
    customer_name = db.Column(db.String(120), default='')
    company_name = db.Column(db.String(200), default='')
    has_invoice = db.Column(db.Boolean, default=False)
    revenue_ice_cream = db.Column(db.Integer, default=0) # paid ice cream only
    revenue_topping = db.Column(db.Integer, default=0)   # paid toppings only
    total_revenue = db.Column(db.Integer, default=0)
    shipping_cost = db.Column(db.Integer, default=0)
    total_payment = db.Column(db.Integer, default=0)     # revenue + shipping
    deposit = db.Column(db.Integer, default=0)
    created_by = db.Column(db.String(64), nullable=False, index=True)
    created_by_name = db.Column(db.String(120), default='')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    pending = db.Column(db.String(20))

    items = db.relationship('IceCreamItem', backref='order', lazy=True,
                            cascade='all, delete-orphan', order_by='IceCreamItem.position')
    toppings = db.relationship('ToppingItem', backref='order', lazy=True,
                               cascade='all, delete-orphan', order_by='ToppingItem.position')

    @property
    def remaining(self):
        return self.total_payment - self.deposit

    def paid_quantity(self):
        return sum(i.quantity for i in self.items if not i.is_gift)

    def gift_quantity(self):
        return sum(i.quantity for i in self.items if i.is_gift)

    def to_dict(self):
        return {
            'id': self.id,
            'date': self.date.isoformat(),
            'customer_id': self.customer_id,
            'customer_name': self.customer_name,
            'company_name': self.company_name,
            'items': [i.to_dict() for i in self.items],
            'toppings': [t.to_dict() for t in self.toppings],
            'has_invoice': self.has_invoice,
            'revenue_ice_cream': self.revenue_ice_cream,
            'revenue_topping': self.revenue_topping,
            'total_revenue': self.total_revenue,
            'shipping_cost': self.shipping_cost,
            'total_payment': self.total_payment,
            'deposit': self.deposit,
            'remaining': self.remaining,
            'created_by': self.created_by,
            'created_by_name': self.created_by_name,
        }

    def __repr__(self):
        return f'<Order {self.id} {self.customer_name}>'


# table 4: ice cream lines of an order (paid and discount rows)
class IceCreamItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(64), db.ForeignKey('order.id'), nullable=False)
    position = db.Column(db.Integer, default=0)
    line = db.Column(db.String(20), nullable=False)
    size = db.Column(db.String(20), nullable=False)
    flavor = db.Column(db.String(80), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Integer, nullable=False)
    total = db.Column(db.Integer, nullable=False)
    is_gift = db.Column(db.Boolean, default=False) # discount rows are given away

    def to_dict(self):
        return {
            'line': self.line,
            'size': self.size,
            'flavor': self.flavor,
            'quantity': self.quantity,
            'price': self.price,
            'total': self.total,
            'is_gift': self.is_gift,
        }


# table 5: topping and tool lines of an order (paid and first order gifts)
class ToppingItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(64), db.ForeignKey('order.id'), nullable=False)
    position = db.Column(db.Integer, default=0)
    name = db.Column(db.String(120), nullable=False)
    unit = db.Column(db.String(40), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Integer, nullable=False)
    total = db.Column(db.Integer, nullable=False)
    is_gift = db.Column(db.Boolean, default=False)

    def to_dict(self):
        return {
            'name': self.name,
            'unit': self.unit,
            'quantity': self.quantity,
            'price': self.price,
            'total': self.total,
            'is_gift': self.is_gift,
        }


# sync bookkeeping, one row keyed by name
class SyncState(db.Model):
    key = db.Column(db.String(40), primary_key=True)
    value = db.Column(db.String(200))
