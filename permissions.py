# permissions.py - who can see what
# staff see their own records, managers their branch, admins everything

from functools import wraps

from flask import jsonify
from flask_login import current_user, login_required

from models import db, User, Customer, Order, ROLE_ADMIN, ROLE_MANAGER, ROLE_STAFF

BOARD_OF_DIRECTORS = 'Ban Giám Đốc'


def json_error(message, code=400):
    return jsonify({'success': False, 'error': message}), code


def roles_required(*roles):
    allowed = set(roles)

    def deco(fn):
        @wraps(fn)
        @login_required
        def wrapper(*args, **kwargs):
            if current_user.role not in allowed:
                return json_error('Forbidden: insufficient role', 403)
            return fn(*args, **kwargs)
        return wrapper
    return deco


def branch_user_ids(branch, include_admins=True):
    query = User.query.filter_by(branch=branch)
    if not include_admins:
        query = query.filter(User.role != ROLE_ADMIN)
    return {u.id for u in query.all()}


def visible_user_ids(user):
    """Ids of the users whose records `user` may see, or None for everyone."""
    if user.role == ROLE_ADMIN:
        return None
    if user.role == ROLE_MANAGER:
        ids = branch_user_ids(user.branch, include_admins=False)
        ids.add(user.id)
        return ids
    return {user.id}


def _scoped(model, user):
    query = model.query
    ids = visible_user_ids(user)
    if ids is not None:
        query = query.filter(model.created_by.in_(ids))
    return query


def customers_query(user):
    return _scoped(Customer, user)


def orders_query(user):
    return _scoped(Order, user)


def customers_for_user(user):
    return customers_query(user).order_by(Customer.created_at).all()


def orders_for_user(user):
    return orders_query(user).order_by(Order.date, Order.created_at).all()


def users_for_user(user):
    if user.role == ROLE_ADMIN:
        return User.query.order_by(User.full_name).all()
    if user.role == ROLE_MANAGER:
        return User.query.filter_by(branch=user.branch).order_by(User.full_name).all()
    return [user]


def can_see(user, record):
    ids = visible_user_ids(user)
    return ids is None or record.created_by in ids


def can_reassign(user, new_owner):
    if user.role == ROLE_ADMIN:
        return True
    if user.role == ROLE_MANAGER:
        return new_owner.branch == user.branch
    return False


def direct_manager(user):
    if user.role == ROLE_ADMIN:
        return None
    if user.role == ROLE_MANAGER:
        return BOARD_OF_DIRECTORS
    managers = User.query.filter_by(branch=user.branch, role=ROLE_MANAGER).order_by(User.full_name).all()
    return ', '.join(m.full_name for m in managers) or None


def managed_staff_count(user):
    if user.role != ROLE_MANAGER:
        return 0
    return db.session.query(db.func.count(User.id)).filter(
        User.branch == user.branch, User.role == ROLE_STAFF).scalar()
