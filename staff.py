# staff.py - staff accounts: login check, admin seeding, add / edit

import logging

from models import db, User, new_id, mark_pending, ROLES, BRANCHES, ROLE_STAFF, ROLE_ADMIN, BRANCH_HEAD_OFFICE

logger = logging.getLogger(__name__)

DEFAULT_POSITION = 'Nhân viên kinh doanh'


class UserError(ValueError):
    pass


def authenticate(username, password):
    user = User.query.filter_by(username=(username or '').strip()).first()
    if user and user.check_password(password or ''):
        return user
    return None


def ensure_default_admin(password):
    """create the system admin when the user table is empty"""
    if User.query.count():
        return None
    admin = User(id='admin_init', full_name='System Admin', phone='0909000000',
                 position='Administrator', username='admin', role=ROLE_ADMIN,
                 branch=BRANCH_HEAD_OFFICE)
    admin.set_password(password)
    db.session.add(admin)
    db.session.commit()
    logger.info('Seeded default admin account')
    return admin


def _check_role_branch(role, branch):
    if role not in ROLES:
        raise UserError(f'Unknown role: {role!r}')
    if branch not in BRANCHES:
        raise UserError(f'Unknown branch: {branch!r}')


def add_user(data):
    username = (data.get('username') or '').strip()
    full_name = (data.get('full_name') or '').strip()
    password = data.get('password') or ''
    if not username or not full_name or not password:
        raise UserError('Username, full name and password are required')
    if User.query.filter_by(username=username).first():
        raise UserError('Username already exists')

    role = data.get('role') or ROLE_STAFF
    branch = data.get('branch') or BRANCH_HEAD_OFFICE
    _check_role_branch(role, branch)

    user = User(id=new_id(), username=username, full_name=full_name, role=role, branch=branch,
                phone=(data.get('phone') or '').strip(),
                position=(data.get('position') or DEFAULT_POSITION).strip(),
                pending='ADD_USER')
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


def update_user(user, data):
    role = data.get('role', user.role)
    branch = data.get('branch', user.branch)
    _check_role_branch(role, branch)

    username = user.username
    if 'username' in data:
        username = (data.get('username') or '').strip()
        if not username:
            raise UserError('Username cannot be empty')
        taken = User.query.filter(User.username == username, User.id != user.id).first()
        if taken:
            raise UserError('Username already exists')
    full_name = user.full_name
    if 'full_name' in data:
        full_name = (data.get('full_name') or '').strip()
        if not full_name:
            raise UserError('Full name cannot be empty')

    user.username, user.full_name = username, full_name
    user.role, user.branch = role, branch

    for f in ('phone', 'position'):
        if f in data:
            setattr(user, f, (data.get(f) or '').strip())
    # blank password keeps the old one
    if data.get('password'):
        user.set_password(data['password'])
    mark_pending(user, 'UPDATE_USER')
    db.session.commit()
    return user
