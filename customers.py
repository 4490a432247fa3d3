# customers.py - customer intake and edits

from models import db, Customer, User, new_id, mark_pending
from permissions import can_reassign

REQUIRED_FIELDS = ('name', 'company', 'phone', 'address')
EDITABLE_FIELDS = ('name', 'company', 'position', 'phone', 'email', 'address',
                   'note', 'rep_name', 'rep_phone', 'rep_position')


class CustomerError(ValueError):
    pass


def _clean(data):
    return {f: (data.get(f) or '').strip() for f in EDITABLE_FIELDS if f in data}


def build_address(street, ward, district, province):
    """Join address parts the way reports expect them: province last."""
    return ', '.join(p.strip() for p in (street, ward, district, province))


def add_customer(user, data):
    fields = _clean(data)
    if not fields.get('address') and data.get('street'):
        fields['address'] = build_address(data.get('street', ''), data.get('ward', ''),
                                          data.get('district', ''), data.get('province', ''))
    missing = [f for f in REQUIRED_FIELDS if not fields.get(f)]
    if missing:
        raise CustomerError('Missing required fields: ' + ', '.join(missing))

    customer = Customer(id=new_id(), created_by=user.id, created_by_name=user.full_name,
                        pending='ADD_CUSTOMER', **fields)
    db.session.add(customer)
    db.session.commit()
    return customer


def update_customer(user, customer, data):
    fields = _clean(data)
    for f in REQUIRED_FIELDS:
        if f in fields and not fields[f]:
            raise CustomerError(f'{f} cannot be empty')

    new_owner_id = data.get('created_by')
    if new_owner_id and new_owner_id != customer.created_by:
        new_owner = db.session.get(User, new_owner_id)
        if new_owner is None:
            raise CustomerError('New owner does not exist')
        if not can_reassign(user, new_owner):
            raise PermissionError('You cannot hand this customer to that user')
        customer.created_by = new_owner.id
        customer.created_by_name = new_owner.full_name

    for f, value in fields.items():
        setattr(customer, f, value)
    mark_pending(customer, 'UPDATE_CUSTOMER')
    db.session.commit()
    return customer
