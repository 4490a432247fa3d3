# orders.py - turns an order form into a priced order record
# paid rows earn revenue; discount and first order gift rows are recorded with is_gift

from datetime import date

from models import db, Order, IceCreamItem, ToppingItem, new_id
from pricing import FLAVORS, PricingError, normalize_line, unit_price, line_total


class OrderError(ValueError):
    pass


# largest values accepted from a form; keeps line totals inside a 64 bit column
MAX_QUANTITY = 100000
MAX_AMOUNT = 10 ** 12


def whole_number(value, field, minimum=0, maximum=MAX_AMOUNT):
    """return value as int or raise OrderError if invalid / out of range"""
    if isinstance(value, bool):
        raise OrderError(f'{field} must be a whole number')
    try:
        v = int(value)
    except (TypeError, ValueError, OverflowError):
        raise OrderError(f'{field} must be a whole number') from None
    if v != value and not isinstance(value, str):
        raise OrderError(f'{field} must be a whole number')
    if v < minimum:
        raise OrderError(f'{field} must be at least {minimum}')
    if v > maximum:
        raise OrderError(f'{field} must be at most {maximum}')
    return v


def parse_date(value):
    if not value:
        return date.today()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise OrderError(f'Invalid order date: {value!r}') from None


def is_first_order(customer_id):
    return db.session.query(Order.id).filter_by(customer_id=customer_id).first() is None


def price_ice_cream_rows(rows, is_gift=False, allow_price=False):
    """Validate ice cream rows and price them from the table.

    Discount rows may carry their own unit price (``allow_price``); every
    other row is priced from the line/size table.
    """
    label = 'discount' if is_gift else 'ice cream'
    priced = []
    for n, row in enumerate(rows or [], start=1):
        line, size = row.get('line'), row.get('size')
        flavor = (row.get('flavor') or '').strip()
        if not line or not size or not flavor:
            raise OrderError(f'{label} row {n}: line, size and flavor are required')
        if flavor not in FLAVORS:
            raise OrderError(f'{label} row {n}: unknown flavor {flavor!r}')
        try:
            line = normalize_line(line)
            price = unit_price(line, size)
        except PricingError as e:
            raise OrderError(f'{label} row {n}: {e}') from None
        quantity = whole_number(row.get('quantity'), f'{label} row {n} quantity', minimum=1,
                                maximum=MAX_QUANTITY)
        if allow_price and row.get('price') is not None:
            price = whole_number(row['price'], f'{label} row {n} price')
        priced.append(IceCreamItem(line=line, size=size, flavor=flavor, quantity=quantity,
                                   price=price, total=line_total(price, quantity), is_gift=is_gift))
    return priced


def price_topping_rows(rows, is_gift=False):
    label = 'gift' if is_gift else 'topping'
    priced = []
    for n, row in enumerate(rows or [], start=1):
        name = (row.get('name') or '').strip()
        unit = (row.get('unit') or '').strip()
        if not name or not unit:
            raise OrderError(f'{label} row {n}: name and unit are required')
        quantity = whole_number(row.get('quantity'), f'{label} row {n} quantity', minimum=1,
                                maximum=MAX_QUANTITY)
        price = whole_number(row.get('price', 0), f'{label} row {n} price')
        priced.append(ToppingItem(name=name, unit=unit, quantity=quantity,
                                  price=price, total=line_total(price, quantity), is_gift=is_gift))
    return priced


def assemble_order(user, customer, data):
    """Build (but do not save) the order placed by ``user`` for ``customer``."""
    ice_creams = price_ice_cream_rows(data.get('ice_creams'))
    discounts = price_ice_cream_rows(data.get('discount_items'), is_gift=True, allow_price=True)
    gifts = price_topping_rows(data.get('gift_toppings'), is_gift=True)
    toppings = price_topping_rows(data.get('toppings'))

    if not (ice_creams or discounts or gifts or toppings):
        raise OrderError('An order needs at least one product')
    # first order gifts are only for customers who never bought before
    if gifts and not is_first_order(customer.id):
        raise OrderError('First order gifts are only available on a customer\'s first order')

    shipping_cost = whole_number(data.get('shipping_cost', 0), 'shipping cost')
    deposit = whole_number(data.get('deposit', 0), 'deposit')

    revenue_ice_cream = sum(i.total for i in ice_creams)
    revenue_topping = sum(t.total for t in toppings)
    total_revenue = revenue_ice_cream + revenue_topping
    total_payment = total_revenue + shipping_cost
    if deposit > total_payment:
        raise OrderError('Deposit cannot be larger than the total payment')

    order = Order(
        id=new_id(),
        date=parse_date(data.get('date')),
        customer_id=customer.id,
        customer_name=customer.name,
        company_name=customer.company,
        has_invoice=bool(data.get('has_invoice')),
        revenue_ice_cream=revenue_ice_cream,
        revenue_topping=revenue_topping,
        total_revenue=total_revenue,
        shipping_cost=shipping_cost,
        total_payment=total_payment,
        deposit=deposit,
        created_by=user.id,
        created_by_name=user.full_name,
    )
    # merged layout: paid rows first, then the free ones
    for position, item in enumerate(ice_creams + discounts):
        item.position = position
        order.items.append(item)
    for position, item in enumerate(toppings + gifts):
        item.position = position
        order.toppings.append(item)
    return order


def order_breakdown(order):
    """Re-derive the invoice summary of a saved order."""
    sold = [i for i in order.items if not i.is_gift]
    discounts = [i for i in order.items if i.is_gift]
    sold_toppings = [t for t in order.toppings if not t.is_gift]
    gifts = [t for t in order.toppings if t.is_gift]

    gift_value = sum(i.total for i in discounts) + sum(t.total for t in gifts)
    total_payment = order.revenue_ice_cream + order.revenue_topping + order.shipping_cost
    return {
        'sold_items': [i.to_dict() for i in sold],
        'sold_toppings': [t.to_dict() for t in sold_toppings],
        'discount_items': [i.to_dict() for i in discounts],
        'gift_toppings': [t.to_dict() for t in gifts],
        'quantity_sold': sum(i.quantity for i in sold),
        'quantity_given': sum(i.quantity for i in discounts) + sum(t.quantity for t in gifts),
        'revenue_ice_cream': order.revenue_ice_cream,
        'revenue_topping': order.revenue_topping,
        'gift_value': gift_value,
        'shipping_cost': order.shipping_cost,
        'total_order_value': total_payment + gift_value,
        'total_payment': total_payment,
        'deposit': order.deposit,
        'remaining': total_payment - order.deposit,
    }
