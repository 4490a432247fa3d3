# reports.py - dashboards and sales reports
# every report starts from the records the caller is allowed to see

from collections import defaultdict
from datetime import date, timedelta

from models import db, User, Order, ROLE_ADMIN, ROLE_MANAGER, ROLE_STAFF
from permissions import (orders_for_user, customers_for_user, branch_user_ids,
                         users_for_user, direct_manager, managed_staff_count)

WINDOWS = ('week', 'month', 'year')
TOP_N = 5
LATEST_DAYS = 3


class ReportError(ValueError):
    pass


def in_window(d, window, today):
    if window == 'month':
        return d.year == today.year and d.month == today.month
    if window == 'year':
        return d.year == today.year
    if window == 'week':
        return d >= today - timedelta(days=7)
    raise ReportError(f'Unknown time range: {window!r}')


def parse_month(value):
    """'YYYY-MM' -> (year, month)"""
    try:
        year, month = (int(p) for p in value.split('-'))
    except (AttributeError, ValueError):
        raise ReportError(f'Invalid month: {value!r}') from None
    if not 1 <= month <= 12:
        raise ReportError(f'Invalid month: {value!r}')
    return year, month


def _leaderboard(groups):
    return sorted(groups.values(), key=lambda s: s['total_revenue'], reverse=True)


def revenue_series(orders, window):
    totals = defaultdict(int)
    for o in orders:
        key = (o.date.year, o.date.month) if window == 'year' else o.date
        totals[key] += o.total_revenue
    series = []
    for key in sorted(totals):
        if window == 'year':
            label = f'{key[1]:02d}/{key[0]}'
        else:
            label = key.strftime('%d/%m')
        series.append({'label': label, 'value': totals[key]})
    return series


def top_customers(orders, with_owner=True):
    groups = {}
    for o in orders:
        s = groups.setdefault(o.customer_id, {'customer_id': o.customer_id, 'name': o.customer_name,
                                              'total_revenue': 0, 'total_orders': 0})
        if with_owner:
            s.setdefault('pic', o.created_by_name)
        s['total_revenue'] += o.total_revenue
        s['total_orders'] += 1
    return _leaderboard(groups)


def top_employees(orders, viewer):
    users = {u.id: u for u in User.query.all()}
    groups = {}
    for o in orders:
        s = groups.setdefault(o.created_by, {'user_id': o.created_by, 'total_revenue': 0, 'total_orders': 0})
        s['total_revenue'] += o.total_revenue
        s['total_orders'] += 1
    rows = []
    for s in _leaderboard(groups):
        u = users.get(s['user_id'])
        role = u.role if u else None
        if viewer.role != ROLE_ADMIN and role == ROLE_ADMIN:
            continue
        rows.append({'name': u.full_name if u else 'Unknown', 'branch': u.branch if u else '',
                     'role': role, **s})
    return rows


def overview(user, window='month', today=None):
    today = today or date.today()
    orders = orders_for_user(user)
    current = [o for o in orders if in_window(o.date, window, today)]

    result = {
        'window': window,
        'total_revenue': sum(o.total_revenue for o in current),
        'total_orders': len(current),
        'chart': revenue_series(current, window),
        'profile': {
            **user.to_dict(),
            'direct_manager': direct_manager(user),
            'managed_staff': managed_staff_count(user),
        },
    }

    if user.role in (ROLE_ADMIN, ROLE_MANAGER):
        # latest orders ignore the window, they look at everything in scope
        since = today - timedelta(days=LATEST_DAYS)
        latest = sorted((o for o in orders if o.date >= since), key=lambda o: o.date, reverse=True)
        result['top_employees'] = top_employees(current, user)
        result['top_customers'] = top_customers(current)
        result['latest_orders'] = [o.to_dict() for o in latest]
    else:
        this_month = [o for o in orders if in_window(o.date, 'month', today)]
        result['staff_top_customers'] = top_customers(this_month, with_owner=False)
    return result


def analysis(user, window='month', branch=None, today=None):
    """Flavor, topping and market spread for managers and admins.

    Gift rows are not sales and are left out of the flavor and topping
    counts. Provinces come from the last part of the customer address.
    """
    if user.role == ROLE_STAFF:
        raise PermissionError('Staff cannot open the analysis report')
    today = today or date.today()
    orders = [o for o in orders_for_user(user) if in_window(o.date, window, today)]
    customers = customers_for_user(user)

    if user.role == ROLE_ADMIN and branch:
        ids = branch_user_ids(branch)
        orders = [o for o in orders if o.created_by in ids]
        customers = [c for c in customers if c.created_by in ids]

    flavors = defaultdict(int)
    toppings = defaultdict(int)
    for o in orders:
        for item in o.items:
            if not item.is_gift and item.flavor and item.quantity:
                flavors[item.flavor] += item.quantity
        for item in o.toppings:
            if not item.is_gift and item.name and item.quantity:
                toppings[item.name] += item.quantity

    provinces = defaultdict(int)
    for c in customers:
        if c.province:
            provinces[c.province] += 1
    province_stats = [{'name': k, 'count': v}
                      for k, v in sorted(provinces.items(), key=lambda kv: kv[1], reverse=True)]

    def top(counts):
        ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)[:TOP_N]
        return [{'name': k, 'count': v} for k, v in ranked]

    return {
        'window': window,
        'branch': branch if user.role == ROLE_ADMIN else user.branch,
        'top_flavors': top(flavors),
        'top_toppings': top(toppings),
        'province_stats': province_stats,
        'total_provinces': len(province_stats),
        'total_partners': len(customers),
    }


def sales_log(user, start=None, end=None, branch=None, creator=None):
    orders = orders_for_user(user)
    if start:
        orders = [o for o in orders if o.date >= start]
    if end:
        orders = [o for o in orders if o.date <= end]
    if user.role == ROLE_ADMIN and branch:
        ids = branch_user_ids(branch)
        orders = [o for o in orders if o.created_by in ids]
    if user.role in (ROLE_ADMIN, ROLE_MANAGER) and creator:
        orders = [o for o in orders if o.created_by == creator]
    orders.sort(key=lambda o: o.date, reverse=True)
    return [{**o.to_dict(), 'quantity_sold': o.paid_quantity(), 'quantity_given': o.gift_quantity()}
            for o in orders]


def total_sales(user, month=None, branch=None, today=None):
    today = today or date.today()
    year, month_no = parse_month(month) if month else (today.year, today.month)
    orders = orders_for_user(user)

    week_start = today - timedelta(days=today.weekday())
    quarter = (today.month - 1) // 3

    def revenue(pred):
        return sum(o.total_revenue for o in orders if pred(o.date))

    kpis = {
        'week': revenue(lambda d: d >= week_start),
        'month': revenue(lambda d: d.year == today.year and d.month == today.month),
        'quarter': revenue(lambda d: d.year == today.year and (d.month - 1) // 3 == quarter),
        'year': revenue(lambda d: d.year == today.year),
    }

    selected = [o for o in orders if o.date.year == year and o.date.month == month_no]
    relevant = users_for_user(user)
    if user.role == ROLE_ADMIN and branch:
        ids = branch_user_ids(branch)
        selected = [o for o in selected if o.created_by in ids]
        relevant = [u for u in relevant if u.branch == branch]

    stats = {}
    for u in relevant:
        if u.role != ROLE_ADMIN or user.role == ROLE_ADMIN:
            stats[u.id] = {'user_id': u.id, 'name': u.full_name, 'branch': u.branch, 'orders': 0, 'revenue': 0}
    for o in selected:
        if o.created_by not in stats:
            creator = db.session.get(User, o.created_by)
            if creator is None:
                continue
            stats[o.created_by] = {'user_id': creator.id, 'name': creator.full_name,
                                   'branch': creator.branch, 'orders': 0, 'revenue': 0}
        stats[o.created_by]['orders'] += 1
        stats[o.created_by]['revenue'] += o.total_revenue

    rows = sorted(stats.values(), key=lambda s: s['revenue'], reverse=True)
    return {
        'month': f'{year:04d}-{month_no:02d}',
        'revenue': kpis,
        'by_user': rows,
        'total_orders': sum(r['orders'] for r in rows),
        'total_revenue': sum(r['revenue'] for r in rows),
    }


def _orders_by_customer(customer_ids=None):
    query = Order.query
    if customer_ids is not None:
        query = query.filter(Order.customer_id.in_(customer_ids))
    grouped = defaultdict(list)
    for o in query.all():
        grouped[o.customer_id].append(o)
    return grouped


def customer_stats(customer_id, today=None, orders=None):
    today = today or date.today()
    if orders is None:
        orders = Order.query.filter_by(customer_id=customer_id).all()
    if not orders:
        return None
    dates = sorted(o.date for o in orders)
    return {
        'first_date': dates[0].isoformat(),
        'last_date': dates[-1].isoformat(),
        'days_since_last_purchase': abs((today - dates[-1]).days),
        'total_ice_cream_boxes': sum(o.paid_quantity() for o in orders),
        'invoice_count': sum(1 for o in orders if o.has_invoice),
        'order_count': len(orders),
        'total_revenue': sum(o.total_revenue for o in orders),
    }


def order_history(customer_id):
    return Order.query.filter_by(customer_id=customer_id).order_by(Order.date.desc()).all()


def customer_list(user, branch=None, owner=None, province=None,
                  first_buy_month=None, last_buy_month=None, today=None):
    customers = customers_for_user(user)
    if user.role == ROLE_ADMIN and branch:
        ids = branch_user_ids(branch)
        customers = [c for c in customers if c.created_by in ids]
    if user.role in (ROLE_ADMIN, ROLE_MANAGER) and owner:
        customers = [c for c in customers if c.created_by == owner]
    if province:
        customers = [c for c in customers if province in (c.address or '')]

    by_customer = _orders_by_customer([c.id for c in customers])
    if first_buy_month or last_buy_month:
        kept = []
        for c in customers:
            dates = sorted(o.date.isoformat() for o in by_customer.get(c.id, []))
            if not dates:
                continue
            if first_buy_month and not dates[0].startswith(first_buy_month):
                continue
            if last_buy_month and not dates[-1].startswith(last_buy_month):
                continue
            kept.append(c)
        customers = kept

    return [{**c.to_dict(), 'stats': customer_stats(c.id, today, by_customer.get(c.id, []))}
            for c in customers]
