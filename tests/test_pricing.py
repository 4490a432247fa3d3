import pytest

from pricing import (PricingError, normalize_line, unit_price, line_total,
                     sizes_for_line, catalog, FLAVORS, TARGET_PROVINCES)


@pytest.mark.parametrize('raw, expected', [
    ('PRO', 'PRO'),
    ('Pro', 'PRO'),
    ('PROMAX', 'PROMAX'),
    ('Pro Max', 'PROMAX'),
    ('pro max', 'PROMAX'),
])
def test_line_spellings_share_one_price_table(raw, expected):
    assert normalize_line(raw) == expected


def test_unknown_line_is_rejected():
    with pytest.raises(PricingError):
        normalize_line('Ultra')
    with pytest.raises(PricingError):
        normalize_line(None)


def test_unit_prices():
    assert unit_price('PRO', '80ml') == 15000
    assert unit_price('Pro', '3500ml') == 295000
    assert unit_price('Pro Max', '80gr') == 21000
    assert unit_price('PROMAX', '2700ml') == 279000


def test_size_must_belong_to_line():
    # the small PRO cup is sold by volume, the PROMAX one by weight
    with pytest.raises(PricingError):
        unit_price('PRO', '80gr')
    with pytest.raises(PricingError):
        unit_price('PROMAX', '80ml')


def test_sizes_keep_menu_order():
    assert sizes_for_line('Pro') == ['80ml', '500ml', '2700ml', '3500ml']
    assert sizes_for_line('Pro Max') == ['80gr', '500ml', '2700ml', '3500ml']


def test_line_total():
    assert line_total(48000, 3) == 144000


def test_catalog_lists_everything_the_order_form_needs():
    data = catalog()
    assert len(data['flavors']) == len(FLAVORS) == 34
    assert len(data['provinces']) == len(TARGET_PROVINCES) == 34
    assert data['sizes_by_line']['PROMAX'][0] == '80gr'
    assert set(data['roles']) == {'staff', 'manager', 'admin'}
    assert len(data['branches']) == 2
