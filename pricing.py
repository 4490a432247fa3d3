# pricing.py - price list, flavors and other fixed catalog data

from models import ROLES, BRANCHES

LINE_PRO = 'PRO'
LINE_PROMAX = 'PROMAX'

# unit price in dong by product line and container size
PRICING = {
    LINE_PRO: {
        '80ml': 15000,
        '500ml': 48000,
        '2700ml': 235000,
        '3500ml': 295000,
    },
    LINE_PROMAX: {
        '80gr': 21000,
        '500ml': 79000,
        '2700ml': 279000,
        '3500ml': 375000,
    },
}

FLAVORS = [
    'Kem Bơ', 'Kem Bubble gum', 'Kem Cà phê', 'Kem Chocolate cookie', 'Kem Cốm',
    'Kem Đào', 'Kem Dâu tằm', 'Kem Dâu tây', 'Kem Dừa', 'Kem Dừa lưới',
    'Kem Khoai môn', 'Kem Kiwi', 'Kem Măng cầu', 'Kem Mè đen', 'Kem Nhãn',
    'Kem Ổi hồng', 'Kem Rum nho', 'Kem Sầu riêng', 'Kem Socola', 'Kem Sữa chua phô mai',
    'Kem Trà sữa', 'Kem Trà xanh', 'Kem Vải', 'Kem Vani', 'Kem Việt quất',
    'Kem Xoài', 'Kem Bạc hà chip', 'Kem Ngân hà', 'Kem sữa chua', 'Kem sữa gạo',
    'Kem Phúc Bồn Tử', 'Kem Sorbet Chanh bạc hà', 'Kem Sorbet Chanh dây', 'Kem Sorbet Dứa mật',
]

# key provinces for customer distribution (2025 list)
TARGET_PROVINCES = [
    'Thành phố Hà Nội', 'Thành phố Hồ Chí Minh', 'Thành phố Hải Phòng', 'Thành phố Đà Nẵng', 'Thành phố Cần Thơ',
    'Tỉnh Quảng Ninh', 'Tỉnh Bắc Ninh', 'Tỉnh Hải Dương', 'Tỉnh Hưng Yên', 'Tỉnh Vĩnh Phúc',
    'Tỉnh Thái Nguyên', 'Tỉnh Bắc Giang', 'Tỉnh Phú Thọ', 'Tỉnh Nam Định', 'Tỉnh Thái Bình',
    'Tỉnh Hà Nam', 'Tỉnh Ninh Bình', 'Tỉnh Thanh Hóa', 'Tỉnh Nghệ An', 'Tỉnh Hà Tĩnh',
    'Tỉnh Thừa Thiên Huế', 'Tỉnh Khánh Hòa', 'Tỉnh Lâm Đồng', 'Tỉnh Bình Thuận', 'Tỉnh Đồng Nai',
    'Tỉnh Bình Dương', 'Tỉnh Bà Rịa - Vũng Tàu', 'Tỉnh Long An', 'Tỉnh Tiền Giang', 'Tỉnh Bến Tre',
    'Tỉnh Vĩnh Long', 'Tỉnh Kiên Giang', 'Tỉnh Cà Mau', 'Tỉnh Bình Phước',
]


class PricingError(ValueError):
    pass


def normalize_line(line):
    """Map 'Pro', 'Pro Max', 'PRO MAX' etc. onto the price table keys."""
    key = (line or '').replace(' ', '').replace('_', '').upper()
    if key not in PRICING:
        raise PricingError(f'Unknown product line: {line!r}')
    return key


def sizes_for_line(line):
    return list(PRICING[normalize_line(line)])


def unit_price(line, size):
    prices = PRICING[normalize_line(line)]
    if size not in prices:
        raise PricingError(f'Size {size!r} is not sold in line {line!r}')
    return prices[size]


def line_total(price, quantity):
    return price * quantity


def catalog():
    return {
        'flavors': FLAVORS,
        'pricing': PRICING,
        'sizes_by_line': {line: list(sizes) for line, sizes in PRICING.items()},
        'provinces': TARGET_PROVINCES,
        'branches': list(BRANCHES),
        'roles': list(ROLES),
    }
