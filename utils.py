# utils.py
import random
import string
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from bson.decimal128 import Decimal128

CENTS = Decimal("0.01")

def generate_random_id(prefix="", length=8):
    """Generate a random ID with optional prefix"""
    random_str = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
    return f"{prefix}-{random_str}" if prefix else random_str

def generate_hospital_id():
    return generate_random_id("HOSP")

def generate_address_id():
    return generate_random_id("ADDR")

def generate_product_id():
    return generate_random_id("PROD")

def generate_offer_id():
    return generate_random_id("OFFER")

def generate_cart_id():
    return generate_random_id("CART")

def generate_item_id():
    return generate_random_id("ITEM")

def generate_order_id():
    return generate_random_id("ORDER")

def generate_transaction_id():
    return generate_random_id("TXN")

def get_current_datetime():
    """Get current datetime in UTC"""
    return datetime.now(timezone.utc)

def to_decimal(value):
    """Read a money value stored as Decimal128, float, int or str"""
    if value is None:
        return None
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid money value: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Invalid money value: {value!r}")
    return result

def to_decimal128(value):
    """Convert a money value for storage"""
    if value is None:
        return None
    return Decimal128(to_decimal(value))

def round_money(value):
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)
