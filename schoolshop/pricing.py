# schoolshop/pricing.py
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from .config import OrderPolicy

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def shipping_cost(subtotal: Decimal, policy: OrderPolicy) -> Decimal:
    # free shipping only strictly above the threshold
    if subtotal > policy.free_shipping_threshold:
        return ZERO
    return money(policy.flat_shipping_cost)


def tax(subtotal: Decimal, policy: OrderPolicy) -> Decimal:
    return money(subtotal * policy.tax_rate)


def order_total(subtotal, shipping, tax_amount, gift_wrap, discount) -> Decimal:
    total = money(subtotal + shipping + tax_amount + gift_wrap - discount)
    return max(total, ZERO)


def format_order_number(sequence: int, created_at: datetime) -> str:
    """Human-readable order number; sorts in creation order."""
    return f"ORD-{created_at:%Y%m%d}-{sequence:010d}"
