"""
Checkout pricing helpers.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Coerce to a Decimal rounded half-up to cents."""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def calc_delivery_fee(amount, threshold=Decimal("60.00"), fee=Decimal("5.00")) -> Decimal:
    """Free delivery at or above the threshold, flat fee below it."""
    if to_money(amount) >= to_money(threshold):
        return ZERO
    return to_money(fee)


def compute_discount(
    voucher_type: str,
    value,
    subtotal,
    max_discount: Optional[Decimal] = None,
) -> Decimal:
    """
    Discount a voucher grants on a subtotal.

    percentage -> subtotal * value / 100, capped by max_discount
    fixed      -> value
    The result never exceeds the subtotal and is never negative.
    """
    subtotal = to_money(subtotal)
    value = Decimal(str(value or 0))
    if subtotal <= ZERO or value <= 0:
        return ZERO

    if str(getattr(voucher_type, "value", voucher_type)) == "percentage":
        discount = subtotal * value / Decimal("100")
        if max_discount is not None and Decimal(str(max_discount)) > 0:
            discount = min(discount, Decimal(str(max_discount)))
    else:
        discount = value

    return to_money(max(ZERO, min(discount, subtotal)))
