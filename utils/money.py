"""Fixed-point currency handling.

All amounts are Decimal with two places, rounded half-up. Never pass floats
through arithmetic; convert at the boundary with to_money().
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Largest value a NUMERIC(12, 2) column holds
MAX_AMOUNT = Decimal("9999999999.99")


def to_money(value: Decimal | int | float | str) -> Decimal:
    """
    Convert a value to a two-place Decimal, rounding half-up.

    Floats go through str() so 0.1 stays 0.10 instead of 0.1000000000000000055.

    Raises ValueError if the value is not a finite number or has too many
    digits to represent in cents.
    """
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError):
        raise ValueError(f"Not a currency amount: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"Not a currency amount: {value!r}")

    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"Currency amount out of range: {value!r}")


def to_storable_money(value: Decimal | int | float | str) -> Decimal:
    """
    to_money() for amounts that are persisted on an invoice or payment.

    Raises ValueError beyond MAX_AMOUNT in either direction.
    """
    amount = to_money(value)
    if abs(amount) > MAX_AMOUNT:
        raise ValueError(f"Amount {amount} exceeds the maximum of {MAX_AMOUNT}")
    return amount


def sum_money(values) -> Decimal:
    """Sum amounts and round the total once."""
    total = Decimal(0)
    for value in values:
        total += value if isinstance(value, Decimal) else Decimal(str(value))
    return to_money(total)
