"""
Utility bill computation from meter readings.

Electricity and water items carry a start/end reading and a per-unit rate.
Water can be on a meter shared by several rooms, in which case the raw
consumption is split evenly by units_divider_room.
"""

from decimal import Decimal

from core.exceptions import ValidationError
from core.models import BillItem, BillItemType
from utils.money import to_money


def metered_units(item: BillItem) -> Decimal:
    """
    Units consumed for a metered item.

    Water on a shared meter is divided by units_divider_room and left
    unrounded; everything else is end_reading - start_reading.

    Raises:
        ValidationError: If readings are missing or end_reading < start_reading
    """
    if not item.has_readings:
        raise ValidationError(f"{item.type.value} item needs both start_reading and end_reading")

    raw_units = item.end_reading - item.start_reading
    if raw_units < 0:
        raise ValidationError(
            f"end_reading ({item.end_reading}) is less than start_reading ({item.start_reading})"
        )

    divider = item.units_divider_room
    if item.type == BillItemType.WATER and divider is not None and divider > 0:
        return raw_units / divider

    return raw_units


def metered_amount(item: BillItem) -> Decimal:
    """
    Amount for a metered item: units * rate, rounded half-up to cents.

    A nonzero consumption billed at a zero or missing rate is rejected
    rather than silently producing a zero charge.

    Raises:
        ValidationError: On inverted readings, a non-positive rate with units > 0
            or a charge too large to represent
    """
    units = metered_units(item)
    rate = item.rate if item.rate is not None else Decimal(0)

    if units > 0 and rate <= 0:
        raise ValidationError(f"{item.type.value} rate must be greater than 0, got {rate}")
    if rate < 0:
        raise ValidationError(f"{item.type.value} rate cannot be negative, got {rate}")

    try:
        return to_money(units * rate)
    except ValueError as e:
        raise ValidationError(f"{item.type.value} amount: {e}")


def price_item(item: BillItem) -> Decimal:
    """
    Amount for any bill item.

    Metered items with readings are recomputed and rounded to cents; all
    others return their entered amount unrounded, so the invoice total is
    rounded once over the exact sum.

    Raises:
        ValidationError: On a negative amount or invalid meter data
    """
    if item.is_metered and item.has_readings:
        return metered_amount(item)

    if item.amount < 0:
        raise ValidationError(f"{item.type.value} amount cannot be negative, got {item.amount}")

    return item.amount
