"""
Pure reconciliation rules.

Everything an invoice's paid/pending amounts and status depend on is derived
here from the amounts of its linked payments. Nothing is cached; callers
re-read payments and call these on every read.
"""

from decimal import Decimal
from typing import Iterable

from core.models import InvoiceStatus
from utils.money import ZERO, sum_money


def total_paid(payment_amounts: Iterable[Decimal]) -> Decimal:
    """Sum of linked payment amounts."""
    return sum_money(payment_amounts)


def pending_amount(invoice_amount: Decimal, paid: Decimal) -> Decimal:
    """Amount still owed. Never negative, even with a surplus."""
    return max(ZERO, invoice_amount - paid)


def derive_status(invoice_amount: Decimal, paid: Decimal) -> InvoiceStatus:
    """
    Durable status for a given paid total.

    paid >= amount  -> PAID
    0 < paid        -> PARTIAL
    paid == 0       -> PENDING
    """
    if paid >= invoice_amount:
        return InvoiceStatus.PAID
    if paid > 0:
        return InvoiceStatus.PARTIAL
    return InvoiceStatus.PENDING
