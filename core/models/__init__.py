"""Core domain models."""

from core.models.bill_item import BillItem, BillItemType, METERED_TYPES
from core.models.payment import (
    Payment, PaymentCreate, PaymentUpdate, PaymentMethod, PaymentType, PaymentStats,
)
from core.models.invoice import (
    Invoice, InvoiceCreate, InvoiceUpdate, InvoiceStatus, InvoiceSummary, InvoiceStats,
    DURABLE_STATUSES,
)

__all__ = [
    # BillItem
    "BillItem", "BillItemType", "METERED_TYPES",
    # Payment
    "Payment", "PaymentCreate", "PaymentUpdate", "PaymentMethod", "PaymentType", "PaymentStats",
    # Invoice
    "Invoice", "InvoiceCreate", "InvoiceUpdate", "InvoiceStatus", "InvoiceSummary", "InvoiceStats",
    "DURABLE_STATUSES",
]
