"""
Domain events for the billing ledger.

Immutable event objects that represent state changes in the ledger. A
service publishes what happened; handlers (notifications, dashboards)
react without the publisher knowing who's listening.

Events carry the full domain object so handlers don't need to re-fetch state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class LedgerEvent:
    """Base class for all ledger domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)
    organization_id: UUID | None = None


# =============================================================================
# INVOICE EVENTS
# =============================================================================


@dataclass(frozen=True)
class InvoiceEvent(LedgerEvent):
    """Events related to invoice lifecycle."""
    pass


@dataclass(frozen=True)
class InvoiceGenerated(InvoiceEvent):
    """A new invoice was generated in PENDING status."""
    invoice: Any = None  # Invoice; Any avoids a circular import

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceGenerated":
        return cls(invoice=invoice, organization_id=invoice.organization_id)


@dataclass(frozen=True)
class InvoiceStatusChanged(InvoiceEvent):
    """Durable invoice status moved (e.g. pending -> partial)."""
    invoice: Any = None
    old_status: str | None = None

    @classmethod
    def create(cls, invoice: Any, old_status: Any) -> "InvoiceStatusChanged":
        return cls(
            invoice=invoice,
            old_status=getattr(old_status, "value", old_status),
            organization_id=invoice.organization_id,
        )


@dataclass(frozen=True)
class InvoicePaid(InvoiceEvent):
    """Invoice was fully paid."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoicePaid":
        return cls(invoice=invoice, organization_id=invoice.organization_id)


# =============================================================================
# PAYMENT EVENTS
# =============================================================================


@dataclass(frozen=True)
class PaymentEvent(LedgerEvent):
    """Events related to payments."""
    pass


@dataclass(frozen=True)
class PaymentRecorded(PaymentEvent):
    """A payment was recorded, linked to an invoice or as an advance."""
    payment: Any = None
    invoice: Any = None  # None for unlinked payments

    @classmethod
    def create(cls, payment: Any, invoice: Any = None) -> "PaymentRecorded":
        return cls(payment=payment, invoice=invoice, organization_id=payment.organization_id)
