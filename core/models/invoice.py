"""Invoice domain models.

All amounts are Decimal with two places (see utils.money). Durable status is
only pending/partial/paid; OVERDUE is derived at read time from due_date.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.bill_item import BillItem
from core.models.payment import PaymentMethod


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


# Statuses the ledger ever writes. OVERDUE is display-only.
DURABLE_STATUSES = frozenset({InvoiceStatus.PENDING, InvoiceStatus.PARTIAL, InvoiceStatus.PAID})


class InvoiceCreate(BaseModel):
    """Data required to generate an invoice from bill items."""

    tenant_id: UUID | None = None
    unit_id: UUID | None = None
    due_date: date
    items: list[BillItem] = Field(..., min_length=1)
    notes: str | None = Field(None, max_length=2000)


class InvoiceUpdate(BaseModel):
    """Data that can be updated on an invoice. All fields optional."""

    amount: Decimal | None = None
    due_date: date | None = None
    tenant_id: UUID | None = None
    unit_id: UUID | None = None
    notes: str | None = Field(None, max_length=2000)


class Invoice(BaseModel):
    """Full invoice entity as stored."""

    id: UUID
    organization_id: UUID
    invoice_number: str
    tenant_id: UUID | None
    unit_id: UUID | None
    amount: Decimal
    issue_date: date
    due_date: date
    status: InvoiceStatus
    paid_at: date | None = None
    last_payment_method: PaymentMethod | None = None
    notes: str | None = None
    version: int = 1
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_paid(self) -> bool:
        """Whether invoice is fully paid."""
        return self.status == InvoiceStatus.PAID

    def is_overdue(self, today: date) -> bool:
        """Past due and not paid. Recomputed on every read, never stored."""
        return today > self.due_date and self.status != InvoiceStatus.PAID

    def display_status(self, today: date) -> InvoiceStatus:
        """Durable status, promoted to OVERDUE when past due."""
        if self.is_overdue(today):
            return InvoiceStatus.OVERDUE
        return self.status


class InvoiceSummary(BaseModel):
    """An invoice together with amounts derived from its payments."""

    invoice: Invoice
    paid_amount: Decimal
    pending_amount: Decimal
    status: InvoiceStatus
    is_overdue: bool


class InvoiceStats(BaseModel):
    """Organization-wide invoice totals, grouped by display status."""

    invoice_count: int
    total_invoiced: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    overdue_amount: Decimal
    count_by_status: dict[str, int]
    paid_percentage: float
