"""Payment domain models."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class PaymentMethod(str, Enum):
    """How money was transferred."""

    CASH = "cash"
    CHECK = "check"
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    ONLINE = "online"
    OTHER = "other"


class PaymentType(str, Enum):
    """What a payment is for."""

    RENT = "rent"
    UTILITIES = "utilities"
    MAINTENANCE = "maintenance"
    LATE_FEE = "late_fee"
    SECURITY_DEPOSIT = "security_deposit"
    OTHER = "other"


class PaymentCreate(BaseModel):
    """
    Data required to record a payment.

    Amount and party names are checked by the payment service rather than
    here so callers get ledger errors, not schema errors.
    """

    invoice_id: UUID | None = None
    amount: Decimal
    method: PaymentMethod
    paid_at: date | None = None
    paid_by: str | None = Field(None, max_length=255)
    received_by: str | None = Field(None, max_length=255)
    payment_type: PaymentType = PaymentType.RENT
    description: str | None = Field(None, max_length=2000)


class PaymentUpdate(BaseModel):
    """Correctable payment fields. All optional; invoice_id relinks the payment."""

    invoice_id: UUID | None = None
    amount: Decimal | None = None
    method: PaymentMethod | None = None
    paid_at: date | None = None
    paid_by: str | None = Field(None, max_length=255)
    received_by: str | None = Field(None, max_length=255)
    payment_type: PaymentType | None = None
    description: str | None = Field(None, max_length=2000)


class Payment(BaseModel):
    """Full payment entity as stored."""

    id: UUID
    organization_id: UUID
    invoice_id: UUID | None
    amount: Decimal
    method: PaymentMethod
    payment_type: PaymentType
    paid_at: date
    paid_by: str
    received_by: str
    description: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_linked(self) -> bool:
        """Whether payment counts towards an invoice."""
        return self.invoice_id is not None


class PaymentStats(BaseModel):
    """Organization-wide payment totals."""

    payment_count: int
    total_received: Decimal
    this_month: Decimal
    average: Decimal
    unlinked_amount: Decimal
    by_method: dict[str, Decimal]
