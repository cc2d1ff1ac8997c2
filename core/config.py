"""Billing ledger configuration."""

from pydantic import BaseModel, Field


class BillingConfig(BaseModel):
    """
    Billing ledger configuration.

    Defaults match how the property-management front end behaves today,
    except that the overpayment cap is enforced server-side.
    """

    # Invoice numbering
    invoice_number_prefix: str = Field(
        default="INV",
        description="Prefix for human-readable invoice numbers (PREFIX-YYYY-NNNN)",
        min_length=1,
        max_length=10,
        pattern="^[A-Z0-9]+$",
    )
    max_invoice_number_attempts: int = Field(
        default=3,
        description="Retries when a generated invoice number collides",
        ge=1,
        le=10,
    )

    # Payments
    allow_overpayment: bool = Field(
        default=False,
        description="Accept payments above the pending amount (surplus marks invoice paid)",
    )
    max_payment_attempts: int = Field(
        default=3,
        description="Attempts for record_payment on concurrency conflicts",
        ge=1,
        le=10,
    )
    default_party_name: str = Field(
        default="Unknown",
        description="Used when paid_by / received_by are omitted",
        min_length=1,
    )

    # Locking
    lock_timeout_ms: int = Field(
        default=5000,
        description="How long to wait for an invoice row lock before giving up",
        ge=1,
        le=60000,
    )
