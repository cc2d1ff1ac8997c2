"""Typed exceptions for ledger failures."""


class LedgerError(Exception):
    """Base class for billing ledger errors."""


class ValidationError(LedgerError, ValueError):
    """
    Input is malformed: non-positive amount, inverted meter readings,
    missing required field.

    Recoverable by the caller correcting input. Never retried automatically.
    """


class NotFoundError(LedgerError, LookupError):
    """Referenced invoice or payment does not exist in this organization."""

    def __init__(self, entity_type: str, entity_id):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.capitalize()} {entity_id} not found")


class OverpaymentRejected(ValidationError):
    """Payment exceeds the invoice's pending amount."""

    def __init__(self, invoice_id, amount, pending_amount):
        self.invoice_id = invoice_id
        self.amount = amount
        self.pending_amount = pending_amount
        super().__init__(
            f"Payment of {amount} exceeds pending amount {pending_amount} "
            f"on invoice {invoice_id}"
        )


class ConcurrencyConflict(LedgerError):
    """
    Invoice row was locked or changed by a concurrent writer.

    Caller should re-read and retry the whole operation a bounded number
    of times before surfacing this to the user.
    """


class InvoiceLockedError(LedgerError):
    """Invoice has payments, so its amount/due date cannot change and it cannot be deleted."""


class DuplicateInvoiceNumber(LedgerError):
    """Invoice number already taken within the organization."""
