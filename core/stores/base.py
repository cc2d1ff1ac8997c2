"""
Persistence contract for the billing ledger.

The services never talk to a database directly. They open a unit of work
with LedgerStorage.transaction(organization_id) and use the invoice and
payment stores it yields; everything done inside one block commits or
rolls back together.

Stores yielded by a transaction are already scoped to its organization.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from core.models import Invoice, InvoiceStatus, Payment, PaymentMethod


class InvoiceStore(ABC):
    """Invoice rows for one organization."""

    @abstractmethod
    def get(self, invoice_id: UUID) -> Invoice | None:
        """Invoice by id, or None."""

    @abstractmethod
    def get_for_update(self, invoice_id: UUID) -> Invoice | None:
        """
        Invoice by id, locked against concurrent writers until the
        transaction ends.

        Raises:
            ConcurrencyConflict: If the lock cannot be acquired in time
        """

    @abstractmethod
    def create(self, invoice: Invoice) -> Invoice:
        """
        Insert a new invoice.

        Raises:
            DuplicateInvoiceNumber: If invoice_number is taken in this organization
        """

    @abstractmethod
    def update_status(
        self,
        invoice_id: UUID,
        status: InvoiceStatus,
        *,
        expected_version: int,
        paid_at: date | None = None,
        last_payment_method: PaymentMethod | None = None,
    ) -> Invoice:
        """
        Write the durable status and bump version.

        Raises:
            ConcurrencyConflict: If the stored version is not expected_version
        """

    @abstractmethod
    def update(self, invoice_id: UUID, fields: dict[str, Any], *, expected_version: int) -> Invoice:
        """
        Update editable columns and bump version.

        Raises:
            ConcurrencyConflict: If the stored version is not expected_version
        """

    @abstractmethod
    def delete(self, invoice_id: UUID) -> bool:
        """Hard delete. True if a row was removed."""

    @abstractmethod
    def list_all(self, statuses: set[InvoiceStatus] | None = None, limit: int | None = 50) -> list[Invoice]:
        """Invoices newest first, optionally filtered by durable status."""

    @abstractmethod
    def highest_number(self, prefix: str) -> str | None:
        """Highest invoice_number starting with prefix, or None."""


class PaymentStore(ABC):
    """Payment rows for one organization."""

    @abstractmethod
    def create(self, payment: Payment) -> Payment:
        """Insert a new payment."""

    @abstractmethod
    def get(self, payment_id: UUID) -> Payment | None:
        """Payment by id, or None."""

    @abstractmethod
    def sum_by_invoice(self, invoice_id: UUID) -> Decimal:
        """Total amount of payments linked to the invoice (0.00 if none)."""

    @abstractmethod
    def count_by_invoice(self, invoice_id: UUID) -> int:
        """Number of payments linked to the invoice."""

    @abstractmethod
    def list_for_invoice(self, invoice_id: UUID) -> list[Payment]:
        """Payments linked to the invoice, oldest first."""

    @abstractmethod
    def list_all(self, limit: int | None = 50) -> list[Payment]:
        """Payments newest first."""

    @abstractmethod
    def update(self, payment_id: UUID, fields: dict[str, Any]) -> Payment:
        """Update payment columns."""

    @abstractmethod
    def delete(self, payment_id: UUID) -> bool:
        """Hard delete. True if a row was removed."""


class LedgerSession:
    """What a transaction yields: both stores, bound to one unit of work."""

    def __init__(self, invoices: InvoiceStore, payments: PaymentStore):
        self.invoices = invoices
        self.payments = payments


class LedgerStorage(ABC):
    """Factory for units of work."""

    @abstractmethod
    def transaction(self, organization_id: UUID) -> AbstractContextManager[LedgerSession]:
        """
        Open a unit of work scoped to an organization.

        Commits on clean exit, rolls back and re-raises on any exception.
        """
