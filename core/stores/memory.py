"""
In-memory ledger storage.

Backs the test suite and single-process embedding. Transactions are
serialized by one storage-wide re-entrant lock, which gives every
get_for_update() the same guarantee a Postgres row lock does. Each
transaction snapshots the tables on entry and restores them if the block
raises, so a failed unit of work leaves nothing behind.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Iterator
from uuid import UUID

from core.exceptions import ConcurrencyConflict, DuplicateInvoiceNumber, NotFoundError
from core.models import Invoice, InvoiceStatus, Payment, PaymentMethod
from core.stores.base import InvoiceStore, LedgerSession, LedgerStorage, PaymentStore
from utils.money import sum_money
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class _Tables:
    """Rows shared by every transaction on one storage."""

    def __init__(self):
        self.invoices: dict[UUID, Invoice] = {}
        self.payments: dict[UUID, Payment] = {}


class InMemoryInvoiceStore(InvoiceStore):
    """Invoice rows for one organization, held in a dict."""

    def __init__(self, tables: _Tables, organization_id: UUID):
        self._tables = tables
        self._organization_id = organization_id

    def _visible(self, invoice: Invoice | None) -> Invoice | None:
        if invoice is None or invoice.organization_id != self._organization_id:
            return None
        return invoice.model_copy()

    def _require(self, invoice_id: UUID) -> Invoice:
        invoice = self._visible(self._tables.invoices.get(invoice_id))
        if invoice is None:
            raise NotFoundError("invoice", invoice_id)
        return invoice

    def get(self, invoice_id: UUID) -> Invoice | None:
        return self._visible(self._tables.invoices.get(invoice_id))

    def get_for_update(self, invoice_id: UUID) -> Invoice | None:
        # The storage lock is already held for the whole transaction
        return self.get(invoice_id)

    def create(self, invoice: Invoice) -> Invoice:
        for existing in self._tables.invoices.values():
            if (existing.organization_id == invoice.organization_id
                    and existing.invoice_number == invoice.invoice_number):
                raise DuplicateInvoiceNumber(
                    f"Invoice number {invoice.invoice_number} already exists"
                )
        self._tables.invoices[invoice.id] = invoice.model_copy()
        return invoice.model_copy()

    def _check_version(self, current: Invoice, expected_version: int) -> None:
        if current.version != expected_version:
            raise ConcurrencyConflict(
                f"Invoice {current.id} changed (version {current.version}, expected {expected_version})"
            )

    def update_status(
        self,
        invoice_id: UUID,
        status: InvoiceStatus,
        *,
        expected_version: int,
        paid_at: date | None = None,
        last_payment_method: PaymentMethod | None = None,
    ) -> Invoice:
        current = self._require(invoice_id)
        self._check_version(current, expected_version)

        updated = current.model_copy(update={
            "status": status,
            "paid_at": paid_at,
            "last_payment_method": last_payment_method or current.last_payment_method,
            "version": current.version + 1,
            "updated_at": now_utc(),
        })
        self._tables.invoices[invoice_id] = updated
        return updated.model_copy()

    def update(self, invoice_id: UUID, fields: dict[str, Any], *, expected_version: int) -> Invoice:
        current = self._require(invoice_id)
        self._check_version(current, expected_version)

        updated = current.model_copy(update={
            **fields,
            "version": current.version + 1,
            "updated_at": now_utc(),
        })
        self._tables.invoices[invoice_id] = updated
        return updated.model_copy()

    def delete(self, invoice_id: UUID) -> bool:
        if self.get(invoice_id) is None:
            return False
        del self._tables.invoices[invoice_id]
        return True

    def list_all(self, statuses: set[InvoiceStatus] | None = None, limit: int | None = 50) -> list[Invoice]:
        rows = [
            inv for inv in reversed(list(self._tables.invoices.values()))
            if inv.organization_id == self._organization_id
            and (statuses is None or inv.status in statuses)
        ]
        return [inv.model_copy() for inv in rows[:limit]]

    def highest_number(self, prefix: str) -> str | None:
        numbers = [
            inv.invoice_number for inv in self._tables.invoices.values()
            if inv.organization_id == self._organization_id
            and inv.invoice_number.startswith(prefix)
        ]
        return max(numbers, key=lambda n: (len(n), n)) if numbers else None


class InMemoryPaymentStore(PaymentStore):
    """Payment rows for one organization, held in a dict."""

    def __init__(self, tables: _Tables, organization_id: UUID):
        self._tables = tables
        self._organization_id = organization_id

    def _rows(self) -> list[Payment]:
        return [
            p for p in self._tables.payments.values()
            if p.organization_id == self._organization_id
        ]

    def create(self, payment: Payment) -> Payment:
        self._tables.payments[payment.id] = payment.model_copy()
        return payment.model_copy()

    def get(self, payment_id: UUID) -> Payment | None:
        payment = self._tables.payments.get(payment_id)
        if payment is None or payment.organization_id != self._organization_id:
            return None
        return payment.model_copy()

    def sum_by_invoice(self, invoice_id: UUID) -> Decimal:
        return sum_money(p.amount for p in self._rows() if p.invoice_id == invoice_id)

    def count_by_invoice(self, invoice_id: UUID) -> int:
        return sum(1 for p in self._rows() if p.invoice_id == invoice_id)

    def list_for_invoice(self, invoice_id: UUID) -> list[Payment]:
        return [p.model_copy() for p in self._rows() if p.invoice_id == invoice_id]

    def list_all(self, limit: int | None = 50) -> list[Payment]:
        return [p.model_copy() for p in reversed(self._rows())][:limit]

    def update(self, payment_id: UUID, fields: dict[str, Any]) -> Payment:
        current = self.get(payment_id)
        if current is None:
            raise NotFoundError("payment", payment_id)

        updated = current.model_copy(update={**fields, "updated_at": now_utc()})
        self._tables.payments[payment_id] = updated
        return updated.model_copy()

    def delete(self, payment_id: UUID) -> bool:
        if self.get(payment_id) is None:
            return False
        del self._tables.payments[payment_id]
        return True


class InMemoryLedgerStorage(LedgerStorage):
    """
    Ledger storage held in process memory.

    Usage:
        storage = InMemoryLedgerStorage()
        with storage.transaction(org_id) as session:
            invoice = session.invoices.get_for_update(invoice_id)
            session.payments.create(payment)
    """

    def __init__(self, lock_timeout_ms: int = 5000):
        self._tables = _Tables()
        self._lock = threading.RLock()
        self._lock_timeout = lock_timeout_ms / 1000

    @contextmanager
    def transaction(self, organization_id: UUID) -> Iterator[LedgerSession]:
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise ConcurrencyConflict("Timed out waiting for ledger lock")

        try:
            invoices_snapshot = dict(self._tables.invoices)
            payments_snapshot = dict(self._tables.payments)
            try:
                yield LedgerSession(
                    invoices=InMemoryInvoiceStore(self._tables, organization_id),
                    payments=InMemoryPaymentStore(self._tables, organization_id),
                )
            except BaseException:
                self._tables.invoices = invoices_snapshot
                self._tables.payments = payments_snapshot
                raise
        finally:
            self._lock.release()
