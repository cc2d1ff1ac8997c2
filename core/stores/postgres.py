"""
PostgreSQL ledger storage.

One LedgerStorage.transaction() is one database transaction. Payment
recording locks the invoice row with SELECT ... FOR UPDATE, so concurrent
payments on the same invoice queue behind each other; lock_timeout turns a
long wait into ConcurrencyConflict instead of a hung request. Every UPDATE
also checks the invoice version column.

Schema: schema/ledger.sql.
"""

import logging
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Iterator
from uuid import UUID

import psycopg2.errors

from clients.postgres_client import PostgresClient, Transaction
from core.exceptions import ConcurrencyConflict, DuplicateInvoiceNumber, NotFoundError
from core.models import Invoice, InvoiceStatus, Payment, PaymentMethod
from core.stores.base import InvoiceStore, LedgerSession, LedgerStorage, PaymentStore
from utils.money import to_money
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_INVOICE_UPDATABLE_COLUMNS = {"amount", "due_date", "tenant_id", "unit_id", "notes"}

_PAYMENT_UPDATABLE_COLUMNS = {
    "invoice_id", "amount", "method", "paid_at", "paid_by",
    "received_by", "payment_type", "description",
}


def _sql_value(value: Any) -> Any:
    """Enums are stored by value."""
    return getattr(value, "value", value)


class PostgresInvoiceStore(InvoiceStore):
    """Invoice rows for one organization."""

    def __init__(self, tx: Transaction, organization_id: UUID):
        self.tx = tx
        self.organization_id = organization_id

    def get(self, invoice_id: UUID) -> Invoice | None:
        row = self.tx.execute_single(
            "SELECT * FROM invoices WHERE id = %s AND organization_id = %s",
            (invoice_id, self.organization_id)
        )
        if row is None:
            return None
        return Invoice.model_validate(row)

    def get_for_update(self, invoice_id: UUID) -> Invoice | None:
        try:
            row = self.tx.execute_single(
                "SELECT * FROM invoices WHERE id = %s AND organization_id = %s FOR UPDATE",
                (invoice_id, self.organization_id)
            )
        except psycopg2.errors.LockNotAvailable as e:
            raise ConcurrencyConflict(f"Invoice {invoice_id} is locked by another payment") from e

        if row is None:
            return None
        return Invoice.model_validate(row)

    def create(self, invoice: Invoice) -> Invoice:
        try:
            row = self.tx.execute_single(
                """
                INSERT INTO invoices (
                    id, organization_id, invoice_number,
                    tenant_id, unit_id,
                    amount, issue_date, due_date, status,
                    paid_at, last_payment_method, notes, version,
                    created_at, updated_at
                ) VALUES (
                    %s, %s, %s,
                    %s, %s,
                    %s, %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s
                )
                RETURNING *
                """,
                (
                    invoice.id, self.organization_id, invoice.invoice_number,
                    invoice.tenant_id, invoice.unit_id,
                    invoice.amount, invoice.issue_date, invoice.due_date, invoice.status.value,
                    invoice.paid_at, _sql_value(invoice.last_payment_method), invoice.notes, invoice.version,
                    invoice.created_at, invoice.updated_at
                )
            )
        except psycopg2.errors.UniqueViolation as e:
            raise DuplicateInvoiceNumber(
                f"Invoice number {invoice.invoice_number} already exists"
            ) from e

        return Invoice.model_validate(row)

    def update_status(
        self,
        invoice_id: UUID,
        status: InvoiceStatus,
        *,
        expected_version: int,
        paid_at: date | None = None,
        last_payment_method: PaymentMethod | None = None,
    ) -> Invoice:
        row = self.tx.execute_single(
            """
            UPDATE invoices
            SET status = %s, paid_at = %s,
                last_payment_method = COALESCE(%s, last_payment_method),
                version = version + 1, updated_at = %s
            WHERE id = %s AND organization_id = %s AND version = %s
            RETURNING *
            """,
            (
                status.value, paid_at, _sql_value(last_payment_method), now_utc(),
                invoice_id, self.organization_id, expected_version
            )
        )
        if row is None:
            raise ConcurrencyConflict(
                f"Invoice {invoice_id} changed since it was read (expected version {expected_version})"
            )
        return Invoice.model_validate(row)

    def update(self, invoice_id: UUID, fields: dict[str, Any], *, expected_version: int) -> Invoice:
        for field in fields:
            if field not in _INVOICE_UPDATABLE_COLUMNS:
                logger.warning(f"Attempted to update unknown field '{field}' on invoice {invoice_id}")

        set_parts = []
        params = []
        for field, value in fields.items():
            if field in _INVOICE_UPDATABLE_COLUMNS:
                set_parts.append(f"{field} = %s")
                params.append(_sql_value(value))

        set_parts.append("version = version + 1")
        set_parts.append("updated_at = %s")
        params.append(now_utc())
        params.extend([invoice_id, self.organization_id, expected_version])

        row = self.tx.execute_single(
            f"""
            UPDATE invoices
            SET {', '.join(set_parts)}
            WHERE id = %s AND organization_id = %s AND version = %s
            RETURNING *
            """,
            tuple(params)
        )
        if row is None:
            raise ConcurrencyConflict(
                f"Invoice {invoice_id} changed since it was read (expected version {expected_version})"
            )
        return Invoice.model_validate(row)

    def delete(self, invoice_id: UUID) -> bool:
        deleted = self.tx.execute_rowcount(
            "DELETE FROM invoices WHERE id = %s AND organization_id = %s",
            (invoice_id, self.organization_id)
        )
        return deleted > 0

    def list_all(self, statuses: set[InvoiceStatus] | None = None, limit: int | None = 50) -> list[Invoice]:
        if statuses:
            rows = self.tx.execute(
                """
                SELECT * FROM invoices
                WHERE organization_id = %s AND status = ANY(%s)
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (self.organization_id, sorted(s.value for s in statuses), limit)
            )
        else:
            rows = self.tx.execute(
                """
                SELECT * FROM invoices
                WHERE organization_id = %s
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (self.organization_id, limit)
            )

        return [Invoice.model_validate(row) for row in rows]

    def highest_number(self, prefix: str) -> str | None:
        return self.tx.execute_scalar(
            """
            SELECT invoice_number FROM invoices
            WHERE organization_id = %s AND invoice_number LIKE %s
            ORDER BY length(invoice_number) DESC, invoice_number DESC
            LIMIT 1
            """,
            (self.organization_id, f"{prefix}%")
        )


class PostgresPaymentStore(PaymentStore):
    """Payment rows for one organization."""

    def __init__(self, tx: Transaction, organization_id: UUID):
        self.tx = tx
        self.organization_id = organization_id

    def create(self, payment: Payment) -> Payment:
        row = self.tx.execute_single(
            """
            INSERT INTO payments (
                id, organization_id, invoice_id,
                amount, method, payment_type, paid_at,
                paid_by, received_by, description,
                created_at, updated_at
            ) VALUES (
                %s, %s, %s,
                %s, %s, %s, %s,
                %s, %s, %s,
                %s, %s
            )
            RETURNING *
            """,
            (
                payment.id, self.organization_id, payment.invoice_id,
                payment.amount, payment.method.value, payment.payment_type.value, payment.paid_at,
                payment.paid_by, payment.received_by, payment.description,
                payment.created_at, payment.updated_at
            )
        )
        return Payment.model_validate(row)

    def get(self, payment_id: UUID) -> Payment | None:
        row = self.tx.execute_single(
            "SELECT * FROM payments WHERE id = %s AND organization_id = %s",
            (payment_id, self.organization_id)
        )
        if row is None:
            return None
        return Payment.model_validate(row)

    def sum_by_invoice(self, invoice_id: UUID) -> Decimal:
        total = self.tx.execute_scalar(
            """
            SELECT COALESCE(SUM(amount), 0)
            FROM payments
            WHERE invoice_id = %s AND organization_id = %s
            """,
            (invoice_id, self.organization_id)
        )
        return to_money(total or 0)

    def count_by_invoice(self, invoice_id: UUID) -> int:
        count = self.tx.execute_scalar(
            "SELECT COUNT(*) FROM payments WHERE invoice_id = %s AND organization_id = %s",
            (invoice_id, self.organization_id)
        )
        return int(count or 0)

    def list_for_invoice(self, invoice_id: UUID) -> list[Payment]:
        rows = self.tx.execute(
            """
            SELECT * FROM payments
            WHERE invoice_id = %s AND organization_id = %s
            ORDER BY created_at ASC
            """,
            (invoice_id, self.organization_id)
        )
        return [Payment.model_validate(row) for row in rows]

    def list_all(self, limit: int | None = 50) -> list[Payment]:
        rows = self.tx.execute(
            """
            SELECT * FROM payments
            WHERE organization_id = %s
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (self.organization_id, limit)
        )
        return [Payment.model_validate(row) for row in rows]

    def update(self, payment_id: UUID, fields: dict[str, Any]) -> Payment:
        set_parts = []
        params = []
        for field, value in fields.items():
            if field not in _PAYMENT_UPDATABLE_COLUMNS:
                logger.warning(f"Attempted to update unknown field '{field}' on payment {payment_id}")
                continue
            set_parts.append(f"{field} = %s")
            params.append(_sql_value(value))

        set_parts.append("updated_at = %s")
        params.append(now_utc())
        params.extend([payment_id, self.organization_id])

        row = self.tx.execute_single(
            f"""
            UPDATE payments
            SET {', '.join(set_parts)}
            WHERE id = %s AND organization_id = %s
            RETURNING *
            """,
            tuple(params)
        )
        if row is None:
            raise NotFoundError("payment", payment_id)
        return Payment.model_validate(row)

    def delete(self, payment_id: UUID) -> bool:
        deleted = self.tx.execute_rowcount(
            "DELETE FROM payments WHERE id = %s AND organization_id = %s",
            (payment_id, self.organization_id)
        )
        return deleted > 0


class PostgresLedgerStorage(LedgerStorage):
    """
    Ledger storage on PostgreSQL.

    Usage:
        storage = PostgresLedgerStorage(PostgresClient(get_database_url()))
        with storage.transaction(org_id) as session:
            invoice = session.invoices.get_for_update(invoice_id)
    """

    def __init__(self, postgres: PostgresClient, lock_timeout_ms: int = 5000):
        self.postgres = postgres
        self.lock_timeout_ms = lock_timeout_ms

    @contextmanager
    def transaction(self, organization_id: UUID) -> Iterator[LedgerSession]:
        try:
            with self.postgres.transaction(
                organization_id=organization_id,
                lock_timeout_ms=self.lock_timeout_ms,
            ) as tx:
                yield LedgerSession(
                    invoices=PostgresInvoiceStore(tx, organization_id),
                    payments=PostgresPaymentStore(tx, organization_id),
                )
        except (psycopg2.errors.SerializationFailure, psycopg2.errors.DeadlockDetected) as e:
            raise ConcurrencyConflict(f"Transaction aborted by a concurrent writer: {e}") from e
