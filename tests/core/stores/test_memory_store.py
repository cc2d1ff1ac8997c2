"""Tests for the in-memory ledger storage."""

import pytest
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

from core.exceptions import ConcurrencyConflict, DuplicateInvoiceNumber
from core.models import Invoice, InvoiceStatus, Payment, PaymentMethod, PaymentType
from core.stores import InMemoryLedgerStorage
from utils.timezone import now_utc, today_utc


def _invoice(org_id, number="INV-2026-0001", amount="100.00"):
    now = now_utc()
    return Invoice(
        id=uuid4(), organization_id=org_id, invoice_number=number,
        tenant_id=None, unit_id=None, amount=Decimal(amount),
        issue_date=today_utc(), due_date=today_utc() + timedelta(days=30),
        status=InvoiceStatus.PENDING, created_at=now, updated_at=now,
    )


def _payment(org_id, invoice_id, amount="10.00"):
    now = now_utc()
    return Payment(
        id=uuid4(), organization_id=org_id, invoice_id=invoice_id,
        amount=Decimal(amount), method=PaymentMethod.CASH, payment_type=PaymentType.RENT,
        paid_at=today_utc(), paid_by="Unknown", received_by="Unknown",
        description=None, created_at=now, updated_at=now,
    )


class TestTransactions:

    def test_commits_on_clean_exit(self, storage, org_id):
        invoice = _invoice(org_id)
        with storage.transaction(org_id) as session:
            session.invoices.create(invoice)

        with storage.transaction(org_id) as session:
            assert session.invoices.get(invoice.id) is not None

    def test_rolls_back_on_exception(self, storage, org_id):
        """Nothing written inside a failed block survives."""
        invoice = _invoice(org_id)

        with pytest.raises(RuntimeError):
            with storage.transaction(org_id) as session:
                session.invoices.create(invoice)
                session.payments.create(_payment(org_id, invoice.id))
                raise RuntimeError("boom")

        with storage.transaction(org_id) as session:
            assert session.invoices.get(invoice.id) is None
            assert session.payments.sum_by_invoice(invoice.id) == Decimal("0.00")

    def test_rollback_restores_updated_rows(self, storage, org_id):
        invoice = _invoice(org_id)
        with storage.transaction(org_id) as session:
            session.invoices.create(invoice)

        with pytest.raises(RuntimeError):
            with storage.transaction(org_id) as session:
                session.invoices.update_status(invoice.id, InvoiceStatus.PAID, expected_version=1)
                raise RuntimeError("boom")

        with storage.transaction(org_id) as session:
            assert session.invoices.get(invoice.id).status == InvoiceStatus.PENDING

    def test_lock_timeout_raises_conflict(self, org_id):
        import threading

        storage = InMemoryLedgerStorage(lock_timeout_ms=20)
        held, release = threading.Event(), threading.Event()

        def hold():
            with storage.transaction(org_id):
                held.set()
                release.wait(5)

        t = threading.Thread(target=hold)
        t.start()
        held.wait(5)
        try:
            with pytest.raises(ConcurrencyConflict, match="Timed out"):
                with storage.transaction(org_id):
                    pass
        finally:
            release.set()
            t.join(5)


class TestInMemoryInvoiceStore:

    def test_returned_invoice_is_a_copy(self, storage, org_id):
        """Mutating a returned model never changes stored state."""
        invoice = _invoice(org_id)
        with storage.transaction(org_id) as session:
            session.invoices.create(invoice)
            fetched = session.invoices.get(invoice.id)
            fetched.notes = "changed"

            assert session.invoices.get(invoice.id).notes is None

    def test_duplicate_number_rejected(self, storage, org_id):
        with storage.transaction(org_id) as session:
            session.invoices.create(_invoice(org_id, "INV-2026-0001"))

            with pytest.raises(DuplicateInvoiceNumber):
                session.invoices.create(_invoice(org_id, "INV-2026-0001"))

    def test_same_number_allowed_in_other_org(self, storage, org_id):
        other_org = uuid4()
        with storage.transaction(org_id) as session:
            session.invoices.create(_invoice(org_id, "INV-2026-0001"))
        with storage.transaction(other_org) as session:
            session.invoices.create(_invoice(other_org, "INV-2026-0001"))

    def test_other_org_rows_invisible(self, storage, org_id):
        invoice = _invoice(org_id)
        with storage.transaction(org_id) as session:
            session.invoices.create(invoice)

        with storage.transaction(uuid4()) as session:
            assert session.invoices.get(invoice.id) is None
            assert session.invoices.get_for_update(invoice.id) is None
            assert session.invoices.list_all() == []
            assert session.invoices.delete(invoice.id) is False

    def test_update_status_checks_version(self, storage, org_id):
        invoice = _invoice(org_id)
        with storage.transaction(org_id) as session:
            session.invoices.create(invoice)
            updated = session.invoices.update_status(
                invoice.id, InvoiceStatus.PARTIAL, expected_version=1,
                last_payment_method=PaymentMethod.CARD,
            )
            assert updated.version == 2

            with pytest.raises(ConcurrencyConflict):
                session.invoices.update_status(invoice.id, InvoiceStatus.PAID, expected_version=1)

    def test_update_status_keeps_last_method_when_none(self, storage, org_id):
        invoice = _invoice(org_id)
        with storage.transaction(org_id) as session:
            session.invoices.create(invoice)
            session.invoices.update_status(
                invoice.id, InvoiceStatus.PARTIAL, expected_version=1,
                last_payment_method=PaymentMethod.CARD,
            )
            updated = session.invoices.update_status(invoice.id, InvoiceStatus.PENDING, expected_version=2)

        assert updated.last_payment_method == PaymentMethod.CARD

    def test_list_filters_by_status(self, storage, org_id):
        pending, paid = _invoice(org_id, "INV-2026-0001"), _invoice(org_id, "INV-2026-0002")
        with storage.transaction(org_id) as session:
            session.invoices.create(pending)
            session.invoices.create(paid)
            session.invoices.update_status(paid.id, InvoiceStatus.PAID, expected_version=1)

            result = session.invoices.list_all({InvoiceStatus.PAID})

        assert [i.id for i in result] == [paid.id]

    def test_highest_number_orders_numerically(self, storage, org_id):
        """INV-2026-10000 sorts above INV-2026-9999."""
        with storage.transaction(org_id) as session:
            session.invoices.create(_invoice(org_id, "INV-2026-9999"))
            session.invoices.create(_invoice(org_id, "INV-2026-10000"))
            session.invoices.create(_invoice(org_id, "INV-2025-0500"))

            assert session.invoices.highest_number("INV-2026-") == "INV-2026-10000"
            assert session.invoices.highest_number("INV-2024-") is None


class TestInMemoryPaymentStore:

    def test_sum_and_count_by_invoice(self, storage, org_id):
        invoice_id = uuid4()
        with storage.transaction(org_id) as session:
            session.payments.create(_payment(org_id, invoice_id, "10.10"))
            session.payments.create(_payment(org_id, invoice_id, "20.20"))
            session.payments.create(_payment(org_id, uuid4(), "99.00"))

            assert session.payments.sum_by_invoice(invoice_id) == Decimal("30.30")
            assert session.payments.count_by_invoice(invoice_id) == 2

    def test_update_and_delete(self, storage, org_id):
        payment = _payment(org_id, None)
        with storage.transaction(org_id) as session:
            session.payments.create(payment)
            updated = session.payments.update(payment.id, {"paid_by": "Rin"})
            assert updated.paid_by == "Rin"

            assert session.payments.delete(payment.id) is True
            assert session.payments.get(payment.id) is None
            assert session.payments.delete(payment.id) is False
