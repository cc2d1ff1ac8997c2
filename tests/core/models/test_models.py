"""Tests for core domain models - schema rules and derived properties."""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from pydantic import ValidationError
from uuid import uuid4

from utils.timezone import now_utc


def _invoice(status="pending", due=date(2026, 5, 1)):
    from core.models import Invoice

    now = now_utc()
    return Invoice(
        id=uuid4(), organization_id=uuid4(), invoice_number="INV-2026-0001",
        tenant_id=None, unit_id=None, amount=Decimal("100.00"),
        issue_date=date(2026, 4, 1), due_date=due, status=status,
        created_at=now, updated_at=now,
    )


class TestInvoiceCreate:
    """Tests for InvoiceCreate."""

    def test_requires_items(self):
        """An invoice request with no bill items is rejected."""
        from core.models import InvoiceCreate

        with pytest.raises(ValidationError, match="items"):
            InvoiceCreate(due_date=date(2026, 5, 1), items=[])

    def test_parses_items_from_dicts(self):
        """API payloads arrive as plain dicts."""
        from core.models import InvoiceCreate, BillItemType

        request = InvoiceCreate(
            due_date="2026-05-01",
            items=[{"type": "water", "start_reading": "100", "end_reading": "140", "rate": "9"}],
        )

        assert request.items[0].type == BillItemType.WATER
        assert request.items[0].end_reading == Decimal("140")

    def test_rejects_unknown_item_type(self):
        from core.models import InvoiceCreate

        with pytest.raises(ValidationError):
            InvoiceCreate(due_date=date(2026, 5, 1), items=[{"type": "gas", "amount": "5"}])


class TestBillItem:
    """Tests for BillItem derived properties."""

    def test_metered_types(self):
        from core.models import BillItem, BillItemType

        assert BillItem(type=BillItemType.WATER).is_metered
        assert BillItem(type=BillItemType.ELECTRICITY).is_metered
        assert not BillItem(type=BillItemType.RENT).is_metered

    def test_has_readings_needs_both(self):
        from core.models import BillItem, BillItemType

        assert not BillItem(type=BillItemType.WATER, start_reading=Decimal("1")).has_readings
        assert BillItem(
            type=BillItemType.WATER, start_reading=Decimal("1"), end_reading=Decimal("2")
        ).has_readings


class TestInvoice:
    """Tests for Invoice read-time status."""

    def test_overdue_after_due_date(self):
        invoice = _invoice(status="partial")

        assert invoice.is_overdue(date(2026, 5, 2))
        assert invoice.display_status(date(2026, 5, 2)).value == "overdue"

    def test_not_overdue_on_due_date(self):
        invoice = _invoice()

        assert not invoice.is_overdue(date(2026, 5, 1))
        assert invoice.display_status(date(2026, 5, 1)).value == "pending"

    def test_paid_invoice_never_overdue(self):
        invoice = _invoice(status="paid")

        assert invoice.is_paid
        assert not invoice.is_overdue(date(2026, 5, 1) + timedelta(days=365))

    def test_durable_statuses_exclude_overdue(self):
        from core.models import DURABLE_STATUSES, InvoiceStatus

        assert InvoiceStatus.OVERDUE not in DURABLE_STATUSES
        assert len(DURABLE_STATUSES) == 3


class TestPaymentCreate:
    """Tests for PaymentCreate."""

    def test_defaults(self):
        from core.models import PaymentCreate, PaymentType

        request = PaymentCreate(amount="10", method="cash")

        assert request.payment_type == PaymentType.RENT
        assert request.invoice_id is None
        assert request.paid_by is None

    def test_rejects_unknown_method(self):
        from core.models import PaymentCreate

        with pytest.raises(ValidationError, match="method"):
            PaymentCreate(amount="10", method="barter")

    def test_amount_not_constrained_by_schema(self):
        """Non-positive amounts reach the service, which raises a ledger error."""
        from core.models import PaymentCreate

        assert PaymentCreate(amount="-1", method="cash").amount == Decimal("-1")


class TestPaymentUpdate:

    def test_explicit_none_invoice_is_set(self):
        """Unlinking is distinguishable from leaving invoice_id alone."""
        from core.models import PaymentUpdate

        assert "invoice_id" in PaymentUpdate(invoice_id=None).model_dump(exclude_unset=True)
        assert "invoice_id" not in PaymentUpdate(amount=Decimal("1")).model_dump(exclude_unset=True)
