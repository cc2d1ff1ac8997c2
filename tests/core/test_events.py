"""Tests for ledger domain events."""

import dataclasses
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from core.events import (
    InvoiceGenerated, InvoicePaid, InvoiceStatusChanged, LedgerEvent, PaymentRecorded,
)
from core.models import Invoice, InvoiceStatus, Payment, PaymentMethod, PaymentType
from utils.timezone import now_utc, today_utc


@pytest.fixture
def _invoice():
    now = now_utc()
    return Invoice(
        id=uuid4(), organization_id=uuid4(), invoice_number="INV-2026-0007",
        tenant_id=None, unit_id=None, amount=Decimal("50.00"),
        issue_date=today_utc(), due_date=today_utc() + timedelta(days=7),
        status=InvoiceStatus.PARTIAL, created_at=now, updated_at=now,
    )


@pytest.fixture
def _payment(_invoice):
    now = now_utc()
    return Payment(
        id=uuid4(), organization_id=_invoice.organization_id, invoice_id=_invoice.id,
        amount=Decimal("20.00"), method=PaymentMethod.CASH, payment_type=PaymentType.RENT,
        paid_at=today_utc(), paid_by="Unknown", received_by="Unknown",
        description=None, created_at=now, updated_at=now,
    )


class TestEventCreation:

    def test_events_carry_organization(self, _invoice, _payment):
        for event in (
            InvoiceGenerated.create(invoice=_invoice),
            InvoicePaid.create(invoice=_invoice),
            InvoiceStatusChanged.create(invoice=_invoice, old_status=InvoiceStatus.PENDING),
            PaymentRecorded.create(payment=_payment, invoice=_invoice),
        ):
            assert isinstance(event, LedgerEvent)
            assert event.organization_id == _invoice.organization_id

    def test_status_changed_stores_old_status_value(self, _invoice):
        event = InvoiceStatusChanged.create(invoice=_invoice, old_status=InvoiceStatus.PENDING)

        assert event.old_status == "pending"

    def test_unlinked_payment_event_has_no_invoice(self, _payment):
        event = PaymentRecorded.create(payment=_payment)

        assert event.invoice is None
        assert event.organization_id == _payment.organization_id

    def test_each_event_gets_unique_id_and_timestamp(self, _invoice):
        a = InvoicePaid.create(invoice=_invoice)
        b = InvoicePaid.create(invoice=_invoice)

        assert a.event_id != b.event_id
        assert a.occurred_at.tzinfo is not None

    def test_events_are_immutable(self, _invoice):
        event = InvoicePaid.create(invoice=_invoice)

        with pytest.raises(dataclasses.FrozenInstanceError):
            event.invoice = None
