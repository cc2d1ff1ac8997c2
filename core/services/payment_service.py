"""
Payment service: the reconciliation engine.

The only code path that changes an invoice's durable status. Every write
locks the affected invoice rows, changes payments, then re-derives each
invoice's status from the full sum of its linked payments inside the same
transaction. Nothing is adjusted incrementally.
"""

import logging
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import BillingConfig
from core.event_bus import EventBus
from core.events import InvoicePaid, InvoiceStatusChanged, PaymentRecorded
from core.exceptions import ConcurrencyConflict, NotFoundError, OverpaymentRejected, ValidationError
from core.models import (
    Invoice, InvoiceStatus, Payment, PaymentMethod, PaymentStats, PaymentType, PaymentUpdate,
)
from core.reconciliation import derive_status, pending_amount
from core.stores import LedgerSession, LedgerStorage
from utils.money import ZERO, sum_money, to_money, to_storable_money
from utils.request_context import RequestContext
from utils.timezone import now_utc, today_utc

logger = logging.getLogger(__name__)


class PaymentService:
    """Service for payment operations and invoice reconciliation."""

    def __init__(
        self,
        storage: LedgerStorage,
        audit: AuditLogger,
        event_bus: EventBus,
        config: BillingConfig | None = None,
    ):
        self.storage = storage
        self.audit = audit
        self.event_bus = event_bus
        self.config = config or BillingConfig()

    # =========================================================================
    # Input normalization
    # =========================================================================

    def _validate_amount(self, amount) -> Decimal:
        try:
            value = to_storable_money(amount)
        except ValueError as e:
            raise ValidationError(str(e))
        if value <= 0:
            raise ValidationError(f"Payment amount must be greater than 0, got {value}")
        return value

    def _validate_method(self, method) -> PaymentMethod:
        try:
            return PaymentMethod(method)
        except ValueError:
            valid = ", ".join(m.value for m in PaymentMethod)
            raise ValidationError(f"Unknown payment method '{method}'. Valid methods: {valid}")

    def _party_name(self, name: str | None) -> str:
        if name is None or not name.strip():
            return self.config.default_party_name
        return name.strip()

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def _reconcile(
        self,
        session: LedgerSession,
        invoice: Invoice,
        method: PaymentMethod | None = None,
        paid_on: date | None = None,
    ) -> Invoice:
        """
        Re-derive and write the durable status of a locked invoice.

        paid_at keeps its original date while the invoice stays paid, is set
        to paid_on (or today) when it becomes paid and is cleared otherwise.
        """
        paid = session.payments.sum_by_invoice(invoice.id)
        status = derive_status(invoice.amount, paid)

        if status != InvoiceStatus.PAID:
            paid_at = None
        elif invoice.status == InvoiceStatus.PAID and invoice.paid_at is not None:
            paid_at = invoice.paid_at
        else:
            paid_at = paid_on or today_utc()

        return session.invoices.update_status(
            invoice.id,
            status,
            expected_version=invoice.version,
            paid_at=paid_at,
            last_payment_method=method,
        )

    def _lock_invoice(self, session: LedgerSession, invoice_id: UUID) -> Invoice:
        invoice = session.invoices.get_for_update(invoice_id)
        if invoice is None:
            raise NotFoundError("invoice", invoice_id)
        return invoice

    def _check_overpayment(self, invoice: Invoice, amount: Decimal, already_paid: Decimal) -> None:
        if self.config.allow_overpayment:
            return
        pending = pending_amount(invoice.amount, already_paid)
        if amount > pending:
            raise OverpaymentRejected(invoice.id, amount, pending)

    def _with_retries(self, operation, description: str):
        """Run operation(), retrying the whole unit of work on ConcurrencyConflict."""
        attempts = self.config.max_payment_attempts
        for attempt in range(1, attempts + 1):
            try:
                return operation()
            except ConcurrencyConflict:
                if attempt == attempts:
                    logger.warning(f"{description}: giving up after {attempts} attempts")
                    raise
                logger.warning(f"{description}: concurrency conflict, retrying ({attempt}/{attempts})")

    def _publish_transition(self, before: Invoice, after: Invoice) -> None:
        if after.status == before.status:
            return
        self.event_bus.publish(InvoiceStatusChanged.create(invoice=after, old_status=before.status))
        if after.status == InvoiceStatus.PAID:
            logger.info(f"Invoice {after.invoice_number} paid in full")
            self.event_bus.publish(InvoicePaid.create(invoice=after))

    def _audit_transition(self, ctx: RequestContext, before: Invoice, after: Invoice, **extra) -> None:
        changes = compute_changes(before.model_dump(mode="json"), after.model_dump(mode="json"))
        changes.update(extra)
        if changes:
            self.audit.log_change(
                ctx,
                entity_type="invoice",
                entity_id=after.id,
                action=AuditAction.RECONCILE,
                changes=changes
            )

    # =========================================================================
    # Writes
    # =========================================================================

    def record_payment(
        self,
        ctx: RequestContext,
        invoice_id: UUID,
        amount: Decimal | int | str,
        method: PaymentMethod | str,
        paid_by: str | None = None,
        received_by: str | None = None,
        paid_at: date | None = None,
        description: str | None = None,
        payment_type: PaymentType = PaymentType.RENT,
    ) -> tuple[Payment, Invoice]:
        """
        Record a payment against an invoice and reconcile its status.

        Args:
            ctx: Organization and actor
            invoice_id: Invoice being paid
            amount: Payment amount, greater than 0
            method: How the money was transferred
            paid_by: Payer name (defaults to "Unknown")
            received_by: Receiver name (defaults to "Unknown")
            paid_at: Date of payment (defaults to today)
            description: Optional note
            payment_type: What the payment is for

        Returns:
            (created payment, invoice with updated status)

        Raises:
            ValidationError: If amount <= 0 or method is unknown
            NotFoundError: If invoice does not exist in this organization
            OverpaymentRejected: If amount exceeds the pending amount
            ConcurrencyConflict: If the invoice stays contended after all retries
        """
        amount = self._validate_amount(amount)
        method = self._validate_method(method)
        payment_type = PaymentType(payment_type)
        paid_by = self._party_name(paid_by)
        received_by = self._party_name(received_by)
        paid_at = paid_at or today_utc()

        def attempt():
            with self.storage.transaction(ctx.organization_id) as session:
                invoice = self._lock_invoice(session, invoice_id)
                self._check_overpayment(invoice, amount, session.payments.sum_by_invoice(invoice_id))

                now = now_utc()
                payment = session.payments.create(Payment(
                    id=uuid4(),
                    organization_id=ctx.organization_id,
                    invoice_id=invoice_id,
                    amount=amount,
                    method=method,
                    payment_type=payment_type,
                    paid_at=paid_at,
                    paid_by=paid_by,
                    received_by=received_by,
                    description=description,
                    created_at=now,
                    updated_at=now,
                ))
                updated = self._reconcile(session, invoice, method=method, paid_on=paid_at)
            return invoice, payment, updated

        before, payment, updated = self._with_retries(attempt, f"Payment on invoice {invoice_id}")

        self.audit.log_change(
            ctx,
            entity_type="payment",
            entity_id=payment.id,
            action=AuditAction.CREATE,
            changes={"created": payment.model_dump(mode="json")}
        )
        self._audit_transition(ctx, before, updated, payment_recorded=str(amount))

        logger.info(
            f"Recorded {method.value} payment of {amount} on invoice {updated.invoice_number} "
            f"({before.status.value} -> {updated.status.value})"
        )

        self.event_bus.publish(PaymentRecorded.create(payment=payment, invoice=updated))
        self._publish_transition(before, updated)

        return payment, updated

    def record_unlinked_payment(
        self,
        ctx: RequestContext,
        amount: Decimal | int | str,
        method: PaymentMethod | str,
        paid_by: str | None = None,
        received_by: str | None = None,
        paid_at: date | None = None,
        description: str | None = None,
        payment_type: PaymentType = PaymentType.RENT,
    ) -> Payment:
        """
        Record an advance payment not linked to any invoice.

        Unlinked payments never affect invoice status until relinked with
        update_payment().
        """
        amount = self._validate_amount(amount)
        method = self._validate_method(method)
        now = now_utc()

        with self.storage.transaction(ctx.organization_id) as session:
            payment = session.payments.create(Payment(
                id=uuid4(),
                organization_id=ctx.organization_id,
                invoice_id=None,
                amount=amount,
                method=method,
                payment_type=PaymentType(payment_type),
                paid_at=paid_at or today_utc(),
                paid_by=self._party_name(paid_by),
                received_by=self._party_name(received_by),
                description=description,
                created_at=now,
                updated_at=now,
            ))

        self.audit.log_change(
            ctx,
            entity_type="payment",
            entity_id=payment.id,
            action=AuditAction.CREATE,
            changes={"created": payment.model_dump(mode="json")}
        )

        logger.info(f"Recorded unlinked {method.value} payment of {amount}")
        self.event_bus.publish(PaymentRecorded.create(payment=payment))

        return payment

    def update_payment(self, ctx: RequestContext, payment_id: UUID, data: PaymentUpdate) -> tuple[Payment, list[Invoice]]:
        """
        Correct a payment and recompute every invoice it touches.

        Moving a payment between invoices recomputes both. The amount check
        against the target invoice's pending amount excludes the payment
        being corrected.

        Returns:
            (updated payment, recomputed invoices)

        Raises:
            NotFoundError: If payment or the new invoice does not exist
            ValidationError: On a non-positive amount
            OverpaymentRejected: If the corrected amount overpays the invoice
        """
        updates = data.model_dump(exclude_unset=True)
        # invoice_id=None explicitly unlinks; other fields ignore None
        updates = {k: v for k, v in updates.items() if v is not None or k == "invoice_id"}

        if "amount" in updates:
            updates["amount"] = self._validate_amount(updates["amount"])
        for key in ("paid_by", "received_by"):
            if key in updates:
                updates[key] = self._party_name(updates[key])

        def attempt():
            with self.storage.transaction(ctx.organization_id) as session:
                current = session.payments.get(payment_id)
                if current is None:
                    raise NotFoundError("payment", payment_id)

                if not updates:
                    return current, current, []

                target_id = updates.get("invoice_id", current.invoice_id)
                affected = sorted({i for i in (current.invoice_id, target_id) if i is not None}, key=str)
                locked = {i: self._lock_invoice(session, i) for i in affected}

                if target_id is not None:
                    already_paid = session.payments.sum_by_invoice(target_id)
                    if current.invoice_id == target_id:
                        already_paid -= current.amount
                    self._check_overpayment(locked[target_id], updates.get("amount", current.amount), already_paid)

                updated = session.payments.update(payment_id, updates)
                method = updated.method if updated.invoice_id is not None else None
                transitions = [
                    (locked[i], self._reconcile(session, locked[i], method=method if i == target_id else None))
                    for i in affected
                ]
            return current, updated, transitions

        current, updated, transitions = self._with_retries(attempt, f"Payment correction {payment_id}")

        changes = compute_changes(current.model_dump(mode="json"), updated.model_dump(mode="json"))
        if changes:
            self.audit.log_change(
                ctx,
                entity_type="payment",
                entity_id=payment_id,
                action=AuditAction.UPDATE,
                changes=changes
            )
        for before, after in transitions:
            self._audit_transition(ctx, before, after)
            self._publish_transition(before, after)

        return updated, [after for _, after in transitions]

    def delete_payment(self, ctx: RequestContext, payment_id: UUID) -> Invoice | None:
        """
        Delete a payment and recompute its invoice.

        Returns:
            The recomputed invoice, or None for an unlinked payment

        Raises:
            NotFoundError: If payment does not exist
        """
        def attempt():
            with self.storage.transaction(ctx.organization_id) as session:
                payment = session.payments.get(payment_id)
                if payment is None:
                    raise NotFoundError("payment", payment_id)

                invoice = None
                if payment.invoice_id is not None:
                    invoice = self._lock_invoice(session, payment.invoice_id)

                session.payments.delete(payment_id)

                updated = self._reconcile(session, invoice) if invoice is not None else None
            return payment, invoice, updated

        payment, before, updated = self._with_retries(attempt, f"Payment deletion {payment_id}")

        self.audit.log_change(
            ctx,
            entity_type="payment",
            entity_id=payment_id,
            action=AuditAction.DELETE,
            changes={"deleted": payment.model_dump(mode="json")}
        )
        if updated is not None:
            self._audit_transition(ctx, before, updated)
            self._publish_transition(before, updated)

        return updated

    def recompute_invoice(self, ctx: RequestContext, invoice_id: UUID) -> Invoice:
        """
        Rebuild an invoice's durable status from its payments.

        Idempotent: running it on a consistent invoice only bumps version.

        Raises:
            NotFoundError: If invoice does not exist
        """
        def attempt():
            with self.storage.transaction(ctx.organization_id) as session:
                invoice = self._lock_invoice(session, invoice_id)
                return invoice, self._reconcile(session, invoice)

        before, updated = self._with_retries(attempt, f"Recompute of invoice {invoice_id}")

        if updated.status != before.status:
            logger.warning(
                f"Invoice {updated.invoice_number} status was {before.status.value}, "
                f"recomputed as {updated.status.value}"
            )
            self._audit_transition(ctx, before, updated)
            self._publish_transition(before, updated)

        return updated

    # =========================================================================
    # Reads
    # =========================================================================

    def get_paid_amount(self, invoice: Invoice) -> Decimal:
        """Sum of payments linked to the invoice, read from storage."""
        with self.storage.transaction(invoice.organization_id) as session:
            return session.payments.sum_by_invoice(invoice.id)

    def get_pending_amount(self, invoice: Invoice) -> Decimal:
        """max(0, invoice amount - paid amount), read from storage."""
        return pending_amount(invoice.amount, self.get_paid_amount(invoice))

    def get_by_id(self, ctx: RequestContext, payment_id: UUID) -> Payment | None:
        with self.storage.transaction(ctx.organization_id) as session:
            return session.payments.get(payment_id)

    def list_for_invoice(self, ctx: RequestContext, invoice_id: UUID) -> list[Payment]:
        """Payments linked to the invoice, oldest first."""
        with self.storage.transaction(ctx.organization_id) as session:
            return session.payments.list_for_invoice(invoice_id)

    def list_payments(self, ctx: RequestContext, limit: int = 50) -> list[Payment]:
        """Payments newest first."""
        with self.storage.transaction(ctx.organization_id) as session:
            return session.payments.list_all(limit)

    def get_stats(self, ctx: RequestContext, today: date | None = None) -> PaymentStats:
        """Organization-wide payment totals."""
        today = today or today_utc()
        with self.storage.transaction(ctx.organization_id) as session:
            payments = session.payments.list_all(limit=None)

        total = sum_money(p.amount for p in payments)
        by_method: dict[str, Decimal] = {}
        for p in payments:
            by_method[p.method.value] = sum_money([by_method.get(p.method.value, ZERO), p.amount])

        return PaymentStats(
            payment_count=len(payments),
            total_received=total,
            this_month=sum_money(
                p.amount for p in payments
                if p.paid_at.year == today.year and p.paid_at.month == today.month
            ),
            average=to_money(total / len(payments)) if payments else ZERO,
            unlinked_amount=sum_money(p.amount for p in payments if not p.is_linked),
            by_method=by_method,
        )
