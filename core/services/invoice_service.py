"""
Invoice service: generation and invoice-side reads.

Invoices are generated from bill items (rent, metered utilities, other).
Metered items are re-priced from their meter readings; the invoice amount
is the rounded sum of item amounts. Status is never set here after
creation; the payment service owns every status transition.
"""

import logging
from datetime import date
from uuid import UUID, uuid4

from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import BillingConfig
from core.event_bus import EventBus
from core.events import InvoiceGenerated
from core.exceptions import DuplicateInvoiceNumber, InvoiceLockedError, NotFoundError, ValidationError
from core.metering import price_item
from core.models import (
    BillItem, Invoice, InvoiceStats, InvoiceStatus, InvoiceSummary, InvoiceUpdate,
)
from core.reconciliation import pending_amount
from core.stores import InvoiceStore, LedgerStorage
from utils.money import sum_money, to_storable_money
from utils.request_context import RequestContext
from utils.timezone import now_utc, today_utc

logger = logging.getLogger(__name__)

INVOICE_FILTERS = {"all", "unpaid", "overdue", "paid"}

_UNPAID_STATUSES = {InvoiceStatus.PENDING, InvoiceStatus.PARTIAL}


def summarize(invoice: Invoice, paid, today: date) -> InvoiceSummary:
    """Build the read model for an invoice from its paid total."""
    return InvoiceSummary(
        invoice=invoice,
        paid_amount=paid,
        pending_amount=pending_amount(invoice.amount, paid),
        status=invoice.display_status(today),
        is_overdue=invoice.is_overdue(today),
    )


class InvoiceService:
    """Service for invoice operations."""

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

    def _generate_invoice_number(self, invoices: InvoiceStore, year: int) -> str:
        """
        Next invoice number for the organization.

        Format: INV-YYYY-NNNN where NNNN is a per-year sequence. Widens past
        9999 rather than wrapping.
        """
        prefix = f"{self.config.invoice_number_prefix}-{year}-"

        existing = invoices.highest_number(prefix)
        if existing is None:
            sequence = 1
        else:
            try:
                sequence = int(existing.split("-")[-1]) + 1
            except (ValueError, IndexError):
                sequence = 1

        return f"{prefix}{sequence:04d}"

    def generate_invoice(
        self,
        ctx: RequestContext,
        tenant_id: UUID | None,
        unit_id: UUID | None,
        due_date: date,
        items: list[BillItem],
        notes: str | None = None,
    ) -> Invoice:
        """
        Generate and persist an invoice from bill items.

        Args:
            ctx: Organization and actor
            tenant_id: Tenant being billed
            unit_id: Unit the bill is for
            due_date: Payment due date (on or after today)
            items: Bill line items, at least one
            notes: Optional invoice notes

        Returns:
            Created invoice in PENDING status

        Raises:
            ValidationError: On empty items, negative amounts, bad meter
                readings, a zero total or a due date before today
        """
        if not items:
            raise ValidationError("Invoice needs at least one bill item")

        item_amounts = [price_item(item) for item in items]
        try:
            amount = to_storable_money(sum_money(item_amounts))
        except ValueError as e:
            raise ValidationError(f"Invoice amount: {e}")
        if amount <= 0:
            raise ValidationError(f"Invoice amount must be greater than 0, got {amount}")

        issue_date = today_utc()
        if due_date < issue_date:
            raise ValidationError(f"Due date {due_date} is before issue date {issue_date}")

        attempts = self.config.max_invoice_number_attempts
        for attempt in range(1, attempts + 1):
            try:
                with self.storage.transaction(ctx.organization_id) as session:
                    now = now_utc()
                    invoice = session.invoices.create(Invoice(
                        id=uuid4(),
                        organization_id=ctx.organization_id,
                        invoice_number=self._generate_invoice_number(session.invoices, issue_date.year),
                        tenant_id=tenant_id,
                        unit_id=unit_id,
                        amount=amount,
                        issue_date=issue_date,
                        due_date=due_date,
                        status=InvoiceStatus.PENDING,
                        notes=notes,
                        version=1,
                        created_at=now,
                        updated_at=now,
                    ))
                break
            except DuplicateInvoiceNumber:
                if attempt == attempts:
                    raise
                logger.warning(
                    f"Invoice number collision for organization {ctx.organization_id}, "
                    f"retrying ({attempt}/{attempts})"
                )

        self.audit.log_change(
            ctx,
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.CREATE,
            changes={
                "created": {
                    "invoice_number": invoice.invoice_number,
                    "amount": str(invoice.amount),
                    "due_date": invoice.due_date.isoformat(),
                    "items": [
                        {"type": item.type.value, "amount": str(item_amount)}
                        for item, item_amount in zip(items, item_amounts)
                    ],
                }
            }
        )

        logger.info(f"Generated invoice {invoice.invoice_number} for {invoice.amount}")
        self.event_bus.publish(InvoiceGenerated.create(invoice=invoice))

        return invoice

    def get_by_id(self, ctx: RequestContext, invoice_id: UUID) -> Invoice | None:
        """
        Get invoice by ID.

        Returns:
            Invoice if found in the caller's organization, None otherwise.
        """
        with self.storage.transaction(ctx.organization_id) as session:
            return session.invoices.get(invoice_id)

    def get_summary(self, ctx: RequestContext, invoice_id: UUID, today: date | None = None) -> InvoiceSummary:
        """
        Invoice with paid/pending amounts derived from its payments.

        Raises:
            NotFoundError: If invoice does not exist
        """
        today = today or today_utc()
        with self.storage.transaction(ctx.organization_id) as session:
            invoice = session.invoices.get(invoice_id)
            if invoice is None:
                raise NotFoundError("invoice", invoice_id)
            paid = session.payments.sum_by_invoice(invoice_id)

        return summarize(invoice, paid, today)

    def list_invoices(
        self,
        ctx: RequestContext,
        filter: str = "all",
        limit: int = 50,
        today: date | None = None,
    ) -> list[InvoiceSummary]:
        """
        List invoice summaries newest first.

        Args:
            filter: "all", "unpaid" (pending or partial), "overdue" (unpaid
                and past due) or "paid"
            limit: Maximum results

        Raises:
            ValidationError: On an unknown filter
        """
        if filter not in INVOICE_FILTERS:
            raise ValidationError(
                f"Unknown invoice filter '{filter}'. Valid filters: {', '.join(sorted(INVOICE_FILTERS))}"
            )

        today = today or today_utc()
        statuses = None
        if filter in ("unpaid", "overdue"):
            statuses = _UNPAID_STATUSES
        elif filter == "paid":
            statuses = {InvoiceStatus.PAID}

        with self.storage.transaction(ctx.organization_id) as session:
            # Overdue is filtered after the read, so fetch without a limit
            invoices = session.invoices.list_all(statuses, None if filter == "overdue" else limit)
            summaries = [
                summarize(inv, session.payments.sum_by_invoice(inv.id), today)
                for inv in invoices
            ]

        if filter == "overdue":
            summaries = [s for s in summaries if s.is_overdue][:limit]

        return summaries

    def list_unpaid(self, ctx: RequestContext, limit: int = 50) -> list[InvoiceSummary]:
        return self.list_invoices(ctx, filter="unpaid", limit=limit)

    def list_overdue(self, ctx: RequestContext, limit: int = 50, today: date | None = None) -> list[InvoiceSummary]:
        return self.list_invoices(ctx, filter="overdue", limit=limit, today=today)

    def update(self, ctx: RequestContext, invoice_id: UUID, data: InvoiceUpdate) -> Invoice:
        """
        Edit an invoice.

        Amount and due date can only change while no payment references the
        invoice; tenant, unit and notes can always change.

        Raises:
            NotFoundError: If invoice does not exist
            InvoiceLockedError: If amount/due date change on an invoice with payments
            ValidationError: On a non-positive amount or due date before issue date
        """
        updates = data.model_dump(exclude_none=True)

        with self.storage.transaction(ctx.organization_id) as session:
            current = session.invoices.get_for_update(invoice_id)
            if current is None:
                raise NotFoundError("invoice", invoice_id)

            if not updates:
                return current

            if {"amount", "due_date"} & updates.keys():
                if session.payments.count_by_invoice(invoice_id) > 0:
                    raise InvoiceLockedError(
                        f"Invoice {current.invoice_number} has payments; amount and due date are locked"
                    )

            if "amount" in updates:
                try:
                    updates["amount"] = to_storable_money(updates["amount"])
                except ValueError as e:
                    raise ValidationError(f"Invoice amount: {e}")
                if updates["amount"] <= 0:
                    raise ValidationError(f"Invoice amount must be greater than 0, got {updates['amount']}")

            if "due_date" in updates and updates["due_date"] < current.issue_date:
                raise ValidationError(
                    f"Due date {updates['due_date']} is before issue date {current.issue_date}"
                )

            updated = session.invoices.update(invoice_id, updates, expected_version=current.version)

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json")
        )
        if changes:
            self.audit.log_change(
                ctx,
                entity_type="invoice",
                entity_id=invoice_id,
                action=AuditAction.UPDATE,
                changes=changes
            )

        return updated

    def delete(self, ctx: RequestContext, invoice_id: UUID) -> bool:
        """
        Delete an invoice that has no payments.

        Returns:
            True if deleted, False if not found

        Raises:
            InvoiceLockedError: If any payment references the invoice
        """
        with self.storage.transaction(ctx.organization_id) as session:
            current = session.invoices.get_for_update(invoice_id)
            if current is None:
                return False

            if session.payments.count_by_invoice(invoice_id) > 0:
                raise InvoiceLockedError(
                    f"Invoice {current.invoice_number} has payments and cannot be deleted"
                )

            session.invoices.delete(invoice_id)

        self.audit.log_change(
            ctx,
            entity_type="invoice",
            entity_id=invoice_id,
            action=AuditAction.DELETE,
            changes={"deleted": current.model_dump(mode="json")}
        )

        return True

    def get_stats(self, ctx: RequestContext, today: date | None = None) -> InvoiceStats:
        """Organization-wide totals over every invoice, by display status."""
        today = today or today_utc()
        with self.storage.transaction(ctx.organization_id) as session:
            summaries = [
                summarize(inv, session.payments.sum_by_invoice(inv.id), today)
                for inv in session.invoices.list_all(limit=None)
            ]

        count_by_status = {status.value: 0 for status in InvoiceStatus}
        for summary in summaries:
            count_by_status[summary.status.value] += 1

        count = len(summaries)
        return InvoiceStats(
            invoice_count=count,
            total_invoiced=sum_money(s.invoice.amount for s in summaries),
            paid_amount=sum_money(min(s.paid_amount, s.invoice.amount) for s in summaries),
            outstanding_amount=sum_money(s.pending_amount for s in summaries),
            overdue_amount=sum_money(s.pending_amount for s in summaries if s.is_overdue),
            count_by_status=count_by_status,
            paid_percentage=(count_by_status[InvoiceStatus.PAID.value] / count * 100) if count else 0.0,
        )
