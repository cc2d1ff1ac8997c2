"""
Handler that turns ledger events into activity log lines.

One INFO line per event, in the wording of the dashboard activity feed:
invoices generated, payments received, status changes, invoices paid.
"""

import logging
from typing import Callable

from core.event_bus import EventBus
from core.events import InvoiceGenerated, InvoicePaid, InvoiceStatusChanged, LedgerEvent, PaymentRecorded

logger = logging.getLogger(__name__)

ACTIVITY_EVENTS = (InvoiceGenerated, PaymentRecorded, InvoiceStatusChanged, InvoicePaid)


def describe(event: LedgerEvent) -> str:
    """Feed wording for an event."""
    if isinstance(event, InvoiceGenerated):
        return f"Invoice {event.invoice.invoice_number} generated for {event.invoice.amount}"

    if isinstance(event, PaymentRecorded):
        payment = event.payment
        target = event.invoice.invoice_number if event.invoice is not None else "no invoice (advance)"
        return f"Payment of {payment.amount} received from {payment.paid_by} via {payment.method.value} for {target}"

    if isinstance(event, InvoiceStatusChanged):
        return (
            f"Invoice {event.invoice.invoice_number} moved from "
            f"{event.old_status} to {event.invoice.status.value}"
        )

    if isinstance(event, InvoicePaid):
        return f"Invoice {event.invoice.invoice_number} paid in full"

    return type(event).__name__


def handle_activity() -> Callable:
    """
    Factory that returns a handler logging each event's feed line.

    Returns:
        Handler callable for any ledger event
    """

    def handler(event: LedgerEvent):
        logger.info("[org %s] %s", event.organization_id, describe(event))

    return handler


def register_activity_log(event_bus: EventBus) -> None:
    """Subscribe the activity handler to every ledger event type."""
    handler = handle_activity()
    for event_type in ACTIVITY_EVENTS:
        event_bus.subscribe(event_type.__name__, handler)
