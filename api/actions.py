"""POST /api/actions: unified mutation endpoint."""

from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel

from api.base import success_response
from core.exceptions import NotFoundError, ValidationError
from core.models import InvoiceCreate, InvoiceUpdate, PaymentCreate, PaymentUpdate
from utils.request_context import RequestContext


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    handlers = {
        "invoice": InvoiceHandler(services["invoice"]),
        "payment": PaymentHandler(services["payment"]),
    }

    # Plain def: ledger calls block on row locks, so this runs in the threadpool
    @router.post("/actions")
    def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise ValueError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        method = getattr(handler, f"_handle_{body.action}")
        result = method(request.state.ctx, dict(body.data))
        return success_response(result, request.state.request_id).model_dump(mode="json")

    return router


def _required_id(data: dict, key: str = "id") -> UUID:
    if not data.get(key):
        raise ValidationError(f"'{key}' is required")
    return UUID(str(data.pop(key)))


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class InvoiceHandler:
    ALLOWED_ACTIONS = {"generate", "update", "delete"}

    def __init__(self, service):
        self.service = service

    def _handle_generate(self, ctx: RequestContext, data: dict):
        request = InvoiceCreate(**data)
        invoice = self.service.generate_invoice(
            ctx,
            tenant_id=request.tenant_id,
            unit_id=request.unit_id,
            due_date=request.due_date,
            items=request.items,
            notes=request.notes,
        )
        return invoice.model_dump(mode="json")

    def _handle_update(self, ctx: RequestContext, data: dict):
        invoice_id = _required_id(data)
        invoice = self.service.update(ctx, invoice_id, InvoiceUpdate(**data))
        return invoice.model_dump(mode="json")

    def _handle_delete(self, ctx: RequestContext, data: dict):
        invoice_id = _required_id(data)
        if not self.service.delete(ctx, invoice_id):
            raise NotFoundError("invoice", invoice_id)
        return {"deleted": True}


class PaymentHandler:
    ALLOWED_ACTIONS = {"record", "record_unlinked", "update", "delete"}

    def __init__(self, service):
        self.service = service

    def _handle_record(self, ctx: RequestContext, data: dict):
        request = PaymentCreate(**data)
        if request.invoice_id is None:
            raise ValidationError("'invoice_id' is required; use record_unlinked for advance payments")

        payment, invoice = self.service.record_payment(
            ctx,
            invoice_id=request.invoice_id,
            amount=request.amount,
            method=request.method,
            paid_by=request.paid_by,
            received_by=request.received_by,
            paid_at=request.paid_at,
            description=request.description,
            payment_type=request.payment_type,
        )
        return {
            "payment": payment.model_dump(mode="json"),
            "invoice": invoice.model_dump(mode="json"),
            "pending_amount": str(self.service.get_pending_amount(invoice)),
        }

    def _handle_record_unlinked(self, ctx: RequestContext, data: dict):
        request = PaymentCreate(**data)
        payment = self.service.record_unlinked_payment(
            ctx,
            amount=request.amount,
            method=request.method,
            paid_by=request.paid_by,
            received_by=request.received_by,
            paid_at=request.paid_at,
            description=request.description,
            payment_type=request.payment_type,
        )
        return payment.model_dump(mode="json")

    def _handle_update(self, ctx: RequestContext, data: dict):
        payment_id = _required_id(data)
        payment, invoices = self.service.update_payment(ctx, payment_id, PaymentUpdate(**data))
        return {
            "payment": payment.model_dump(mode="json"),
            "invoices": [i.model_dump(mode="json") for i in invoices],
        }

    def _handle_delete(self, ctx: RequestContext, data: dict):
        payment_id = _required_id(data)
        invoice = self.service.delete_payment(ctx, payment_id)
        return {
            "deleted": True,
            "invoice": invoice.model_dump(mode="json") if invoice else None,
        }
