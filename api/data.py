"""GET /api/data: unified read endpoint."""

from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response
from core.exceptions import NotFoundError, ValidationError


VALID_TYPES = {"invoices", "payments", "stats"}
VALID_STAT_SCOPES = {"invoices", "payments"}


def create_data_router(services: dict) -> APIRouter:
    router = APIRouter()

    invoice_svc = services["invoice"]
    payment_svc = services["payment"]

    # Plain def: runs in the threadpool alongside blocking storage calls
    @router.get("/data")
    def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        invoice_id: str | None = Query(None),
        filter: str = Query("all"),
        scope: str | None = Query(None),
        include: str | None = Query(None),
        limit: int = Query(50, ge=1, le=500),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        ctx = request.state.ctx
        includes = set(include.split(",")) if include else set()

        if type == "invoices":
            data = _handle_invoices(invoice_svc, payment_svc, ctx, id, filter, includes, limit)
        elif type == "payments":
            data = _handle_payments(payment_svc, ctx, id, invoice_id, limit)
        else:
            data = _handle_stats(invoice_svc, payment_svc, ctx, scope)

        return success_response(data, request.state.request_id).model_dump(mode="json")

    return router


def _handle_invoices(invoice_svc, payment_svc, ctx, id, filter, includes, limit):
    if id:
        summary = invoice_svc.get_summary(ctx, UUID(id))
        data = summary.model_dump(mode="json")
        if "payments" in includes:
            payments = payment_svc.list_for_invoice(ctx, summary.invoice.id)
            data["payments"] = [p.model_dump(mode="json") for p in payments]
        return data

    summaries = invoice_svc.list_invoices(ctx, filter=filter, limit=limit)
    return [s.model_dump(mode="json") for s in summaries]


def _handle_payments(payment_svc, ctx, id, invoice_id, limit):
    if id:
        payment = payment_svc.get_by_id(ctx, UUID(id))
        if payment is None:
            raise NotFoundError("payment", id)
        return payment.model_dump(mode="json")

    if invoice_id:
        payments = payment_svc.list_for_invoice(ctx, UUID(invoice_id))
    else:
        payments = payment_svc.list_payments(ctx, limit)
    return [p.model_dump(mode="json") for p in payments]


def _handle_stats(invoice_svc, payment_svc, ctx, scope):
    if scope not in VALID_STAT_SCOPES:
        raise ValidationError(
            f"'stats' type requires 'scope' parameter ({', '.join(sorted(VALID_STAT_SCOPES))})"
        )

    if scope == "invoices":
        return invoice_svc.get_stats(ctx).model_dump(mode="json")
    return payment_svc.get_stats(ctx).model_dump(mode="json")
