"""Exception handlers mapping ledger errors onto the response envelope."""

import logging

import pydantic
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from core.exceptions import (
    ConcurrencyConflict,
    DuplicateInvoiceNumber,
    InvoiceLockedError,
    LedgerError,
    NotFoundError,
    OverpaymentRejected,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance() match wins.
_LEDGER_ERRORS: list[tuple[type[LedgerError], int, str]] = [
    (OverpaymentRejected, 422, ErrorCodes.OVERPAYMENT_REJECTED),
    (ValidationError, 422, ErrorCodes.VALIDATION_ERROR),
    (NotFoundError, 404, ErrorCodes.NOT_FOUND),
    (InvoiceLockedError, 409, ErrorCodes.INVOICE_LOCKED),
    (DuplicateInvoiceNumber, 409, ErrorCodes.DUPLICATE_INVOICE_NUMBER),
    (ConcurrencyConflict, 409, ErrorCodes.CONCURRENCY_CONFLICT),
]


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _error(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message, _request_id(request)).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        for error_type, status_code, code in _LEDGER_ERRORS:
            if isinstance(exc, error_type):
                if isinstance(exc, ConcurrencyConflict):
                    logger.warning(f"Concurrency conflict surfaced to client: {exc}")
                return _error(request, status_code, code, str(exc))
        logger.exception("Unmapped ledger error")
        return _error(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")

    @app.exception_handler(pydantic.ValidationError)
    async def model_validation_handler(request: Request, exc: pydantic.ValidationError):
        return _error(request, 422, ErrorCodes.VALIDATION_ERROR, str(exc.errors(include_url=False)))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _error(request, 422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error(request, 400, ErrorCodes.INVALID_REQUEST, str(exc))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _error(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
