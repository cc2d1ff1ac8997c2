"""Request-scoped middleware for API requests."""

import logging
from uuid import UUID, uuid4

from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from utils.request_context import RequestContext

logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a unique request ID to every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Builds the RequestContext every ledger call needs.

    Organization comes from X-Organization-ID, actor from X-Actor
    (defaults to "system"). Session handling happens upstream; this layer
    only refuses requests that arrive without an organization.

    Public paths skip the check.
    """

    PUBLIC_PATHS = [
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def _is_public_path(self, path: str) -> bool:
        return any(path == p or path.startswith(p) for p in self.PUBLIC_PATHS)

    def _reject(self, request: Request, message: str) -> JSONResponse:
        return JSONResponse(
            status_code=401,
            content=error_response(
                ErrorCodes.NOT_AUTHENTICATED,
                message,
                getattr(request.state, "request_id", None),
            ).model_dump(mode="json"),
        )

    async def dispatch(self, request: Request, call_next):
        if self._is_public_path(request.url.path):
            return await call_next(request)

        org_header = request.headers.get("X-Organization-ID")
        if not org_header:
            return self._reject(request, "X-Organization-ID header is required")

        try:
            ctx = RequestContext(
                organization_id=UUID(org_header),
                actor=request.headers.get("X-Actor") or "system",
            )
        except (ValueError, ValidationError):
            logger.warning(f"Rejected request with malformed organization header: {org_header!r}")
            return self._reject(request, "X-Organization-ID must be a UUID")

        request.state.ctx = ctx
        return await call_next(request)
