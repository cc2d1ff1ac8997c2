"""FastAPI application factory."""

from fastapi import FastAPI

from api.actions import create_actions_router
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import RequestContextMiddleware, RequestIDMiddleware


def create_app(services: dict) -> FastAPI:
    """
    Build the ledger API around already-constructed services.

    Args:
        services: {"invoice": InvoiceService, "payment": PaymentService}
    """
    app = FastAPI(title="Billing Ledger")

    # Last added runs first: request IDs exist before the context check
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(create_data_router(services), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")

    return app
