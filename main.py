"""
Production entrypoint.

    uvicorn main:build_app --factory

Reads Vault credentials from the environment (optionally a .env file),
fetches the database URL and wires services onto PostgreSQL storage.
"""

import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from api.app import create_app
from clients.postgres_client import PostgresClient
from clients.vault_client import get_database_url
from core.audit import AuditLogger
from core.config import BillingConfig
from core.event_bus import EventBus
from core.handlers.activity_log_handler import register_activity_log
from core.services.invoice_service import InvoiceService
from core.services.payment_service import PaymentService
from core.stores.postgres import PostgresLedgerStorage

logger = logging.getLogger(__name__)


def build_services(postgres: PostgresClient, config: BillingConfig | None = None) -> dict:
    """Invoice and payment services sharing one storage, audit log and event bus."""
    config = config or BillingConfig()
    storage = PostgresLedgerStorage(postgres, lock_timeout_ms=config.lock_timeout_ms)
    audit = AuditLogger(postgres)
    event_bus = EventBus()
    register_activity_log(event_bus)

    return {
        "invoice": InvoiceService(storage, audit, event_bus, config),
        "payment": PaymentService(storage, audit, event_bus, config),
    }


def build_app() -> FastAPI:
    load_dotenv(Path(__file__).parent / ".env")
    logging.basicConfig(level=logging.INFO)

    postgres = PostgresClient(get_database_url())
    logger.info("Billing ledger starting")
    return create_app(build_services(postgres))
