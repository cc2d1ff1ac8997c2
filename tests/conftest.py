"""Shared test fixtures for the billing ledger test suite."""

import pytest
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from unittest.mock import Mock
from uuid import UUID

from dotenv import load_dotenv

# Load .env before anything reads Vault settings from the environment
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from core.audit import AuditLogger
from core.config import BillingConfig
from core.event_bus import EventBus
from core.models import BillItem, BillItemType
from core.services.invoice_service import InvoiceService
from core.services.payment_service import PaymentService
from core.stores import InMemoryLedgerStorage
from utils.request_context import RequestContext
from utils.timezone import today_utc


# =============================================================================
# TEST ORGANIZATION CONSTANTS
# =============================================================================

# Primary test organization - use for single-org tests
TEST_ORG_ID = UUID("00000000-0000-0000-0000-00000000000a")

# Secondary test organization - use for isolation tests
TEST_ORG_B_ID = UUID("00000000-0000-0000-0000-00000000000b")


@pytest.fixture
def org_id() -> UUID:
    return TEST_ORG_ID


@pytest.fixture
def ctx() -> RequestContext:
    """Request context for the primary test organization."""
    return RequestContext(organization_id=TEST_ORG_ID, actor="landlord@test.local")


@pytest.fixture
def ctx_b() -> RequestContext:
    """Request context for the secondary organization (isolation tests)."""
    return RequestContext(organization_id=TEST_ORG_B_ID, actor="other@test.local")


# =============================================================================
# LEDGER FIXTURES
# =============================================================================


@pytest.fixture
def storage():
    return InMemoryLedgerStorage(lock_timeout_ms=2000)


@pytest.fixture
def audit():
    """Audit logger stand-in; the in-memory ledger has no audit table."""
    return Mock(spec=AuditLogger)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def published(event_bus):
    """Every event published on the bus, in order."""
    events = []
    for name in ("InvoiceGenerated", "InvoiceStatusChanged", "InvoicePaid", "PaymentRecorded"):
        event_bus.subscribe(name, events.append)
    return events


@pytest.fixture
def config():
    return BillingConfig()


@pytest.fixture
def invoice_service(storage, audit, event_bus, config):
    return InvoiceService(storage, audit, event_bus, config)


@pytest.fixture
def payment_service(storage, audit, event_bus, config):
    return PaymentService(storage, audit, event_bus, config)


@pytest.fixture
def make_invoice(invoice_service, ctx):
    """Factory: generate a rent-only invoice for the given amount."""

    def _make(amount="1000.00", due_in_days=30, context=None):
        return invoice_service.generate_invoice(
            context or ctx,
            tenant_id=None,
            unit_id=None,
            due_date=today_utc() + timedelta(days=due_in_days),
            items=[BillItem(type=BillItemType.RENT, amount=Decimal(amount))],
        )

    return _make
