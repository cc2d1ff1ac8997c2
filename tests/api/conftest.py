"""API test fixtures: TestClient over in-memory ledger services."""

import pytest
from starlette.testclient import TestClient

from api.app import create_app


@pytest.fixture
def services(invoice_service, payment_service):
    return {
        "invoice": invoice_service,
        "payment": payment_service,
    }


@pytest.fixture
def app(services):
    """Ledger app with middleware, error handlers, and data/actions routes."""
    return create_app(services)


@pytest.fixture
def client(app, ctx):
    """Client that sends the primary organization's headers."""
    c = TestClient(app, raise_server_exceptions=False)
    c.headers.update({
        "X-Organization-ID": str(ctx.organization_id),
        "X-Actor": ctx.actor,
    })
    return c


@pytest.fixture
def anonymous_client(app):
    """Client without organization headers."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def invoice_payload():
    from datetime import timedelta
    from utils.timezone import today_utc

    return {
        "due_date": (today_utc() + timedelta(days=30)).isoformat(),
        "items": [
            {"type": "rent", "amount": "1000.00"},
            {
                "type": "water",
                "start_reading": "100",
                "end_reading": "140",
                "units_divider_room": "4",
                "rate": "9",
            },
        ],
    }


@pytest.fixture
def generate_invoice(client, invoice_payload):
    """Factory: generate an invoice through the API and return its JSON."""

    def _generate(**overrides):
        payload = {**invoice_payload, **overrides}
        response = client.post("/api/actions", json={
            "domain": "invoice",
            "action": "generate",
            "data": payload,
        })
        assert response.status_code == 200, response.text
        return response.json()["data"]

    return _generate
