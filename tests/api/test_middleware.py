"""Tests for RequestIDMiddleware and RequestContextMiddleware."""

import pytest
from uuid import UUID, uuid4
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.testclient import TestClient

from api.middleware import RequestContextMiddleware, RequestIDMiddleware


@pytest.fixture
def app():
    """Minimal FastAPI app with both middlewares."""
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/test")
    async def test_endpoint(request: Request):
        ctx = request.state.ctx
        return JSONResponse({
            "request_id": request.state.request_id,
            "organization_id": str(ctx.organization_id),
            "actor": ctx.actor,
        })

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


@pytest.fixture
def client(app):
    return TestClient(app)


class TestRequestIDMiddleware:

    def test_response_has_request_id_header(self, client):
        response = client.get("/test", headers={"X-Organization-ID": str(uuid4())})

        UUID(response.headers["X-Request-ID"])

    def test_request_state_has_request_id(self, client):
        response = client.get("/test", headers={"X-Organization-ID": str(uuid4())})

        assert response.headers["X-Request-ID"] == response.json()["request_id"]


class TestRequestContextMiddleware:

    def test_builds_context_from_headers(self, client):
        org_id = uuid4()

        response = client.get("/test", headers={"X-Organization-ID": str(org_id), "X-Actor": "dana"})

        assert response.json()["organization_id"] == str(org_id)
        assert response.json()["actor"] == "dana"

    def test_actor_defaults_to_system(self, client):
        response = client.get("/test", headers={"X-Organization-ID": str(uuid4())})

        assert response.json()["actor"] == "system"

    def test_missing_organization_returns_401(self, client):
        response = client.get("/test")

        assert response.status_code == 401
        body = response.json()
        assert body["error"]["code"] == "NOT_AUTHENTICATED"
        assert body["meta"]["request_id"] == response.headers["X-Request-ID"]

    def test_malformed_organization_returns_401(self, client):
        response = client.get("/test", headers={"X-Organization-ID": "not-a-uuid"})

        assert response.status_code == 401
        assert "must be a UUID" in response.json()["error"]["message"]

    def test_public_paths_skip_check(self, client):
        assert client.get("/health").status_code == 200
