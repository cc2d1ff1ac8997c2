"""Tests for the ledger audit trail."""

from unittest.mock import Mock
from uuid import uuid4

import pytest
from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from core.audit import AuditAction, AuditLogger, compute_changes


class TestAuditAction:

    def test_action_values(self):
        assert AuditAction.CREATE.value == "create"
        assert AuditAction.UPDATE.value == "update"
        assert AuditAction.DELETE.value == "delete"
        assert AuditAction.RECONCILE.value == "reconcile"


class TestComputeChanges:

    def test_detects_changed_fields(self):
        old = {"amount": "1000.00", "notes": None}
        new = {"amount": "1200.00", "notes": None}

        changes = compute_changes(old, new)

        assert changes == {"amount": {"old": "1000.00", "new": "1200.00"}}

    def test_detects_added_and_removed_fields(self):
        changes = compute_changes({"paid_at": "2026-01-02"}, {"last_payment_method": "cash"})

        assert changes["paid_at"] == {"old": "2026-01-02", "new": None}
        assert changes["last_payment_method"] == {"old": None, "new": "cash"}

    def test_excludes_bookkeeping_fields_by_default(self):
        """updated_at and version change on every write and are not reported."""
        old = {"status": "pending", "version": 1, "updated_at": "a"}
        new = {"status": "pending", "version": 2, "updated_at": "b"}

        assert compute_changes(old, new) == {}

    def test_fields_reported_in_name_order(self):
        changes = compute_changes({"status": "pending", "paid_at": None}, {"status": "paid", "paid_at": "2026-03-01"})

        assert list(changes) == ["paid_at", "status"]

    def test_custom_exclude_fields(self):
        changes = compute_changes({"notes": "a", "version": 1}, {"notes": "b", "version": 2}, exclude_fields={"notes"})

        assert changes == {"version": {"old": 1, "new": 2}}


class TestAuditLogger:

    @pytest.fixture
    def postgres(self):
        return Mock(spec=PostgresClient)

    def test_log_change_inserts_attributed_row(self, postgres, ctx):
        entity_id = uuid4()

        AuditLogger(postgres).log_change(
            ctx,
            entity_type="invoice",
            entity_id=entity_id,
            action=AuditAction.CREATE,
            changes={"created": {"amount": "10.00"}},
        )

        query, params = postgres.execute.call_args.args
        assert "INSERT INTO audit_log" in query
        assert params[1] == ctx.organization_id
        assert params[2] == ctx.actor
        assert params[3:6] == ("invoice", entity_id, "create")
        assert isinstance(params[6], Json)
        assert params[6].adapted == {"created": {"amount": "10.00"}}

    def test_get_entity_history_filters_by_organization(self, postgres, ctx):
        entity_id = uuid4()
        postgres.execute.return_value = [{"action": "update"}, {"action": "create"}]

        history = AuditLogger(postgres).get_entity_history(ctx, "payment", entity_id)

        assert [h["action"] for h in history] == ["update", "create"]
        query, params = postgres.execute.call_args.args
        assert "ORDER BY created_at DESC" in query
        assert params == (ctx.organization_id, "payment", entity_id)
