"""
Universal audit trail for ledger changes.

Every invoice and payment mutation is logged here. The audit log is:
- Append-only (entries never modified or deleted)
- Actor-attributed (who made the change, for which organization)
- Detailed (captures old and new values)

Status transitions caused by payments are logged as RECONCILE so they can be
told apart from manual invoice edits.
"""

from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.request_context import RequestContext
from utils.timezone import now_utc

# Bookkeeping columns that change on every write
UNAUDITED_FIELDS = frozenset({"updated_at", "version"})


class AuditAction(Enum):
    """Type of change made to a ledger entity."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    RECONCILE = "reconcile"


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Field-level diff of two JSON-mode model dumps.

    Args:
        old: Previous state
        new: New state
        exclude_fields: Fields to ignore (defaults to UNAUDITED_FIELDS)

    Returns:
        {field: {"old": ..., "new": ...}} in field-name order; empty if unchanged.
    """
    exclude = UNAUDITED_FIELDS if exclude_fields is None else exclude_fields
    return {
        key: {"old": old.get(key), "new": new.get(key)}
        for key in sorted(set(old) | set(new))
        if key not in exclude and old.get(key) != new.get(key)
    }


class AuditLogger:
    """
    Append-only audit trail.

    IMPORTANT: Always use model_dump(mode="json") when passing Pydantic models
    so UUIDs, Decimals and dates are serialized to JSON-compatible values.

    Usage:
        audit = AuditLogger(postgres)

        audit.log_change(
            ctx,
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.CREATE,
            changes={"created": invoice.model_dump(mode="json")}
        )

        history = audit.get_entity_history(ctx, "invoice", invoice.id)
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def log_change(
        self,
        ctx: RequestContext,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
    ) -> None:
        """
        Log an entity change.

        Args:
            ctx: Organization and actor the change is attributed to
            entity_type: Type of entity ("invoice", "payment")
            entity_id: ID of the entity
            action: The action performed (CREATE, UPDATE, DELETE)
            changes: The changes made (format depends on action)

        Changes format by action:
        - CREATE: {"created": {full entity data}}
        - UPDATE: {"field": {"old": old_val, "new": new_val}, ...}
        - DELETE: {"deleted": {full entity data at deletion}}
        """
        self.postgres.execute(
            """
            INSERT INTO audit_log (id, organization_id, actor, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                uuid4(),
                ctx.organization_id,
                ctx.actor,
                entity_type,
                entity_id,
                action.value,
                Json(changes),
                now_utc()
            )
        )

    def get_entity_history(
        self,
        ctx: RequestContext,
        entity_type: str,
        entity_id: UUID
    ) -> list[dict[str, Any]]:
        """
        Get full audit history for an entity.

        Returns:
            List of audit entries, newest first.
        """
        return self.postgres.execute(
            """
            SELECT id, organization_id, actor, entity_type, entity_id, action, changes, created_at
            FROM audit_log
            WHERE organization_id = %s AND entity_type = %s AND entity_id = %s
            ORDER BY created_at DESC
            """,
            (ctx.organization_id, entity_type, entity_id)
        )
