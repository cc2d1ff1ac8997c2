"""Explicit per-request identity passed into every ledger operation."""

from uuid import UUID

from pydantic import BaseModel, Field


class RequestContext(BaseModel):
    """
    Who is acting, and on behalf of which organization.

    Services take this as their first argument instead of reading ambient
    state. Every store query is scoped by organization_id.
    """

    organization_id: UUID
    actor: str = Field("system", min_length=1, max_length=255)

    model_config = {"frozen": True}
