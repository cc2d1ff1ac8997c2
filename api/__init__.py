"""HTTP interface for the billing ledger."""

from api.base import (
    APIResponse,
    success_response,
    error_response,
    ErrorCodes,
)
from api.app import create_app
