"""
HashiCorp Vault client for ledger secrets.

AppRole authentication, configured from the environment. Missing
configuration fails at construction time. Every read is confined to the
'ledger/' KV prefix.
"""

import os
import logging
from typing import Dict

import hvac
from hvac.exceptions import InvalidPath, Unauthorized, Forbidden

logger = logging.getLogger(__name__)

_SECRET_PREFIX = "ledger"

_vault_client_instance: "VaultClient | None" = None
_secret_cache: Dict[str, str] = {}


class VaultError(Exception):
    """Secret could not be read. The ledger cannot start without it."""


class VaultClient:
    """AppRole-authenticated reader for KV v2 secrets under ledger/."""

    def __init__(self, vault_addr: str | None = None, vault_namespace: str | None = None):
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        self.vault_namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        role_id = os.getenv("VAULT_ROLE_ID")
        secret_id = os.getenv("VAULT_SECRET_ID")

        if not self.vault_addr:
            raise ValueError("VAULT_ADDR environment variable is required")
        if not role_id or not secret_id:
            raise ValueError("VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required")

        client_kwargs = {"url": self.vault_addr}
        if self.vault_namespace:
            client_kwargs["namespace"] = self.vault_namespace
        self.client = hvac.Client(**client_kwargs)

        try:
            login = self.client.auth.approle.login(role_id=role_id, secret_id=secret_id)
        except (Unauthorized, Forbidden) as e:
            raise VaultError(f"AppRole login rejected: {e}")
        self.client.token = login["auth"]["client_token"]

        if not self.client.is_authenticated():
            raise VaultError("Vault token not accepted after AppRole login")

        logger.info(f"Vault client authenticated against {self.vault_addr}")

    def get_secret(self, path: str, field: str) -> str:
        """
        Read one field of a KV v2 secret.

        path is relative to the ledger/ prefix: 'database' reads
        'ledger/database'.

        Raises:
            VaultError: Path missing, access denied, or field absent.
        """
        full_path = f"{_SECRET_PREFIX}/{path}"

        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )
        except InvalidPath:
            raise VaultError(f"Secret '{full_path}' not found")
        except (Unauthorized, Forbidden) as e:
            raise VaultError(f"Access denied to secret '{full_path}': {e}")

        data = response["data"]["data"]
        if field not in data:
            raise VaultError(
                f"Field '{field}' not in secret '{full_path}'. Available: {', '.join(sorted(data))}"
            )
        return data[field]


def _cached_secret(path: str, field: str) -> str:
    global _vault_client_instance

    cache_key = f"{_SECRET_PREFIX}/{path}/{field}"
    if cache_key not in _secret_cache:
        if _vault_client_instance is None:
            _vault_client_instance = VaultClient()
        _secret_cache[cache_key] = _vault_client_instance.get_secret(path, field)
    return _secret_cache[cache_key]


def get_database_url() -> str:
    """PostgreSQL URL for the ledger database (ledger/database:url)."""
    return _cached_secret("database", "url")
