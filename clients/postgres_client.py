"""
PostgreSQL client with connection pooling and explicit transactions.

Uses psycopg2 with ThreadedConnectionPool. Single statements autocommit
through execute()/execute_returning(); multi-statement work that must be
atomic (row locks, read-then-write) goes through transaction().

Organization isolation is enforced with PostgreSQL Row Level Security:
callers pass the organization explicitly and it is applied with
SET LOCAL app.current_organization_id for the life of the transaction.
No organization = RLS blocks all rows.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.extras
import psycopg2.pool

logger = logging.getLogger(__name__)

# Global JSONB registration flag
_jsonb_registered = False


def _convert_params(params: Tuple | Dict | None) -> Tuple | Dict | None:
    """Convert UUID objects to strings."""
    if params is None:
        return None

    def convert(value: Any) -> Any:
        if isinstance(value, UUID):
            return str(value)
        if isinstance(value, list):
            return [convert(v) for v in value]
        if isinstance(value, tuple):
            return tuple(convert(v) for v in value)
        if isinstance(value, dict):
            return {k: convert(v) for k, v in value.items()}
        return value

    return convert(params)


class Transaction:
    """
    Query methods bound to one open connection.

    Nothing is committed until the surrounding PostgresClient.transaction()
    block exits cleanly.
    """

    def __init__(self, conn):
        self._conn = conn

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        with self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(query, _convert_params(params))
            if cur.description:
                return [dict(row) for row in cur.fetchall()]
            return []

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Tuple | Dict | None = None) -> Any:
        """Execute query, return first value of first row or None."""
        with self._conn.cursor() as cur:
            cur.execute(query, _convert_params(params))
            result = cur.fetchone()
            return result[0] if result else None

    def execute_rowcount(self, query: str, params: Tuple | Dict | None = None) -> int:
        """Execute UPDATE/DELETE, return number of affected rows."""
        with self._conn.cursor() as cur:
            cur.execute(query, _convert_params(params))
            return cur.rowcount


class PostgresClient:
    """
    PostgreSQL client with pooled connections.

    Usage:
        db = PostgresClient(database_url)

        # One-off statement
        db.execute("SELECT 1")

        # Atomic unit of work, scoped to an organization for RLS
        with db.transaction(organization_id=org_id) as tx:
            row = tx.execute_single("SELECT * FROM invoices WHERE id = %s FOR UPDATE", (invoice_id,))
            tx.execute("UPDATE invoices SET status = %s WHERE id = %s", ("paid", invoice_id))
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str):
        self._database_url = database_url
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            if self._database_url not in self._connection_pools:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=2,
                    maxconn=20,
                    dsn=self._database_url,
                    connect_timeout=30,
                )

                global _jsonb_registered
                if not _jsonb_registered:
                    psycopg2.extras.register_default_jsonb(globally=True)
                    _jsonb_registered = True

                self._connection_pools[self._database_url] = pool
                logger.info("Connection pool created")

    @contextmanager
    def get_connection(self):
        """Borrow a pooled connection; always returned to the pool."""
        if self._database_url not in self._connection_pools:
            self._ensure_connection_pool()

        pool = self._connection_pools[self._database_url]
        conn = None

        try:
            conn = pool.getconn()
            if conn is None:
                raise RuntimeError("Could not get connection from pool")
            yield conn
        finally:
            if conn:
                pool.putconn(conn)

    @contextmanager
    def transaction(
        self,
        organization_id: UUID | None = None,
        lock_timeout_ms: int | None = None,
    ) -> Iterator[Transaction]:
        """
        Run a block of statements as one transaction.

        Commits when the block exits normally, rolls back on any exception
        and re-raises it.

        Args:
            organization_id: Applied as app.current_organization_id for RLS
            lock_timeout_ms: Fail row-lock waits after this long instead of blocking
        """
        with self.get_connection() as conn:
            try:
                with conn.cursor() as cur:
                    # SET LOCAL cannot take bind parameters; set_config(..., true) is the equivalent
                    cur.execute(
                        "SELECT set_config('app.current_organization_id', %s, true)",
                        (str(organization_id) if organization_id is not None else "",)
                    )
                    if lock_timeout_ms is not None:
                        cur.execute(
                            "SELECT set_config('lock_timeout', %s, true)",
                            (f"{int(lock_timeout_ms)}ms",)
                        )
                yield Transaction(conn)
                conn.commit()
            except BaseException:
                conn.rollback()
                raise

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        with self.transaction() as tx:
            return tx.execute(query, params)

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Tuple | Dict | None = None) -> Any:
        """Execute query, return first value of first row or None."""
        with self.transaction() as tx:
            return tx.execute_scalar(query, params)

    def execute_returning(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE with RETURNING, return results."""
        with self.transaction() as tx:
            return tx.execute(query, params)

    def close(self) -> None:
        """Close connection pool."""
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                self._connection_pools[self._database_url].closeall()
                del self._connection_pools[self._database_url]

    @classmethod
    def close_all_pools(cls) -> None:
        """Close all connection pools."""
        with cls._pools_lock:
            for pool in cls._connection_pools.values():
                pool.closeall()
            cls._connection_pools.clear()
