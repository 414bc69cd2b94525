"""
PostgreSQL client with connection pooling and locked transactions.

Uses psycopg2 with ThreadedConnectionPool. Single statements run through
execute*() on a pooled connection. Check-then-write units of work run through
transaction(), which holds one connection and can take a transaction-scoped
advisory lock so two requests for the same artist queue up instead of both
passing the check. Locked units run READ COMMITTED; unlocked ones SERIALIZABLE.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Tuple, TypeVar
from uuid import UUID

import psycopg2
import psycopg2.errors
import psycopg2.extras
import psycopg2.pool

from core.errors import TransactionConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Global JSONB registration flag
_jsonb_registered = False

ISOLATION_LEVELS = {"READ COMMITTED", "REPEATABLE READ", "SERIALIZABLE"}


def default_isolation(lock_key: str | None) -> str:
    """
    Isolation level for a unit of work.

    READ COMMITTED under a lock key: each later statement reads rows committed
    by the previous lock holder. At REPEATABLE READ or SERIALIZABLE the lock
    statement itself fixes the snapshot before it waits.
    """
    return "READ COMMITTED" if lock_key is not None else "SERIALIZABLE"

# SQLSTATE 40001 / 40P01: the engine aborted one of two racing writers
_RETRYABLE_ERRORS = (
    psycopg2.errors.SerializationFailure,
    psycopg2.errors.DeadlockDetected,
)


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
    Query interface bound to one open transaction.

    Same execute* surface as PostgresClient, but nothing is committed until
    the enclosing PostgresClient.transaction() block exits cleanly.
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

    def execute_returning(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE/DELETE with RETURNING inside the transaction."""
        return self.execute(query, params)


class PostgresClient:
    """
    PostgreSQL client.

    Usage:
        db = PostgresClient(database_url)

        rows = db.execute("SELECT * FROM bookings WHERE artist_id = %s", (artist_id,))

        with db.transaction(lock_key=f"artist:{artist_id}") as tx:
            tx.execute(...)   # check
            tx.execute(...)   # write, committed on clean exit
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str, minconn: int = 2, maxconn: int = 20):
        self._database_url = database_url
        self._minconn = minconn
        self._maxconn = maxconn
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            if self._database_url not in self._connection_pools:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self._minconn,
                    maxconn=self._maxconn,
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
        """Borrow a pooled connection. The pool rolls back anything left open."""
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
        lock_key: str | None = None,
        isolation: str | None = None,
    ) -> Iterator[Transaction]:
        """
        Run a unit of work in one transaction.

        Args:
            lock_key: If set, pg_advisory_xact_lock(hashtext(lock_key)) is taken
                first and held until commit/rollback
            isolation: Transaction isolation level. Defaults to READ COMMITTED
                under a lock key and SERIALIZABLE otherwise.

        Raises:
            TransactionConflictError: Serialization failure or deadlock; the
                whole unit may be retried
        """
        isolation = isolation or default_isolation(lock_key)
        if isolation not in ISOLATION_LEVELS:
            raise ValueError(f"Unsupported isolation level: {isolation}")

        with self.get_connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(f"SET TRANSACTION ISOLATION LEVEL {isolation}")
                    if lock_key is not None:
                        cur.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (lock_key,))

                yield Transaction(conn)
                conn.commit()

            except _RETRYABLE_ERRORS as e:
                conn.rollback()
                logger.warning(f"Transaction aborted by storage engine (lock_key={lock_key}): {e.pgcode}")
                raise TransactionConflictError(str(e)) from e

            except BaseException:
                conn.rollback()
                raise

    def run_in_transaction(
        self,
        work: Callable[[Transaction], T],
        lock_key: str | None = None,
        retries: int = 3,
    ) -> T:
        """
        Run work(tx) in a locked transaction, retrying storage-engine aborts.

        Only TransactionConflictError is retried. Domain errors raised by
        `work` roll back and propagate on the first attempt.
        """
        for attempt in range(1, retries + 1):
            try:
                with self.transaction(lock_key=lock_key) as tx:
                    return work(tx)
            except TransactionConflictError:
                if attempt == retries:
                    logger.error(f"Giving up after {attempt} aborted attempts (lock_key={lock_key})")
                    raise
                logger.info(f"Retrying aborted transaction (attempt {attempt + 1}/{retries}, lock_key={lock_key})")

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        params = _convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                rows = [dict(row) for row in cur.fetchall()] if cur.description else []
            conn.commit()
            return rows

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Tuple | Dict | None = None) -> Any:
        """Execute query, return first value of first row or None."""
        params = _convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                result = cur.fetchone()
            conn.commit()
            return result[0] if result else None

    def execute_returning(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE with RETURNING, return results."""
        params = _convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                rows = [dict(row) for row in cur.fetchall()]
            conn.commit()
            return rows

    def close(self) -> None:
        """Close connection pool."""
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                self._connection_pools[self._database_url].closeall()
                del self._connection_pools[self._database_url]
