"""
PostgreSQL sink: idempotent batch upserts into the customers table.

Implements INSERT ... ON CONFLICT UPDATE so that reloading a batch after a
retry, or rerunning the same input, leaves the table in the same state.
"""

import psycopg
from psycopg import Connection
from psycopg_pool import PoolTimeout

from customer_etl.core.exceptions import LoadError, RetryableLoadError, TerminalLoadError
from customer_etl.core.models import Batch
from customer_etl.observability.logger import get_logger
from customer_etl.warehouse.connection import DatabaseConnectionPool
from customer_etl.warehouse.schema_mgmt import CUSTOMERS_TABLE

from .base import RecordSink

logger = get_logger(__name__)

CUSTOMER_COLUMNS = (
    "customer_id",
    "name",
    "email",
    "region",
    "segment",
    "status",
    "signup_date",
    "annual_revenue",
    "revenue_tier",
    "customer_lifetime_value",
    "days_since_signup",
    "data_quality_score",
    "processed_at",
    "run_id",
)

UPSERT_QUERY = f"""
    INSERT INTO {CUSTOMERS_TABLE} ({", ".join(CUSTOMER_COLUMNS)})
    VALUES ({", ".join(["%s"] * len(CUSTOMER_COLUMNS))})
    ON CONFLICT (customer_id) DO UPDATE SET
        {", ".join(f"{c} = EXCLUDED.{c}" for c in CUSTOMER_COLUMNS if c != "customer_id")},
        loaded_at = NOW()
"""

# Errors that will not go away on retry
TERMINAL_ERRORS = (
    psycopg.IntegrityError,
    psycopg.DataError,
    psycopg.ProgrammingError,
    psycopg.NotSupportedError,
)

# Connection loss, timeouts (QueryCanceled), deadlocks and serialization failures
RETRYABLE_ERRORS = (
    psycopg.OperationalError,
    psycopg.InterfaceError,
    PoolTimeout,
)


def classify_error(error: Exception, context: dict | None = None) -> LoadError:
    """
    Wrap a database error as RetryableLoadError or TerminalLoadError.

    Errors that are neither clearly transient nor clearly permanent are
    treated as terminal.
    """
    if isinstance(error, LoadError):
        return error
    message = f"{type(error).__name__}: {error}".strip()
    if isinstance(error, TERMINAL_ERRORS):
        return TerminalLoadError(message, context=context, original_exception=error)
    if isinstance(error, RETRYABLE_ERRORS):
        return RetryableLoadError(message, context=context, original_exception=error)
    return TerminalLoadError(message, context=context, original_exception=error)


class PostgresTransaction:
    """A pooled connection held for one begin/write/commit cycle."""

    def __init__(self, conn: Connection):
        self.conn = conn
        self.finished = False


class PostgresSink(RecordSink):
    """
    Writes batches to PostgreSQL through a DatabaseConnectionPool.

    Each transaction checks out its own connection, so loader threads never
    share one. Every statement in the transaction is bounded by
    SET LOCAL statement_timeout; a timeout surfaces as a retryable error.
    """

    name = "postgres"

    def __init__(
        self,
        pool: DatabaseConnectionPool,
        timeout_seconds: float = 30.0,
        run_id: str | None = None,
        close_pool: bool = False,
    ):
        """
        Initialize the sink.

        Args:
            pool: Open database connection pool
            timeout_seconds: Statement and connection checkout timeout
            run_id: Stored with each row for lineage
            close_pool: Close the pool when the sink is closed
        """
        self.pool = pool
        self.timeout_seconds = timeout_seconds
        self.run_id = run_id
        self.close_pool = close_pool

    def begin_transaction(self) -> PostgresTransaction:
        try:
            conn = self.pool.acquire(timeout=self.timeout_seconds)
        except Exception as e:
            raise classify_error(e, {"operation": "begin_transaction"}) from e

        txn = PostgresTransaction(conn)
        try:
            with conn.cursor() as cur:
                # SET does not accept bind parameters
                cur.execute(f"SET LOCAL statement_timeout = {int(self.timeout_seconds * 1000)}")
        except Exception as e:
            self.rollback(txn)
            raise classify_error(e, {"operation": "begin_transaction"}) from e
        return txn

    def write_batch(self, txn: PostgresTransaction, batch: Batch) -> int:
        params = [
            (
                record.customer_id,
                record.name,
                record.email,
                record.region,
                record.segment,
                record.status,
                record.signup_date,
                record.annual_revenue,
                record.revenue_tier.value,
                record.customer_lifetime_value,
                record.days_since_signup,
                record.data_quality_score,
                record.processed_at,
                self.run_id,
            )
            for record in batch.records
        ]

        try:
            with txn.conn.cursor() as cur:
                cur.executemany(UPSERT_QUERY, params)
        except Exception as e:
            raise classify_error(
                e, {"operation": "write_batch", "sequence_number": batch.sequence_number}
            ) from e
        return len(params)

    def commit(self, txn: PostgresTransaction) -> None:
        try:
            txn.conn.commit()
        except Exception as e:
            raise classify_error(e, {"operation": "commit"}) from e
        self._release(txn)

    def rollback(self, txn: PostgresTransaction) -> None:
        if txn.finished:
            return
        try:
            txn.conn.rollback()
        except psycopg.Error as e:
            # Broken connection; the pool discards it on release
            logger.warning("Rollback failed", extra={"error": str(e)})
        self._release(txn)

    def _release(self, txn: PostgresTransaction) -> None:
        if not txn.finished:
            txn.finished = True
            self.pool.release(txn.conn)

    def close(self) -> None:
        if self.close_pool:
            self.pool.close()
