"""
Schema management operations for the customer warehouse.

Creates the tables the pipeline writes to:
- customers: transformed customer records, keyed by customer_id
- quarantined_batch: batches that could not be loaded
- rejected_record: records rejected by validation
"""

from .connection import DatabaseConnectionPool

CUSTOMERS_TABLE = "customers"
QUARANTINED_BATCH_TABLE = "quarantined_batch"
REJECTED_RECORD_TABLE = "rejected_record"

SCHEMA_DDL = [
    f"""
    CREATE TABLE IF NOT EXISTS {CUSTOMERS_TABLE} (
        customer_id BIGINT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL,
        region TEXT NOT NULL DEFAULT '',
        segment TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT '',
        signup_date DATE NOT NULL,
        annual_revenue NUMERIC(18, 2) NOT NULL CHECK (annual_revenue >= 0),
        revenue_tier TEXT NOT NULL,
        customer_lifetime_value NUMERIC(20, 2) NOT NULL,
        days_since_signup INTEGER NOT NULL,
        data_quality_score SMALLINT NOT NULL CHECK (data_quality_score BETWEEN 0 AND 100),
        processed_at TIMESTAMPTZ NOT NULL,
        run_id TEXT,
        loaded_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {QUARANTINED_BATCH_TABLE} (
        quarantine_id BIGSERIAL PRIMARY KEY,
        run_id TEXT NOT NULL,
        sequence_number INTEGER NOT NULL,
        record_count INTEGER NOT NULL,
        reason TEXT NOT NULL,
        error_type TEXT NOT NULL,
        attempts INTEGER NOT NULL,
        records JSONB NOT NULL,
        quarantined_at TIMESTAMPTZ NOT NULL,
        UNIQUE (run_id, sequence_number)
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {REJECTED_RECORD_TABLE} (
        rejected_id BIGSERIAL PRIMARY KEY,
        run_id TEXT NOT NULL,
        record_id TEXT,
        raw_payload JSONB NOT NULL,
        failed_rules TEXT[] NOT NULL,
        error_messages TEXT[] NOT NULL,
        reason TEXT NOT NULL,
        data_quality_score SMALLINT NOT NULL,
        rejected_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_{REJECTED_RECORD_TABLE}_run ON {REJECTED_RECORD_TABLE} (run_id)",
]

MANAGED_TABLES = (CUSTOMERS_TABLE, QUARANTINED_BATCH_TABLE, REJECTED_RECORD_TABLE)


class SchemaManager:
    """
    Manages the warehouse DDL.

    All statements are idempotent, so ensure_schema() can run before every
    pipeline run.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize schema manager.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    def ensure_schema(self) -> None:
        """Create all pipeline tables and indexes that do not exist yet."""
        with self.pool.get_connection() as conn:
            with conn.cursor() as cur:
                for statement in SCHEMA_DDL:
                    cur.execute(statement)
            conn.commit()

    def drop_schema(self) -> None:
        """Drop every pipeline table. Intended for tests and local resets."""
        with self.pool.get_connection() as conn:
            with conn.cursor() as cur:
                for table in MANAGED_TABLES:
                    cur.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
            conn.commit()

    def table_exists(self, table_name: str) -> bool:
        query = """
            SELECT EXISTS (
                SELECT 1 FROM information_schema.tables
                WHERE table_schema = current_schema() AND table_name = %s
            ) AS present
        """
        result = self.pool.execute_query(query, (table_name,))
        return bool(result[0]["present"])

    def count_rows(self, table_name: str) -> int:
        """
        Count rows in a managed table.

        Raises:
            ValueError: If the table is not one of the pipeline tables
        """
        if table_name not in MANAGED_TABLES:
            raise ValueError(f"Unknown table: {table_name}")
        result = self.pool.execute_query(f"SELECT COUNT(*) AS n FROM {table_name}")
        return result[0]["n"]
