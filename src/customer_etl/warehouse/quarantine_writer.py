"""
Persists quarantined batches and rejected records for later inspection.
"""

from psycopg.types.json import Jsonb

from customer_etl.core.models import QuarantinedBatch, RejectedRecord
from customer_etl.observability.logger import get_logger

from .connection import DatabaseConnectionPool
from .schema_mgmt import QUARANTINED_BATCH_TABLE, REJECTED_RECORD_TABLE

logger = get_logger(__name__)


class QuarantineWriter:
    """
    Handles writing quarantined batches and rejected records to the warehouse.
    """

    def __init__(self, pool: DatabaseConnectionPool, run_id: str):
        """
        Initialize quarantine writer.

        Args:
            pool: Database connection pool
            run_id: Run the written rows belong to
        """
        self.pool = pool
        self.run_id = run_id

    def write_batch(self, quarantined: QuarantinedBatch) -> None:
        """
        Store a quarantined batch with all of its records.

        Re-writing the same (run_id, sequence_number) replaces the earlier row.
        """
        query = f"""
            INSERT INTO {QUARANTINED_BATCH_TABLE} (
                run_id, sequence_number, record_count, reason, error_type,
                attempts, records, quarantined_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (run_id, sequence_number) DO UPDATE SET
                record_count = EXCLUDED.record_count,
                reason = EXCLUDED.reason,
                error_type = EXCLUDED.error_type,
                attempts = EXCLUDED.attempts,
                records = EXCLUDED.records,
                quarantined_at = EXCLUDED.quarantined_at
        """

        self.pool.execute_command(
            query,
            (
                self.run_id,
                quarantined.sequence_number,
                quarantined.record_count,
                quarantined.reason,
                quarantined.error_type,
                quarantined.attempts,
                Jsonb([record.to_row() for record in quarantined.records]),
                quarantined.quarantined_at,
            ),
        )

    def write_rejected(self, records: list[RejectedRecord]) -> int:
        """
        Store rejected records in bulk.

        Returns:
            Number of rows written
        """
        if not records:
            return 0

        query = f"""
            INSERT INTO {REJECTED_RECORD_TABLE} (
                run_id, record_id, raw_payload, failed_rules, error_messages,
                reason, data_quality_score
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s)
        """

        self.pool.execute_batch(
            query,
            [
                (
                    self.run_id,
                    record.record_id,
                    Jsonb(record.raw_payload),
                    record.failed_rules,
                    record.error_messages,
                    record.reason,
                    record.data_quality_score,
                )
                for record in records
            ],
        )
        logger.info(
            "Rejected records persisted",
            extra={"run_id": self.run_id, "count": len(records)},
        )
        return len(records)
