"""
Per-run quarantine log for batches that could not be loaded.
"""

import threading

from customer_etl.core.models import QuarantinedBatch
from customer_etl.observability.logger import get_logger

logger = get_logger(__name__)


class QuarantineLog:
    """
    Thread-safe record of every batch quarantined during a run.

    Each entry is logged in full when added and, if a writer is attached
    (e.g. warehouse.QuarantineWriter), persisted as well. The in-memory log
    stays authoritative for the run report when persistence fails.
    """

    def __init__(self, writer=None):
        """
        Args:
            writer: Object with write_batch(QuarantinedBatch), or None
        """
        self._lock = threading.Lock()
        self._entries: list[QuarantinedBatch] = []
        self.writer = writer
        self.write_failures = 0

    def add(self, quarantined: QuarantinedBatch) -> None:
        with self._lock:
            self._entries.append(quarantined)

        logger.error(
            "Batch quarantined",
            extra={
                "sequence_number": quarantined.sequence_number,
                "record_count": quarantined.record_count,
                "customer_ids": [record.customer_id for record in quarantined.records],
                "reason": quarantined.reason,
                "error_type": quarantined.error_type,
                "attempts": quarantined.attempts,
            },
        )

        if self.writer is not None:
            try:
                self.writer.write_batch(quarantined)
            except Exception:
                with self._lock:
                    self.write_failures += 1
                logger.exception(
                    "Failed to persist quarantined batch",
                    extra={"sequence_number": quarantined.sequence_number},
                )

    def entries(self) -> list[QuarantinedBatch]:
        """Quarantined batches ordered by sequence number."""
        with self._lock:
            return sorted(self._entries, key=lambda q: q.sequence_number)

    @property
    def record_count(self) -> int:
        with self._lock:
            return sum(q.record_count for q in self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
