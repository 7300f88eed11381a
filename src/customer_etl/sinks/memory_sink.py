"""
In-memory sink with staging-then-swap commits.

Used for dry runs and tests. Writes are staged per transaction and only
become visible when the transaction commits, so a failed attempt never
leaves partial rows behind.
"""

import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import Iterable

from customer_etl.core.exceptions import LoadError, RetryableLoadError
from customer_etl.core.models import Batch

from .base import RecordSink


@dataclass
class StagedTransaction:
    """Writes staged by one transaction."""

    txn_id: int
    rows: dict[int, dict] = field(default_factory=dict)
    sequence_numbers: list[int] = field(default_factory=list)
    closed: bool = False


class InMemorySink(RecordSink):
    """
    Thread-safe in-memory sink keyed by customer_id (upsert semantics).

    Failures can be scheduled per batch sequence number; each write attempt
    for that batch pops and raises the next scheduled exception:

        sink = InMemorySink(failures={2: [RetryableLoadError("timeout")] * 2})

    A write slower than timeout_seconds fails as a retryable timeout and
    leaves the scheduled exceptions for later attempts.
    """

    name = "memory"

    def __init__(
        self,
        failures: dict[int, Iterable[Exception]] | None = None,
        write_delay: float = 0.0,
        timeout_seconds: float | None = None,
    ):
        """
        Args:
            failures: Exceptions to raise on successive writes of a batch
            write_delay: Seconds each write_batch call takes
            timeout_seconds: Writes slower than this fail as retryable timeouts
        """
        self._lock = threading.Lock()
        self._txn_ids = itertools.count(1)
        self._failures = {seq: list(errors) for seq, errors in (failures or {}).items()}
        self.write_delay = write_delay
        self.timeout_seconds = timeout_seconds

        self.rows: dict[int, dict] = {}
        self.commit_log: list[int] = []
        self.write_attempts: dict[int, int] = {}
        self.rollbacks = 0
        self.closed = False

    def begin_transaction(self) -> StagedTransaction:
        return StagedTransaction(txn_id=next(self._txn_ids))

    def _times_out(self) -> bool:
        return self.timeout_seconds is not None and self.write_delay > self.timeout_seconds

    def write_batch(self, txn: StagedTransaction, batch: Batch) -> int:
        timed_out = self._times_out()
        with self._lock:
            self.write_attempts[batch.sequence_number] = (
                self.write_attempts.get(batch.sequence_number, 0) + 1
            )
            scheduled = None if timed_out else self._failures.get(batch.sequence_number)
            error = scheduled.pop(0) if scheduled else None

        if timed_out:
            time.sleep(self.timeout_seconds)
            raise RetryableLoadError(
                f"Write timed out after {self.timeout_seconds}s",
                context={"sequence_number": batch.sequence_number},
            )
        if self.write_delay:
            time.sleep(self.write_delay)

        if error is not None:
            raise error

        for record in batch.records:
            txn.rows[record.customer_id] = record.to_row()
        txn.sequence_numbers.append(batch.sequence_number)
        return len(batch)

    def commit(self, txn: StagedTransaction) -> None:
        if txn.closed:
            raise LoadError("Transaction already finished", context={"txn_id": txn.txn_id})
        with self._lock:
            self.rows.update(txn.rows)
            self.commit_log.extend(txn.sequence_numbers)
        txn.closed = True

    def rollback(self, txn: StagedTransaction) -> None:
        if txn.closed:
            return
        txn.rows.clear()
        txn.sequence_numbers.clear()
        txn.closed = True
        with self._lock:
            self.rollbacks += 1

    def close(self) -> None:
        self.closed = True

    def pending_failures(self, sequence_number: int) -> int:
        with self._lock:
            return len(self._failures.get(sequence_number, []))

    @property
    def committed_ids(self) -> set[int]:
        with self._lock:
            return set(self.rows)
