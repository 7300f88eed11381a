"""
Loader: writes one sealed batch to the sink, with retries and quarantine.
"""

import time
from typing import Callable

from customer_etl.core.exceptions import LoadError, RetryableLoadError, TerminalLoadError
from customer_etl.core.models import Batch, LoadOutcome, LoadStatus, QuarantinedBatch
from customer_etl.observability.logger import get_logger
from customer_etl.sinks.base import RecordSink

from .quarantine import QuarantineLog
from .retry import RetryPolicy

logger = get_logger(__name__)


class BatchLoader:
    """
    Loads batches into a sink, one atomic transaction per attempt.

    - RetryableLoadError: retried according to the RetryPolicy
    - TerminalLoadError, or any unclassified exception: quarantined at once
    - Retries exhausted: quarantined

    load() never raises for a failed batch; the outcome says what happened.
    Safe to share between loader threads.
    """

    def __init__(
        self,
        sink: RecordSink,
        retry_policy: RetryPolicy | None = None,
        metrics=None,
        quarantine_log: QuarantineLog | None = None,
        timer: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the loader.

        Args:
            sink: Transactional sink
            retry_policy: Retry policy (defaults to RetryPolicy())
            metrics: MetricsCollector for batch counters
            quarantine_log: Where quarantined batches are recorded
            timer: Monotonic timer for load durations
        """
        self.sink = sink
        self.retry_policy = retry_policy or RetryPolicy()
        self.metrics = metrics
        self.quarantine_log = quarantine_log if quarantine_log is not None else QuarantineLog()
        self._timer = timer

    def load(self, batch: Batch) -> LoadOutcome:
        """
        Load a batch.

        Args:
            batch: Sealed batch

        Returns:
            LoadOutcome with status committed or quarantined
        """
        if self.metrics is not None:
            self.metrics.batch_attempted()

        attempts = 0

        def attempt() -> None:
            nonlocal attempts
            attempts += 1
            self._write_once(batch)

        def on_retry(retry_index: int, error: BaseException, delay: float) -> None:
            logger.warning(
                "Batch load failed, retrying",
                extra={
                    "sequence_number": batch.sequence_number,
                    "attempt": retry_index + 1,
                    "retry_in_seconds": round(delay, 3),
                    "error": str(error),
                },
            )

        started = self._timer()
        try:
            self.retry_policy.execute(attempt, on_retry=on_retry)
        except LoadError as e:
            return self._quarantine(batch, e, attempts)
        except Exception as e:
            error = TerminalLoadError(
                f"Unclassified sink failure: {type(e).__name__}: {e}",
                context={"sequence_number": batch.sequence_number},
                original_exception=e,
            )
            return self._quarantine(batch, error, attempts)
        finally:
            if attempts > 1 and self.metrics is not None:
                self.metrics.batch_retried(attempts - 1)

        duration = self._timer() - started
        if self.metrics is not None:
            self.metrics.batch_committed(len(batch), duration)

        logger.info(
            "Batch committed",
            extra={
                "sequence_number": batch.sequence_number,
                "record_count": len(batch),
                "attempts": attempts,
                "duration_seconds": round(duration, 3),
            },
        )
        return LoadOutcome(
            sequence_number=batch.sequence_number,
            status=LoadStatus.COMMITTED,
            attempts=attempts,
            record_count=len(batch),
        )

    def _write_once(self, batch: Batch) -> None:
        txn = self.sink.begin_transaction()
        try:
            self.sink.write_batch(txn, batch)
            self.sink.commit(txn)
        except BaseException:
            try:
                self.sink.rollback(txn)
            except Exception:
                logger.exception(
                    "Rollback failed", extra={"sequence_number": batch.sequence_number}
                )
            raise

    def _quarantine(self, batch: Batch, error: LoadError, attempts: int) -> LoadOutcome:
        reason = error.message or type(error).__name__
        if isinstance(error, RetryableLoadError):
            reason = f"{reason} (retries exhausted after {attempts} attempts)"

        quarantined = QuarantinedBatch(
            sequence_number=batch.sequence_number,
            records=batch.records,
            reason=reason,
            error_type=type(error).__name__,
            attempts=max(attempts, 1),
        )

        if self.metrics is not None:
            self.metrics.batch_quarantined(len(batch))
        self.quarantine_log.add(quarantined)

        return LoadOutcome(
            sequence_number=batch.sequence_number,
            status=LoadStatus.QUARANTINED,
            attempts=quarantined.attempts,
            record_count=len(batch),
            quarantine=quarantined,
        )
