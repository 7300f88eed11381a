"""
Pipeline orchestration.

Coordinates the flow: extract → validate/transform → batch → load

The calling thread extracts and transforms records (optionally fanning the
transformation out to a thread pool) and seals batches into a bounded queue.
A pool of loader threads drains the queue, so a slow sink applies
backpressure to extraction.
"""

import queue
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Mapping

from customer_etl.batch import Batcher, BatchLoader, QuarantineLog, RetryPolicy
from customer_etl.core.config import PipelineConfig
from customer_etl.core.exceptions import (
    ConfigurationError,
    MalformedRecordError,
    SourceConnectivityError,
)
from customer_etl.core.models import (
    LoadOutcome,
    RawRecord,
    RejectedRecord,
    RunReport,
    RunState,
    TransformedRecord,
)
from customer_etl.core.transform import CustomerTransformer
from customer_etl.observability.logger import get_logger
from customer_etl.observability.metrics import MetricsCollector
from customer_etl.sinks.base import RecordSink
from customer_etl.sources.base import RecordSource
from customer_etl.utils.concurrent_set import ConcurrentSet

from .cancellation import CancellationToken

logger = get_logger(__name__)

MALFORMED_RULE = "malformed_record"

# Records read ahead per transform worker when transforming in parallel
TRANSFORM_WINDOW_PER_WORKER = 32

# Sentinel telling a loader thread to exit
_STOP = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _SourceFailure(Exception):
    """Internal: the source became unreachable before any record was read."""

    def __init__(self, error: SourceConnectivityError):
        super().__init__(str(error))
        self.error = error


class PipelineOrchestrator:
    """
    Runs one pipeline run from an idle state to a terminal state.

    States: idle → extracting → transforming → loading → completed, with
    failed and cancelled reachable from any non-terminal state.

    - Invalid configuration, or a source that is unreachable before any
      record was read, fails the run.
    - cancel(), the run timeout, or losing the source after records were
      read cancels the run: no further records are pulled, the partial
      batch is sealed and every queued batch is still loaded.
    - Record and batch failures never abort the run; they are counted and
      listed in the report.

    Any other exception propagates out of run() once worker threads have
    stopped and the source is closed.

    An orchestrator instance runs once.
    """

    def __init__(
        self,
        source: RecordSource,
        sink: RecordSink,
        config: PipelineConfig | Mapping[str, Any] | None = None,
        quarantine_writer=None,
        clock: Callable[[], datetime] | None = None,
        run_id: str | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            source: Record source (opened and closed by the run)
            sink: Transactional sink (not closed by the run)
            config: PipelineConfig, or a mapping validated when the run starts
            quarantine_writer: Optional persistence for quarantined batches
                (write_batch) and rejected records (write_rejected)
            clock: Wall clock for the run timestamp and processed_at
            run_id: Run identifier (random when omitted)
            retry_policy: Overrides the policy derived from config
        """
        self.source = source
        self.sink = sink
        self.raw_config = config
        self.quarantine_writer = quarantine_writer
        self.clock = clock or _utc_now
        self.run_id = run_id or uuid.uuid4().hex
        self.retry_policy = retry_policy
        self.config: PipelineConfig | None = None

        self.cancellation = CancellationToken()
        self._state = RunState.IDLE
        self._state_lock = threading.Lock()

        self._outcomes: list[LoadOutcome] = []
        self._outcomes_lock = threading.Lock()
        self._worker_errors: list[BaseException] = []

        self._rejected: list[RejectedRecord] = []
        self._rejected_omitted = 0
        self._rejected_pending_write: list[RejectedRecord] = []
        self._records_read = 0

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> RunState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: RunState) -> None:
        with self._state_lock:
            if self._state.is_terminal or self._state == state:
                return
            previous, self._state = self._state, state
        logger.info(
            "Run state changed",
            extra={"run_id": self.run_id, "from_state": previous.value, "to_state": state.value},
        )

    def cancel(self, reason: str = "cancellation requested") -> None:
        """Request cooperative cancellation of the run (thread-safe)."""
        if self.cancellation.cancel(reason):
            logger.warning("Run cancellation requested", extra={"run_id": self.run_id, "reason": reason})

    @property
    def outcomes(self) -> list[LoadOutcome]:
        """Load outcomes in sequence-number order."""
        with self._outcomes_lock:
            return sorted(self._outcomes, key=lambda o: o.sequence_number)

    # -- run ---------------------------------------------------------------

    def run(self) -> RunReport:
        """
        Execute the run.

        Returns:
            RunReport in state completed, failed or cancelled
        """
        if self.state != RunState.IDLE:
            raise RuntimeError(f"Run {self.run_id} has already been started")

        try:
            config = self._resolve_config()
        except ConfigurationError as e:
            logger.error("Invalid configuration", extra={"run_id": self.run_id, "error": str(e)})
            metrics = MetricsCollector(clock=self.clock)
            metrics.start()
            metrics.finish()
            self._set_state(RunState.FAILED)
            return self._report(RunState.FAILED, metrics, QuarantineLog(), error=str(e))

        self.config = config
        metrics = MetricsCollector(config.pipeline_name, clock=self.clock)
        metrics.start()
        run_at = self.clock()

        transformer = CustomerTransformer(
            config=config,
            run_at=run_at,
            seen_ids=ConcurrentSet(),
            metrics=metrics,
            clock=self.clock,
        )
        quarantine_log = QuarantineLog(writer=self.quarantine_writer)
        loader = BatchLoader(
            self.sink,
            retry_policy=self.retry_policy or RetryPolicy.from_config(config),
            metrics=metrics,
            quarantine_log=quarantine_log,
        )

        logger.info(
            "Starting pipeline run",
            extra={
                "run_id": self.run_id,
                "pipeline": config.pipeline_name,
                "source": self.source.name,
                "sink": self.sink.name,
                "batch_size": config.batch_size,
                "concurrency": config.concurrency,
            },
        )

        timer = self._start_timeout(config)
        batch_queue: queue.Queue = queue.Queue(maxsize=config.queue_depth)
        workers = [
            threading.Thread(
                target=self._load_worker,
                args=(loader, batch_queue),
                name=f"{config.pipeline_name}-loader-{i}",
                daemon=True,
            )
            for i in range(config.concurrency)
        ]
        for worker in workers:
            worker.start()

        failure: SourceConnectivityError | None = None
        try:
            self._set_state(RunState.EXTRACTING)
            self._produce(config, transformer, batch_queue)
        except _SourceFailure as e:
            failure = e.error
        finally:
            for _ in workers:
                batch_queue.put(_STOP)
            for worker in workers:
                worker.join()
            if timer is not None:
                timer.cancel()
            self.source.close()
            metrics.finish()

        self._flush_rejected()

        if self._worker_errors:
            raise self._worker_errors[0]

        if failure is not None:
            state, error = RunState.FAILED, str(failure)
        elif self.cancellation.cancelled:
            state, error = RunState.CANCELLED, None
        else:
            state, error = RunState.COMPLETED, None

        self._set_state(state)
        report = self._report(state, metrics, quarantine_log, error=error)
        logger.info("Pipeline run finished", extra=report.summary())
        return report

    def _resolve_config(self) -> PipelineConfig:
        if self.raw_config is None:
            return PipelineConfig()
        if isinstance(self.raw_config, PipelineConfig):
            return self.raw_config
        if isinstance(self.raw_config, Mapping):
            return PipelineConfig.from_dict(self.raw_config)
        raise ConfigurationError(
            f"Unsupported configuration type: {type(self.raw_config).__name__}"
        )

    def _start_timeout(self, config: PipelineConfig) -> threading.Timer | None:
        if config.run_timeout_seconds is None:
            return None
        timer = threading.Timer(
            config.run_timeout_seconds,
            self.cancel,
            kwargs={"reason": f"run timeout after {config.run_timeout_seconds}s"},
        )
        timer.daemon = True
        timer.start()
        return timer

    # -- producer ----------------------------------------------------------

    def _produce(
        self,
        config: PipelineConfig,
        transformer: CustomerTransformer,
        batch_queue: queue.Queue,
    ) -> None:
        """Extract, transform and batch until the source ends or the run is cancelled."""
        try:
            self.source.open()
        except SourceConnectivityError as e:
            raise _SourceFailure(e) from e

        batcher = Batcher(config.batch_size)

        for result in self._transformed(config, transformer):
            if isinstance(result, TransformedRecord):
                batch = batcher.add(result)
                if batch is not None:
                    batch_queue.put(batch)
            else:
                self._add_rejected(result, config)

        batch = batcher.flush()
        if batch is not None:
            batch_queue.put(batch)

        if not self.cancellation.cancelled:
            self._set_state(RunState.LOADING)

        logger.info(
            "Extraction finished",
            extra={
                "run_id": self.run_id,
                "records_read": self._records_read,
                "batches_sealed": batcher.next_sequence - 1,
                "cancelled": self.cancellation.cancelled,
            },
        )

    def _transformed(
        self,
        config: PipelineConfig,
        transformer: CustomerTransformer,
    ) -> Iterator[TransformedRecord | RejectedRecord]:
        """Transformer results in extraction order."""
        if config.transform_workers == 1:
            for item in self._read(transformer.metrics):
                yield item if isinstance(item, RejectedRecord) else transformer.transform(item)
            return

        window_size = config.transform_workers * TRANSFORM_WINDOW_PER_WORKER

        def transform(item: RawRecord | RejectedRecord):
            return item if isinstance(item, RejectedRecord) else transformer.transform(item)

        with ThreadPoolExecutor(
            max_workers=config.transform_workers,
            thread_name_prefix=f"{config.pipeline_name}-transform",
        ) as executor:
            window: list[RawRecord | RejectedRecord] = []
            for item in self._read(transformer.metrics):
                window.append(item)
                if len(window) >= window_size:
                    yield from executor.map(transform, window)
                    window = []
            if window:
                yield from executor.map(transform, window)

    def _read(self, metrics: MetricsCollector) -> Iterator[RawRecord | RejectedRecord]:
        """
        Pull raw rows until end of stream or cancellation.

        Malformed rows come out as RejectedRecords so their position in the
        stream is kept.
        """
        while not self.cancellation.cancelled:
            try:
                raw = self.source.next_record()
            except MalformedRecordError as e:
                self._records_read += 1
                metrics.record_read()
                metrics.record_malformed()
                yield self._malformed(e)
                continue
            except SourceConnectivityError as e:
                if self._records_read == 0:
                    raise _SourceFailure(e) from e
                logger.error(
                    "Source connectivity lost",
                    extra={"run_id": self.run_id, "records_read": self._records_read, "error": str(e)},
                )
                self.cancel(f"source connectivity lost: {e.message}")
                return

            if raw is None:
                return

            if self._records_read == 0:
                self._set_state(RunState.TRANSFORMING)
            self._records_read += 1
            metrics.record_read()
            yield raw

    def _malformed(self, error: MalformedRecordError) -> RejectedRecord:
        payload = {str(k): v for k, v in error.raw_payload.items()}
        where = f" (line {error.line_number})" if error.line_number is not None else ""
        logger.warning(
            "Malformed source record",
            extra={"run_id": self.run_id, "line_number": error.line_number, "error": error.message},
        )
        return RejectedRecord(
            record_id=payload.get("customer_id"),
            raw_payload=payload,
            failed_rules=[MALFORMED_RULE],
            error_messages=[error.message],
            reason=f"{MALFORMED_RULE}: {error.message}{where}",
            data_quality_score=0,
        )

    def _add_rejected(self, rejected: RejectedRecord, config: PipelineConfig) -> None:
        if len(self._rejected) < config.max_rejected_in_report:
            self._rejected.append(rejected)
        else:
            self._rejected_omitted += 1

        if self.quarantine_writer is not None and hasattr(self.quarantine_writer, "write_rejected"):
            self._rejected_pending_write.append(rejected)
            if len(self._rejected_pending_write) >= config.batch_size:
                self._flush_rejected()

    def _flush_rejected(self) -> None:
        if not self._rejected_pending_write:
            return
        pending, self._rejected_pending_write = self._rejected_pending_write, []
        try:
            self.quarantine_writer.write_rejected(pending)
        except Exception:
            logger.exception(
                "Failed to persist rejected records",
                extra={"run_id": self.run_id, "count": len(pending)},
            )

    # -- loaders -----------------------------------------------------------

    def _load_worker(self, loader: BatchLoader, batch_queue: queue.Queue) -> None:
        while True:
            batch = batch_queue.get()
            try:
                if batch is _STOP:
                    return
                outcome = loader.load(batch)
                with self._outcomes_lock:
                    self._outcomes.append(outcome)
            except Exception as e:
                logger.exception(
                    "Loader worker failed",
                    extra={"run_id": self.run_id, "sequence_number": batch.sequence_number},
                )
                with self._outcomes_lock:
                    self._worker_errors.append(e)
                self.cancel(f"loader failure: {type(e).__name__}")
            finally:
                batch_queue.task_done()

    # -- report ------------------------------------------------------------

    def _report(
        self,
        state: RunState,
        metrics: MetricsCollector,
        quarantine_log: QuarantineLog,
        error: str | None = None,
    ) -> RunReport:
        return RunReport(
            run_id=self.run_id,
            state=state,
            metrics=metrics.snapshot(),
            quarantined_batches=quarantine_log.entries(),
            rejected_records=list(self._rejected),
            rejected_records_omitted=self._rejected_omitted,
            error=error,
            cancel_reason=self.cancellation.reason if state is RunState.CANCELLED else None,
        )


def start_run(
    config: PipelineConfig | Mapping[str, Any] | None,
    source: RecordSource,
    sink: RecordSink,
    **kwargs,
) -> RunReport:
    """
    Run the pipeline once and return its report.

    Args:
        config: PipelineConfig or mapping of options
        source: Record source
        sink: Transactional sink
        **kwargs: Passed to PipelineOrchestrator (quarantine_writer, clock, run_id, retry_policy)
    """
    return PipelineOrchestrator(source, sink, config, **kwargs).run()
