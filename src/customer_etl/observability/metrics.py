"""
Prometheus metrics and per-run metrics collection for the customer ETL pipeline

Two layers live here:

- Module-level prometheus_client instruments registered in REGISTRY, exported
  over HTTP by start_metrics_server() and shared by every run in the process.
- MetricsCollector, a thread-safe aggregator owned by exactly one run. Every
  update is mirrored into the Prometheus instruments, labelled with the
  pipeline name, and snapshot() returns an immutable RunMetrics.
"""
import os
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)

from customer_etl.core.models import RunMetrics

# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# RECORD METRICS
# =======================

# Records by outcome
records_processed_total = Counter(
    name="etl_records_processed_total",
    documentation="Total number of customer records by outcome",
    labelnames=["pipeline", "status"],  # status: read, malformed, accepted, rejected, loaded, quarantined
    registry=REGISTRY,
)

# Data quality score distribution
record_quality_score = Histogram(
    name="etl_record_quality_score",
    documentation="Data quality score of transformed records",
    labelnames=["pipeline"],
    buckets=[0, 20, 40, 50, 60, 70, 80, 90, 100],
    registry=REGISTRY,
)

# Rule failures
rule_failures_total = Counter(
    name="etl_rule_failures_total",
    documentation="Total number of validation rule failures",
    labelnames=["pipeline", "rule_name"],
    registry=REGISTRY,
)

# =======================
# BATCH METRICS
# =======================

# Batches by outcome
batches_total = Counter(
    name="etl_batches_total",
    documentation="Total number of batches by outcome",
    labelnames=["pipeline", "status"],  # status: attempted, committed, retried, quarantined
    registry=REGISTRY,
)

# Retries counter
retries_total = Counter(
    name="etl_load_retries_total",
    documentation="Total number of batch load retries",
    labelnames=["pipeline"],
    registry=REGISTRY,
)

# Batch load duration (committed batches, retries included)
batch_load_duration_seconds = Histogram(
    name="etl_batch_load_duration_seconds",
    documentation="Time spent loading a batch into the sink in seconds",
    labelnames=["pipeline"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0],
    registry=REGISTRY,
)

# Throughput (records per second)
throughput_records_per_second = Gauge(
    name="etl_throughput_records_per_second",
    documentation="Loaded records per second for the most recent snapshot",
    labelnames=["pipeline"],
    registry=REGISTRY,
)

# Quarantine size gauge
quarantine_size = Gauge(
    name="etl_quarantine_size_records",
    documentation="Number of records quarantined in the current run",
    labelnames=["pipeline"],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def start_metrics_server(port: Optional[int] = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    counter.labels(**labels).inc(value)


def set_gauge(gauge: Gauge, value: float, **labels) -> None:
    gauge.labels(**labels).set(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    histogram.labels(**labels).observe(value)


# =======================
# METRICS COLLECTOR CLASS
# =======================

def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MetricsCollector:
    """
    Thread-safe metrics aggregator for a single pipeline run.

    Producer, transform workers and loader workers all report here. All
    counters are guarded by one lock so a snapshot is always internally
    consistent.
    """

    def __init__(
        self,
        pipeline_name: str = "customers",
        clock: Callable[[], datetime] | None = None,
        timer: Callable[[], float] | None = None,
    ):
        """
        Initialize metrics collector.

        Args:
            pipeline_name: Label applied to every exported Prometheus sample
            clock: Wall clock for start/end timestamps
            timer: Monotonic timer used for elapsed time
        """
        self.pipeline_name = pipeline_name
        self._clock = clock or _utc_now
        self._timer = timer or time.monotonic
        self._lock = threading.Lock()

        self._counts = {
            "records_read": 0,
            "records_malformed": 0,
            "records_transformed": 0,
            "records_accepted": 0,
            "records_rejected": 0,
            "records_loaded": 0,
            "records_quarantined": 0,
            "total_quality_score_sum": 0,
            "batches_attempted": 0,
            "batches_committed": 0,
            "batches_retried": 0,
            "batches_quarantined": 0,
        }
        self._rule_failures: dict[str, int] = {}
        self._start_time: datetime | None = None
        self._end_time: datetime | None = None
        self._started_at: float | None = None
        self._finished_at: float | None = None

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            self._start_time = self._clock()
            self._started_at = self._timer()
        set_gauge(quarantine_size, 0, pipeline=self.pipeline_name)

    def finish(self) -> None:
        """Freeze the end time; later snapshots report the same elapsed time."""
        with self._lock:
            if self._end_time is None:
                self._end_time = self._clock()
                self._finished_at = self._timer()

    # -- record level ------------------------------------------------------

    def record_read(self, count: int = 1) -> None:
        self._add("records_read", count)
        increment_counter(records_processed_total, count, pipeline=self.pipeline_name, status="read")

    def record_malformed(self, count: int = 1) -> None:
        self._add("records_malformed", count)
        increment_counter(records_processed_total, count, pipeline=self.pipeline_name, status="malformed")

    def record_transformed(
        self,
        quality_score: int,
        failed_rules: Iterable[str] = (),
        accepted: bool = True,
    ) -> None:
        """
        Record the outcome of one transformer evaluation.

        Args:
            quality_score: Score computed for the record (accepted or not)
            failed_rules: Names of rules the record violated
            accepted: Whether the record became a TransformedRecord
        """
        failed_rules = list(failed_rules)
        outcome = "records_accepted" if accepted else "records_rejected"

        with self._lock:
            self._counts["records_transformed"] += 1
            self._counts[outcome] += 1
            self._counts["total_quality_score_sum"] += quality_score
            for rule_name in failed_rules:
                self._rule_failures[rule_name] = self._rule_failures.get(rule_name, 0) + 1

        increment_counter(
            records_processed_total,
            pipeline=self.pipeline_name,
            status="accepted" if accepted else "rejected",
        )
        observe_histogram(record_quality_score, quality_score, pipeline=self.pipeline_name)
        for rule_name in failed_rules:
            increment_counter(rule_failures_total, pipeline=self.pipeline_name, rule_name=rule_name)

    # -- batch level -------------------------------------------------------

    def batch_attempted(self) -> None:
        self._add("batches_attempted", 1)
        increment_counter(batches_total, pipeline=self.pipeline_name, status="attempted")

    def batch_retried(self, retries: int = 1) -> None:
        """Count a batch that needed retries; `retries` feeds the export counter only."""
        self._add("batches_retried", 1)
        increment_counter(batches_total, pipeline=self.pipeline_name, status="retried")
        increment_counter(retries_total, retries, pipeline=self.pipeline_name)

    def batch_committed(self, record_count: int, duration_seconds: float = 0.0) -> None:
        with self._lock:
            self._counts["batches_committed"] += 1
            self._counts["records_loaded"] += record_count

        increment_counter(batches_total, pipeline=self.pipeline_name, status="committed")
        increment_counter(records_processed_total, record_count, pipeline=self.pipeline_name, status="loaded")
        if duration_seconds > 0:
            observe_histogram(batch_load_duration_seconds, duration_seconds, pipeline=self.pipeline_name)

    def batch_quarantined(self, record_count: int) -> None:
        with self._lock:
            self._counts["batches_quarantined"] += 1
            self._counts["records_quarantined"] += record_count
            quarantined = self._counts["records_quarantined"]

        increment_counter(batches_total, pipeline=self.pipeline_name, status="quarantined")
        increment_counter(records_processed_total, record_count, pipeline=self.pipeline_name, status="quarantined")
        set_gauge(quarantine_size, quarantined, pipeline=self.pipeline_name)

    # -- snapshot ----------------------------------------------------------

    def snapshot(self) -> RunMetrics:
        """
        Take an immutable, consistent copy of the current metrics.

        Returns:
            RunMetrics with throughput and average quality derived at call time
        """
        with self._lock:
            counts = dict(self._counts)
            rule_failures = dict(self._rule_failures)
            start_time = self._start_time
            end_time = self._end_time
            if self._started_at is None:
                elapsed = 0.0
            else:
                stopped_at = self._finished_at if self._finished_at is not None else self._timer()
                elapsed = max(0.0, stopped_at - self._started_at)

        throughput = counts["records_loaded"] / elapsed if elapsed > 0 else 0.0
        transformed = counts["records_transformed"]
        average_quality = counts["total_quality_score_sum"] / transformed if transformed else 0.0

        set_gauge(throughput_records_per_second, throughput, pipeline=self.pipeline_name)

        return RunMetrics(
            **counts,
            rule_failures=rule_failures,
            start_time=start_time,
            end_time=end_time,
            elapsed_seconds=elapsed,
            throughput_records_per_second=throughput,
            average_quality_score=average_quality,
        )

    def _add(self, counter_name: str, count: int) -> None:
        with self._lock:
            self._counts[counter_name] += count
