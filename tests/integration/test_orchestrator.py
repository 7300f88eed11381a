"""
Integration tests for the pipeline orchestrator.

Run whole pipelines against in-memory sources and sinks: extraction,
transformation, batching, loading with retries and quarantine,
cancellation and timeouts.
"""

import time

import pytest

from conftest import RUN_AT, raw_customer
from customer_etl.core.config import PipelineConfig
from customer_etl.core.exceptions import (
    MalformedRecordError,
    RetryableLoadError,
    SourceConnectivityError,
    TerminalLoadError,
)
from customer_etl.core.models import RunState
from customer_etl.pipeline import PipelineOrchestrator, start_run
from customer_etl.pipeline.orchestrator import MALFORMED_RULE
from customer_etl.sinks import InMemorySink
from customer_etl.sources import CSVFileSource, InMemorySource

pytestmark = pytest.mark.integration


def assert_accounting(report):
    """Counters that must balance at the end of every run"""
    m = report.metrics
    assert m.records_read == m.records_transformed + m.records_malformed
    assert m.records_transformed == m.records_accepted + m.records_rejected
    assert m.records_accepted == m.records_loaded + m.records_quarantined
    assert m.batches_attempted == m.batches_committed + m.batches_quarantined
    assert m.records_quarantined == sum(q.record_count for q in report.quarantined_batches)


def run_pipeline(records, config, sink=None, **kwargs):
    source = kwargs.pop("source", None) or InMemorySource(records)
    sink = sink or InMemorySink()
    orchestrator = PipelineOrchestrator(source, sink, config, clock=lambda: RUN_AT, **kwargs)
    report = orchestrator.run()
    return report, sink, orchestrator


class CancellingSource(InMemorySource):
    """Calls on_read(position) after serving each row."""

    def __init__(self, records, on_read):
        super().__init__(records)
        self.on_read = on_read

    def _read(self):
        record = super()._read()
        if record is not None:
            self.on_read(self._position)
        return record


class RecordingWriter:
    def __init__(self, fail_rejected=False):
        self.fail_rejected = fail_rejected
        self.batches = []
        self.rejected_chunks = []

    def write_batch(self, quarantined):
        self.batches.append(quarantined.sequence_number)

    def write_rejected(self, records):
        if self.fail_rejected:
            raise ConnectionError("warehouse down")
        self.rejected_chunks.append([r.record_id for r in records])
        return len(records)


class TestSuccessfulRuns:
    """Runs that complete"""

    def test_all_records_loaded(self, fast_config):
        records = [raw_customer(i) for i in range(1, 8)]

        report, sink, orchestrator = run_pipeline(records, fast_config, run_id="run-ok")

        assert report.state is RunState.COMPLETED
        assert report.succeeded
        assert report.run_id == "run-ok"
        assert sink.committed_ids == set(range(1, 8))
        assert [o.sequence_number for o in orchestrator.outcomes] == [1, 2, 3, 4]
        assert all(o.committed for o in orchestrator.outcomes)
        assert report.metrics.records_loaded == 7
        assert report.metrics.batches_committed == 4
        assert report.metrics.average_quality_score == 100
        assert orchestrator.state is RunState.COMPLETED
        assert_accounting(report)

    def test_empty_source(self, fast_config):
        report, sink, _ = run_pipeline([], fast_config)

        assert report.state is RunState.COMPLETED
        assert report.metrics.records_read == 0
        assert report.metrics.batches_attempted == 0
        assert sink.committed_ids == set()

    def test_rejections_and_malformed_rows(self, fast_config):
        records = [
            raw_customer(1),
            raw_customer(2, annual_revenue="-500"),
            MalformedRecordError("Expected 8 columns, got 3", raw_payload={"customer_id": "3"}, line_number=4),
            raw_customer(1),
            raw_customer(5, email="broken"),
        ]

        report, sink, _ = run_pipeline(records, fast_config)

        assert report.state is RunState.COMPLETED
        assert sink.committed_ids == {1, 5}
        assert [r.record_id for r in report.rejected_records] == ["2", "3", "1"]
        malformed = report.rejected_records[1]
        assert malformed.failed_rules == [MALFORMED_RULE]
        assert malformed.data_quality_score == 0
        assert malformed.reason == f"{MALFORMED_RULE}: Expected 8 columns, got 3 (line 4)"
        assert report.rejected_records[2].failed_rules == ["customer_id_unique"]

        m = report.metrics
        assert m.records_read == 5
        assert m.records_malformed == 1
        assert m.records_rejected == 2
        assert m.total_quality_score_sum == 100 + 75 + 90 + 75
        assert m.rule_failures == {"annual_revenue_valid": 1, "customer_id_unique": 1, "email_format": 1}
        assert_accounting(report)

    def test_out_of_range_revenue_is_rejected(self, fast_config):
        records = [raw_customer(1, annual_revenue="1" + "0" * 27), raw_customer(2)]

        report, sink, _ = run_pipeline(records, fast_config)

        assert report.state is RunState.COMPLETED
        assert sink.committed_ids == {2}
        assert report.rejected_records[0].failed_rules == ["annual_revenue_valid"]
        assert "out of range" in report.rejected_records[0].reason
        assert_accounting(report)

    def test_csv_row_with_invalid_bytes_is_malformed(self, fast_config, tmp_path):
        def row(customer_id):
            return ",".join(raw_customer(customer_id).values()).encode("utf-8")

        path = tmp_path / "customers.csv"
        path.write_bytes(b"\n".join([
            ",".join(raw_customer(1)).encode("utf-8"),
            row(1),
            row(2).replace(b"Customer 2", b"Customer \xff\xfe2"),
            row(3),
        ]) + b"\n")

        report, sink, _ = run_pipeline([], fast_config, source=CSVFileSource(path))

        assert report.state is RunState.COMPLETED
        assert report.metrics.records_read == 3
        assert report.metrics.records_malformed == 1
        assert sink.committed_ids == {1, 3}
        malformed = report.rejected_records[0]
        assert malformed.record_id == "2"
        assert malformed.failed_rules == [MALFORMED_RULE]
        assert malformed.reason.endswith("(line 3)")
        assert_accounting(report)

    def test_accepts_config_mapping(self):
        records = [raw_customer(i) for i in range(1, 4)]
        report, _, orchestrator = run_pipeline(records, {"batch_size": 2, "concurrency": 1})

        assert report.state is RunState.COMPLETED
        assert orchestrator.config.batch_size == 2
        assert report.metrics.batches_committed == 2

    def test_parallel_transform_keeps_extraction_order(self):
        config = PipelineConfig(batch_size=7, concurrency=3, queue_depth=2, transform_workers=4)
        records = [
            raw_customer(i, annual_revenue="-1") if i % 10 == 0 else raw_customer(i)
            for i in range(1, 201)
        ]

        report, sink, orchestrator = run_pipeline(records, config)

        assert report.state is RunState.COMPLETED
        assert [r.record_id for r in report.rejected_records] == [str(i) for i in range(10, 201, 10)]
        assert sink.committed_ids == {i for i in range(1, 201) if i % 10}
        assert [o.sequence_number for o in orchestrator.outcomes] == list(range(1, 27))
        assert_accounting(report)

    def test_start_run_helper(self, fast_config):
        report = start_run(fast_config, InMemorySource([raw_customer(1)]), InMemorySink(), run_id="helper")

        assert report.run_id == "helper"
        assert report.state is RunState.COMPLETED

    def test_orchestrator_runs_once(self, fast_config):
        orchestrator = PipelineOrchestrator(InMemorySource([]), InMemorySink(), fast_config)
        orchestrator.run()

        with pytest.raises(RuntimeError):
            orchestrator.run()

    def test_source_is_closed(self, fast_config):
        source = InMemorySource([raw_customer(1)])
        run_pipeline([], fast_config, source=source)

        assert source.is_open is False
        assert source.open_count == 1


class TestLoadFailures:
    """Retries and quarantine during a run"""

    def test_terminal_failure_quarantines_one_batch(self, fast_config):
        sink = InMemorySink(failures={2: [TerminalLoadError("constraint violated")]})
        records = [raw_customer(i) for i in range(1, 7)]

        report, sink, _ = run_pipeline(records, fast_config, sink=sink)

        assert report.state is RunState.COMPLETED
        assert sink.committed_ids == {1, 2, 5, 6}
        assert [q.sequence_number for q in report.quarantined_batches] == [2]
        quarantined = report.quarantined_batches[0]
        assert [r.customer_id for r in quarantined.records] == [3, 4]
        assert quarantined.reason == "constraint violated"
        assert report.metrics.batches_quarantined == 1
        assert report.metrics.records_quarantined == 2
        assert_accounting(report)

    def test_retry_then_commit(self, fast_config):
        sink = InMemorySink(failures={1: [RetryableLoadError("timeout")] * 2})
        records = [raw_customer(i) for i in range(1, 5)]

        report, sink, orchestrator = run_pipeline(records, fast_config, sink=sink)

        assert sink.committed_ids == {1, 2, 3, 4}
        assert report.metrics.batches_retried == 1
        assert orchestrator.outcomes[0].attempts == 3
        assert report.quarantined_batches == []

    def test_retries_exhausted(self, fast_config):
        sink = InMemorySink(failures={1: [RetryableLoadError("timeout")] * 10})

        report, sink, _ = run_pipeline([raw_customer(1), raw_customer(2)], fast_config, sink=sink)

        assert report.state is RunState.COMPLETED
        assert sink.write_attempts[1] == 4
        assert report.quarantined_batches[0].attempts == 4
        assert report.quarantined_batches[0].reason.endswith("(retries exhausted after 4 attempts)")
        assert_accounting(report)

    def test_quarantine_writer_receives_batches_and_rejections(self, fast_config):
        writer = RecordingWriter()
        sink = InMemorySink(failures={1: [TerminalLoadError("bad")]})
        records = [raw_customer(1), raw_customer(2)] + [
            raw_customer(i, annual_revenue="x") for i in range(3, 8)
        ]

        report, _, _ = run_pipeline(records, fast_config, sink=sink, quarantine_writer=writer)

        assert writer.batches == [1]
        assert writer.rejected_chunks == [["3", "4"], ["5", "6"], ["7"]]
        assert report.state is RunState.COMPLETED

    def test_rejected_persistence_failure_is_not_fatal(self, fast_config):
        writer = RecordingWriter(fail_rejected=True)
        records = [raw_customer(1, annual_revenue="x"), raw_customer(2)]

        report, _, _ = run_pipeline(records, fast_config, quarantine_writer=writer)

        assert report.state is RunState.COMPLETED
        assert len(report.rejected_records) == 1

    def test_report_caps_rejected_records(self):
        config = PipelineConfig(batch_size=2, max_rejected_in_report=2)
        records = [raw_customer(i, annual_revenue="-1") for i in range(1, 6)]

        report, _, _ = run_pipeline(records, config)

        assert [r.record_id for r in report.rejected_records] == ["1", "2"]
        assert report.rejected_records_omitted == 3
        assert report.metrics.records_rejected == 5


class TestFailuresAndCancellation:
    """Failed and cancelled runs"""

    def test_invalid_config_fails_without_opening_source(self):
        source = InMemorySource([raw_customer(1)])

        report, sink, orchestrator = run_pipeline([], {"batch_size": 0}, source=source)

        assert report.state is RunState.FAILED
        assert "Invalid pipeline configuration" in report.error
        assert source.open_count == 0
        assert sink.write_attempts == {}
        assert orchestrator.state is RunState.FAILED

    def test_unreachable_source_fails(self, fast_config):
        source = InMemorySource([raw_customer(1)], fail_on_open=ConnectionRefusedError("refused"))

        report, sink, _ = run_pipeline([], fast_config, source=source)

        assert report.state is RunState.FAILED
        assert "Cannot open source memory" in report.error
        assert report.metrics.records_read == 0
        assert sink.committed_ids == set()

    def test_connectivity_lost_before_first_record_fails(self, fast_config):
        records = [SourceConnectivityError("connection reset"), raw_customer(1)]

        report, _, _ = run_pipeline(records, fast_config)

        assert report.state is RunState.FAILED
        assert "connection reset" in report.error

    def test_connectivity_lost_mid_stream_cancels(self, fast_config):
        records = [raw_customer(1), raw_customer(2), raw_customer(3), SourceConnectivityError("connection reset")]

        report, sink, _ = run_pipeline(records, fast_config)

        assert report.state is RunState.CANCELLED
        assert report.cancel_reason == "source connectivity lost: connection reset"
        assert sink.committed_ids == {1, 2, 3}
        assert report.metrics.records_read == 3
        assert_accounting(report)

    def test_cancel_mid_run_loads_what_was_read(self, fast_config):
        holder = {}

        def on_read(position):
            if position == 5:
                holder["orchestrator"].cancel("operator requested stop")

        source = CancellingSource([raw_customer(i) for i in range(1, 21)], on_read)
        sink = InMemorySink()
        orchestrator = PipelineOrchestrator(source, sink, fast_config, clock=lambda: RUN_AT)
        holder["orchestrator"] = orchestrator

        report = orchestrator.run()

        assert report.state is RunState.CANCELLED
        assert report.cancel_reason == "operator requested stop"
        assert report.metrics.records_read == 5
        assert sink.committed_ids == {1, 2, 3, 4, 5}
        assert report.metrics.batches_committed == 3
        assert_accounting(report)

    def test_first_cancel_reason_wins(self, fast_config):
        orchestrator = PipelineOrchestrator(InMemorySource([]), InMemorySink(), fast_config)
        orchestrator.cancel("first")
        orchestrator.cancel("second")

        report = orchestrator.run()

        assert report.state is RunState.CANCELLED
        assert report.cancel_reason == "first"

    @pytest.mark.slow
    def test_run_timeout_cancels(self):
        config = PipelineConfig(batch_size=1, concurrency=1, queue_depth=1, run_timeout_seconds=1)
        sink = InMemorySink(write_delay=0.2)
        records = [raw_customer(i) for i in range(1, 41)]

        started = time.monotonic()
        report, sink, _ = run_pipeline(records, config, sink=sink)
        elapsed = time.monotonic() - started

        assert report.state is RunState.CANCELLED
        assert report.cancel_reason == "run timeout after 1s"
        assert elapsed < 5
        assert 0 < report.metrics.records_loaded < 40
        assert report.quarantined_batches == []
        assert_accounting(report)

    def test_sink_timeouts_are_retried_then_quarantined(self):
        config = PipelineConfig(batch_size=2, concurrency=1, retry_attempts=1, backoff_base_ms=1, backoff_max_ms=1)
        sink = InMemorySink(write_delay=0.05, timeout_seconds=0.01)

        report, sink, _ = run_pipeline([raw_customer(1), raw_customer(2)], config, sink=sink)

        assert report.state is RunState.COMPLETED
        assert report.quarantined_batches[0].attempts == 2
        assert report.quarantined_batches[0].error_type == "RetryableLoadError"
        assert sink.committed_ids == set()
        assert_accounting(report)
