"""
Unit tests for Pydantic models and exceptions.
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from conftest import RUN_AT, make_batch, transformed_record
from customer_etl.core.exceptions import (
    ConnectivityError,
    MalformedRecordError,
    PipelineError,
    SourceConnectivityError,
    TerminalLoadError,
)
from customer_etl.core.models import (
    Batch,
    LoadOutcome,
    LoadStatus,
    QuarantinedBatch,
    RejectedRecord,
    RunMetrics,
    RunReport,
    RunState,
    ValidationResult,
)


class TestTransformedRecord:
    """Tests for TransformedRecord"""

    def test_to_row_is_json_compatible(self):
        row = transformed_record(7, annual_revenue=Decimal("200000.00")).to_row()

        assert row["customer_id"] == 7
        assert row["signup_date"] == "2024-10-19"
        assert row["revenue_tier"] == "Mid"
        assert row["annual_revenue"] == "200000.00"

    def test_negative_revenue_rejected(self):
        with pytest.raises(ValidationError):
            transformed_record(1, annual_revenue=Decimal("-1"))

    def test_non_positive_id_rejected(self):
        with pytest.raises(ValidationError):
            transformed_record(0)

    def test_frozen(self):
        record = transformed_record(1)
        with pytest.raises(ValidationError):
            record.name = "changed"


class TestRejectedRecord:
    """Tests for RejectedRecord"""

    def test_valid_rejection(self):
        rejected = RejectedRecord(
            record_id="7",
            raw_payload={"customer_id": "7"},
            failed_rules=["customer_id_unique"],
            error_messages=["customer_id 7 already seen in this run"],
            reason="customer_id_unique: customer_id 7 already seen in this run",
            data_quality_score=90,
        )
        assert rejected.record_id == "7"

    def test_mismatched_lengths(self):
        with pytest.raises(ValidationError, match="must match"):
            RejectedRecord(
                raw_payload={},
                failed_rules=["a", "b"],
                error_messages=["only one"],
                reason="a: only one",
            )

    def test_requires_a_failure(self):
        with pytest.raises(ValidationError):
            RejectedRecord(raw_payload={}, failed_rules=[], error_messages=[], reason="none")


class TestValidationResult:
    """Tests for ValidationResult"""

    def test_passed_with_hard_failure_is_inconsistent(self):
        with pytest.raises(ValidationError):
            ValidationResult(passed=True, hard_failures=["customer_id_unique"], quality_score=90)

    def test_first_failure(self):
        result = ValidationResult(
            passed=False,
            failed_rules=["email_format", "name_required"],
            error_messages=["email is missing", "Field value is null"],
            quality_score=55,
        )
        assert result.first_failure == "email_format: email is missing"

    def test_first_failure_none_when_clean(self):
        assert ValidationResult(passed=True, quality_score=100).first_failure is None


class TestBatchModels:
    """Tests for Batch, QuarantinedBatch and LoadOutcome"""

    def test_batch_properties(self):
        batch = make_batch(3, 1, 2, 3)
        assert len(batch) == 3
        assert batch.customer_ids == [1, 2, 3]

    def test_empty_batch_rejected(self):
        with pytest.raises(ValidationError):
            Batch(sequence_number=1, records=())

    def test_sequence_number_positive(self):
        with pytest.raises(ValidationError):
            Batch(sequence_number=0, records=(transformed_record(1),))

    def test_quarantined_batch(self):
        batch = make_batch(2, 4, 5)
        quarantined = QuarantinedBatch(
            sequence_number=2,
            records=batch.records,
            reason="constraint violated",
            error_type="TerminalLoadError",
            attempts=1,
        )

        assert quarantined.record_count == 2
        assert quarantined.quarantined_at.tzinfo is not None

    def test_load_outcome_committed(self):
        outcome = LoadOutcome(sequence_number=1, status=LoadStatus.COMMITTED, attempts=1, record_count=2)
        assert outcome.committed is True


class TestRunReport:
    """Tests for RunState and RunReport"""

    @pytest.mark.parametrize("state,terminal", [
        (RunState.IDLE, False),
        (RunState.EXTRACTING, False),
        (RunState.TRANSFORMING, False),
        (RunState.LOADING, False),
        (RunState.COMPLETED, True),
        (RunState.FAILED, True),
        (RunState.CANCELLED, True),
    ])
    def test_terminal_states(self, state, terminal):
        assert state.is_terminal is terminal

    def test_summary(self):
        metrics = RunMetrics(
            records_read=10,
            records_loaded=7,
            records_rejected=2,
            records_malformed=1,
            average_quality_score=91.23456,
            throughput_records_per_second=12.3456,
            start_time=RUN_AT,
        )
        report = RunReport(run_id="run-1", state=RunState.COMPLETED, metrics=metrics)

        assert report.succeeded is True
        assert report.summary() == {
            "run_id": "run-1",
            "state": "completed",
            "records_read": 10,
            "records_loaded": 7,
            "records_rejected": 2,
            "records_quarantined": 0,
            "records_malformed": 1,
            "batches_quarantined": 0,
            "average_quality_score": 91.23,
            "throughput_records_per_second": 12.35,
        }

    def test_report_serializes_to_json(self):
        report = RunReport(run_id="r", state=RunState.CANCELLED, metrics=RunMetrics(), cancel_reason="timeout")
        data = report.model_dump(mode="json")

        assert data["state"] == "cancelled"
        assert data["cancel_reason"] == "timeout"
        assert report.succeeded is False


class TestExceptions:
    """Tests for the pipeline exception hierarchy"""

    def test_str_includes_context_and_cause(self):
        cause = ValueError("bad port")
        error = SourceConnectivityError("Cannot open", context={"source_name": "x"}, original_exception=cause)

        text = str(error)
        assert "Cannot open" in text
        assert "source_name=x" in text
        assert "Caused by: ValueError: bad port" in text
        assert error.__cause__ is cause
        assert isinstance(error, ConnectivityError)
        assert isinstance(error, PipelineError)

    def test_to_dict(self):
        data = TerminalLoadError("constraint", context={"sequence_number": 2}).to_dict()

        assert data["error_type"] == "TerminalLoadError"
        assert data["context"] == {"sequence_number": 2}
        assert data["original_error"] is None

    def test_malformed_record_line_number_in_context(self):
        error = MalformedRecordError("bad", raw_payload={"a": "1"}, line_number=12)

        assert error.line_number == 12
        assert error.context["line_number"] == 12
        assert error.raw_payload == {"a": "1"}
