"""
RunState and RunReport models produced at the end of every run.
"""

from enum import Enum

from pydantic import BaseModel, Field

from .batch import QuarantinedBatch
from .rejected_record import RejectedRecord
from .run_metrics import RunMetrics


class RunState(str, Enum):
    """Lifecycle states of a pipeline run."""

    IDLE = "idle"
    EXTRACTING = "extracting"
    TRANSFORMING = "transforming"
    LOADING = "loading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.FAILED, RunState.CANCELLED)


class RunReport(BaseModel):
    """
    Final report of a run.

    Attributes:
        run_id: Identifier of the run
        state: Terminal state (completed, failed, cancelled)
        metrics: Final metrics snapshot
        quarantined_batches: Quarantined batches ordered by sequence number
        rejected_records: Rejections in extraction order, capped in size
        rejected_records_omitted: Rejections left out because of the cap
        error: Failure description for failed runs
        cancel_reason: Why the run was cancelled
    """

    run_id: str
    state: RunState
    metrics: RunMetrics
    quarantined_batches: list[QuarantinedBatch] = Field(default_factory=list)
    rejected_records: list[RejectedRecord] = Field(default_factory=list)
    rejected_records_omitted: int = Field(0, ge=0)
    error: str | None = None
    cancel_reason: str | None = None

    class Config:
        frozen = True

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.COMPLETED

    def summary(self) -> dict:
        """Compact, log-friendly view of the report."""
        m = self.metrics
        return {
            "run_id": self.run_id,
            "state": self.state.value,
            "records_read": m.records_read,
            "records_loaded": m.records_loaded,
            "records_rejected": m.records_rejected,
            "records_quarantined": m.records_quarantined,
            "records_malformed": m.records_malformed,
            "batches_quarantined": m.batches_quarantined,
            "average_quality_score": round(m.average_quality_score, 2),
            "throughput_records_per_second": round(m.throughput_records_per_second, 2),
        }
