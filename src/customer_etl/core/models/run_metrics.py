"""
RunMetrics model: an immutable snapshot of one run's counters.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class RunMetrics(BaseModel):
    """
    Point-in-time copy of a run's aggregate metrics.

    Throughput and average quality are derived when the snapshot is taken.

    Attributes:
        records_read: Raw rows pulled from the source
        records_malformed: Rows the source could not decode
        records_transformed: Rows evaluated by the transformer
        records_accepted: Rows that became TransformedRecords
        records_rejected: Rows rejected by validation
        records_loaded: Records in committed batches
        records_quarantined: Records in quarantined batches
        total_quality_score_sum: Sum of scores over transformed rows
        batches_attempted: Batches handed to the loader
        batches_committed: Batches committed to the sink
        batches_retried: Batches that needed at least one retry
        batches_quarantined: Batches moved to quarantine
        rule_failures: Failure count per validation rule
        start_time: When the run started
        end_time: When the run finished (None while running)
        elapsed_seconds: Seconds between start and end (or snapshot time)
        throughput_records_per_second: records_loaded / elapsed_seconds
        average_quality_score: total_quality_score_sum / records_transformed
    """

    records_read: int = 0
    records_malformed: int = 0
    records_transformed: int = 0
    records_accepted: int = 0
    records_rejected: int = 0
    records_loaded: int = 0
    records_quarantined: int = 0
    total_quality_score_sum: int = 0
    batches_attempted: int = 0
    batches_committed: int = 0
    batches_retried: int = 0
    batches_quarantined: int = 0
    rule_failures: dict[str, int] = Field(default_factory=dict)
    start_time: datetime | None = None
    end_time: datetime | None = None
    elapsed_seconds: float = 0.0
    throughput_records_per_second: float = 0.0
    average_quality_score: float = 0.0

    class Config:
        frozen = True
