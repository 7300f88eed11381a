"""
Batch models: sealed batches, quarantined batches, and load outcomes.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from .customer_record import TransformedRecord


class Batch(BaseModel):
    """
    An ordered, sealed group of transformed records written atomically.

    Attributes:
        sequence_number: Strictly increasing per run, starting at 1, never reused
        records: Records in extraction order
    """

    sequence_number: int = Field(..., gt=0)
    records: tuple[TransformedRecord, ...] = Field(..., min_length=1)

    class Config:
        frozen = True

    def __len__(self) -> int:
        return len(self.records)

    @property
    def customer_ids(self) -> list[int]:
        return [record.customer_id for record in self.records]


class QuarantinedBatch(BaseModel):
    """
    A batch moved out of the active load stream after a failed load.

    Attributes:
        sequence_number: Sequence number of the original batch
        records: The batch's records, retained for inspection
        reason: Human-readable failure reason
        error_type: Class name of the final error
        attempts: Number of write attempts made
        quarantined_at: When the batch was quarantined
    """

    sequence_number: int = Field(..., gt=0)
    records: tuple[TransformedRecord, ...]
    reason: str = Field(..., min_length=1)
    error_type: str
    attempts: int = Field(..., ge=1)
    quarantined_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        frozen = True

    @property
    def record_count(self) -> int:
        return len(self.records)


class LoadStatus(str, Enum):
    COMMITTED = "committed"
    QUARANTINED = "quarantined"


class LoadOutcome(BaseModel):
    """Result of loading one batch: committed, or quarantined with details."""

    sequence_number: int
    status: LoadStatus
    attempts: int = Field(..., ge=1)
    record_count: int = Field(..., ge=0)
    quarantine: QuarantinedBatch | None = None

    class Config:
        frozen = True

    @property
    def committed(self) -> bool:
        return self.status is LoadStatus.COMMITTED
