"""
Core data models for the customer ETL pipeline.

All models use Pydantic for runtime validation and type safety.
"""

from .batch import Batch, LoadOutcome, LoadStatus, QuarantinedBatch
from .customer_record import RawRecord, RevenueTier, TransformedRecord
from .rejected_record import RejectedRecord
from .run_metrics import RunMetrics
from .run_report import RunReport, RunState
from .validation_result import ValidationResult

__all__ = [
    "RawRecord",
    "RevenueTier",
    "TransformedRecord",
    "RejectedRecord",
    "ValidationResult",
    "Batch",
    "QuarantinedBatch",
    "LoadOutcome",
    "LoadStatus",
    "RunMetrics",
    "RunState",
    "RunReport",
]
