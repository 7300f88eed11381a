"""
Validator/Transformer: one raw customer row in, one accepted or rejected record out.
"""

from datetime import datetime, timezone
from typing import Callable

from customer_etl.core.config import PipelineConfig
from customer_etl.core.models import (
    RawRecord,
    RejectedRecord,
    TransformedRecord,
    ValidationResult,
)
from customer_etl.core.rules import RuleEngine, customer_rules
from customer_etl.observability.logger import get_logger
from customer_etl.utils.concurrent_set import ConcurrentSet

from .derivations import customer_lifetime_value, days_since, revenue_tier

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CustomerTransformer:
    """
    Validates raw customer rows and derives business fields.

    The transformer performs no I/O. Given the same run timestamp and a fresh
    seen-id set it always produces the same result for the same row, apart
    from processed_at. Results are reported to the metrics collector when
    one is attached.

    Safe to call from several threads: the only shared state is the
    ConcurrentSet of seen identifiers and the metrics collector.
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        run_at: datetime | None = None,
        seen_ids: ConcurrentSet[int] | None = None,
        metrics=None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the transformer for one run.

        Args:
            config: Pipeline configuration (defaults apply when omitted)
            run_at: Run timestamp; signup dates after its date are rejected
            seen_ids: Identifiers already claimed in this run
            metrics: MetricsCollector receiving per-record results
            clock: Source of processed_at timestamps
        """
        self.config = config or PipelineConfig()
        self.run_at = run_at or _utc_now()
        self.run_date = self.run_at.date()
        self.seen_ids = seen_ids if seen_ids is not None else ConcurrentSet()
        self.metrics = metrics
        self.clock = clock or _utc_now
        self.rule_engine = RuleEngine(
            customer_rules(self.run_date, self.seen_ids),
            min_quality_score=self.config.min_quality_score,
        )

    def transform(self, raw: RawRecord) -> TransformedRecord | RejectedRecord:
        """
        Transform a raw row.

        Args:
            raw: Mapping of field name to raw string value

        Returns:
            TransformedRecord if accepted, RejectedRecord otherwise
        """
        result = self.rule_engine.validate_record(raw)

        if self.metrics is not None:
            self.metrics.record_transformed(
                quality_score=result.quality_score,
                failed_rules=result.failed_rules,
                accepted=result.passed,
            )

        if result.passed:
            return self._build_record(raw, result)
        return self._reject(raw, result)

    def _build_record(self, raw: RawRecord, result: ValidationResult) -> TransformedRecord:
        values = result.parsed_values
        annual_revenue = values["annual_revenue"]
        signup_date = values["signup_date"]
        segment = _text(raw.get("segment"))
        days = days_since(signup_date, self.run_date)

        return TransformedRecord(
            customer_id=values["customer_id"],
            name=values.get("name", _text(raw.get("name"))),
            email=values.get("email", _text(raw.get("email"))),
            region=_text(raw.get("region")),
            segment=segment,
            status=_text(raw.get("status")),
            signup_date=signup_date,
            annual_revenue=annual_revenue,
            revenue_tier=revenue_tier(annual_revenue),
            customer_lifetime_value=customer_lifetime_value(
                annual_revenue, days, self.config.segment_weight(segment)
            ),
            days_since_signup=days,
            data_quality_score=result.quality_score,
            processed_at=self.clock(),
        )

    def _reject(self, raw: RawRecord, result: ValidationResult) -> RejectedRecord:
        reason = result.first_failure
        if not result.hard_failures:
            reason = (
                f"{reason} (quality score {result.quality_score} below minimum "
                f"{self.config.min_quality_score})"
            )

        logger.debug(
            "Record rejected",
            extra={
                "record_id": result.record_id,
                "failed_rules": result.failed_rules,
                "quality_score": result.quality_score,
            },
        )

        return RejectedRecord(
            record_id=result.record_id,
            raw_payload=dict(raw),
            failed_rules=result.failed_rules,
            error_messages=result.error_messages,
            reason=reason,
            data_quality_score=result.quality_score,
        )


def _text(value: str | None) -> str:
    return "" if value is None else str(value).strip()
