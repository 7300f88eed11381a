"""
Unit tests for the customer transformer and derived fields.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from conftest import RUN_AT, RUN_DATE, raw_customer
from customer_etl.core.config import PipelineConfig
from customer_etl.core.models import RejectedRecord, RevenueTier, TransformedRecord
from customer_etl.core.rules import MAX_ANNUAL_REVENUE
from customer_etl.core.transform import (
    CustomerTransformer,
    customer_lifetime_value,
    revenue_tier,
    tenure_factor,
)
from customer_etl.observability.metrics import MetricsCollector


def make_transformer(**kwargs) -> CustomerTransformer:
    kwargs.setdefault("run_at", RUN_AT)
    kwargs.setdefault("clock", lambda: RUN_AT)
    return CustomerTransformer(**kwargs)


class TestDerivations:
    """Tests for revenue tier and lifetime value derivations"""

    @pytest.mark.parametrize("revenue,tier", [
        ("0", RevenueTier.LOW),
        ("49999.99", RevenueTier.LOW),
        ("50000", RevenueTier.MID),
        ("149999.99", RevenueTier.MID),
        ("150000", RevenueTier.HIGH),
        ("499999.99", RevenueTier.HIGH),
        ("500000", RevenueTier.ENTERPRISE),
        ("12000000", RevenueTier.ENTERPRISE),
    ])
    def test_revenue_tier_boundaries(self, revenue, tier):
        assert revenue_tier(Decimal(revenue)) is tier

    def test_tenure_factor_capped_at_five(self):
        assert tenure_factor(365 * 10, 1.0) == Decimal("5")

    def test_tenure_factor_new_customer(self):
        assert tenure_factor(0, 1.5) == Decimal("1")

    def test_lifetime_value_rounds_to_cents(self):
        value = customer_lifetime_value(Decimal("200000"), 400, 1.5)
        assert value == Decimal("528767.12")

    def test_lifetime_value_zero_revenue(self):
        assert customer_lifetime_value(Decimal("0"), 1000, 1.0) == Decimal("0.00")

    def test_lifetime_value_beyond_default_precision(self):
        value = customer_lifetime_value(Decimal("1E+30"), 365 * 10, 1.0)
        assert value == Decimal("5E+30")
        assert value.as_tuple().exponent == -2

    def test_lifetime_value_of_largest_revenue(self):
        value = customer_lifetime_value(MAX_ANNUAL_REVENUE, 365 * 10, 1.0)
        assert value == Decimal("49999999999999999.95")

    @given(
        st.decimals(min_value=0, max_value=10**9, places=2),
        st.integers(min_value=0, max_value=20_000),
        st.sampled_from([0.5, 0.8, 1.0, 1.5, 2.0]),
    )
    def test_lifetime_value_bounds(self, revenue, days, weight):
        value = customer_lifetime_value(revenue, days, weight)
        assert revenue - Decimal("0.01") <= value <= revenue * 5 + Decimal("0.01")
        assert value == value.quantize(Decimal("0.01"))


class TestCustomerTransformer:
    """Tests for CustomerTransformer"""

    def test_three_record_scenario(self):
        """Negative revenue and a duplicate id are rejected; the valid record is enriched"""
        transformer = make_transformer()
        signup = (RUN_DATE - timedelta(days=400)).isoformat()

        a = transformer.transform(raw_customer(3, annual_revenue="-500"))
        b = transformer.transform(
            raw_customer(7, segment="Enterprise", annual_revenue="200000", signup_date=signup)
        )
        c = transformer.transform(raw_customer(7, name="Someone Else"))

        assert isinstance(a, RejectedRecord)
        assert a.failed_rules == ["annual_revenue_valid"]
        assert a.reason.startswith("annual_revenue_valid: ")

        assert isinstance(b, TransformedRecord)
        assert b.customer_id == 7
        assert b.revenue_tier is RevenueTier.HIGH
        assert b.data_quality_score == 100
        assert b.days_since_signup == 400
        assert b.customer_lifetime_value == Decimal("528767.12")
        assert b.processed_at == RUN_AT

        assert isinstance(c, RejectedRecord)
        assert c.failed_rules == ["customer_id_unique"]
        assert "already seen" in c.error_messages[0]

    @pytest.mark.parametrize("revenue", ["1E+30", "1" + "0" * 27, "1E+999999"])
    def test_revenue_out_of_range_rejected(self, revenue):
        record = make_transformer().transform(raw_customer(1, annual_revenue=revenue))

        assert isinstance(record, RejectedRecord)
        assert record.failed_rules == ["annual_revenue_valid"]
        assert "out of range" in record.reason

    def test_largest_revenue_accepted(self):
        record = make_transformer().transform(
            raw_customer(1, annual_revenue=str(MAX_ANNUAL_REVENUE))
        )

        assert isinstance(record, TransformedRecord)
        assert record.revenue_tier is RevenueTier.ENTERPRISE
        assert record.customer_lifetime_value >= MAX_ANNUAL_REVENUE

    def test_email_failure_alone_is_accepted(self):
        record = make_transformer().transform(raw_customer(1, email="broken"))

        assert isinstance(record, TransformedRecord)
        assert record.data_quality_score == 75
        assert record.email == "broken"

    def test_low_score_rejection_mentions_threshold(self):
        record = make_transformer().transform(raw_customer(1, email="broken", name=""))

        assert isinstance(record, RejectedRecord)
        assert record.data_quality_score == 55
        assert record.reason == (
            "email_format: email must contain exactly one '@', found 0 "
            "(quality score 55 below minimum 60)"
        )

    def test_raw_payload_preserved_on_rejection(self):
        raw = raw_customer(5, annual_revenue="lots")
        record = make_transformer().transform(raw)

        assert isinstance(record, RejectedRecord)
        assert record.raw_payload == raw
        assert record.record_id == "5"

    def test_fields_are_trimmed(self):
        record = make_transformer().transform(
            raw_customer(2, name="  Padded  ", region=" APAC ", status=" active ")
        )

        assert record.name == "Padded"
        assert record.region == "APAC"
        assert record.status == "active"

    def test_segment_weight_from_config(self):
        config = PipelineConfig(segment_weights={"SMB": 2.0})
        signup = (RUN_DATE - timedelta(days=365)).isoformat()

        record = make_transformer(config=config).transform(
            raw_customer(1, segment="smb", annual_revenue="1000", signup_date=signup)
        )

        assert record.customer_lifetime_value == Decimal("3000.00")

    def test_future_signup_rejected(self):
        tomorrow = (RUN_DATE + timedelta(days=1)).isoformat()
        record = make_transformer().transform(raw_customer(1, signup_date=tomorrow))

        assert isinstance(record, RejectedRecord)
        assert record.failed_rules == ["signup_date_valid"]

    def test_same_input_same_output_with_fresh_id_set(self):
        raw = raw_customer(11, segment="Enterprise", annual_revenue="750000")

        first = make_transformer().transform(raw)
        second = make_transformer().transform(raw)

        assert first == second

    def test_reports_to_metrics(self):
        metrics = MetricsCollector(pipeline_name="test-transformer")
        transformer = make_transformer(metrics=metrics)

        transformer.transform(raw_customer(1))
        transformer.transform(raw_customer(2, annual_revenue="-1"))
        transformer.transform(raw_customer(3, email="x"))

        snapshot = metrics.snapshot()
        assert snapshot.records_transformed == 3
        assert snapshot.records_accepted == 2
        assert snapshot.records_rejected == 1
        assert snapshot.total_quality_score_sum == 100 + 75 + 75
        assert snapshot.rule_failures == {"annual_revenue_valid": 1, "email_format": 1}

    def test_run_date_from_run_at(self):
        transformer = make_transformer()
        assert transformer.run_date == date(2025, 10, 19)
