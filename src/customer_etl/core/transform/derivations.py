"""
Derived business fields for accepted customer records.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal, localcontext

from customer_etl.core.models import RevenueTier

# Upper bounds (exclusive) of each tier; anything above is Enterprise.
REVENUE_TIER_THRESHOLDS = (
    (Decimal("50000"), RevenueTier.LOW),
    (Decimal("150000"), RevenueTier.MID),
    (Decimal("500000"), RevenueTier.HIGH),
)

MAX_TENURE_FACTOR = Decimal("5")
DAYS_PER_YEAR = Decimal("365")
CENTS = Decimal("0.01")

# Digits carried while computing CLV; quantize fails once a result needs more.
CLV_PRECISION = 60


def revenue_tier(annual_revenue: Decimal) -> RevenueTier:
    """Classify annual revenue into Low / Mid / High / Enterprise."""
    for upper_bound, tier in REVENUE_TIER_THRESHOLDS:
        if annual_revenue < upper_bound:
            return tier
    return RevenueTier.ENTERPRISE


def days_since(signup_date: date, run_date: date) -> int:
    return (run_date - signup_date).days


def tenure_factor(days_since_signup: int, segment_weight: float) -> Decimal:
    """min(5, 1 + days/365 x segment_weight)"""
    weight = Decimal(str(segment_weight))
    factor = 1 + Decimal(days_since_signup) / DAYS_PER_YEAR * weight
    return min(MAX_TENURE_FACTOR, factor)


def customer_lifetime_value(
    annual_revenue: Decimal,
    days_since_signup: int,
    segment_weight: float,
) -> Decimal:
    """Revenue times tenure factor, rounded half-up to cents."""
    factor = tenure_factor(days_since_signup, segment_weight)
    with localcontext() as ctx:
        ctx.prec = CLV_PRECISION
        return (annual_revenue * factor).quantize(CENTS, rounding=ROUND_HALF_UP)
