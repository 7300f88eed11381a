"""
Rule configuration for customer validation.

Rules are plain dictionaries consumed by RuleEngine:

    {
        "rule_name": "email_format",
        "rule_type": "email",
        "field_name": "email",
        "parameters": {},
        "penalty": 25,
        "hard": False,
        "enabled": True,
    }

The customer rule set is fixed in order and weight; see customer_rules().
"""

from datetime import date
from decimal import Decimal
from typing import Any

from customer_etl.utils.concurrent_set import ConcurrentSet

EMAIL_RULE = "email_format"
REVENUE_RULE = "annual_revenue_valid"
NAME_RULE = "name_required"
SIGNUP_DATE_RULE = "signup_date_valid"
CUSTOMER_ID_RULE = "customer_id_unique"

# Penalties subtracted from a starting score of 100.
RULE_PENALTIES = {
    EMAIL_RULE: 25,
    REVENUE_RULE: 25,
    NAME_RULE: 20,
    SIGNUP_DATE_RULE: 20,
    CUSTOMER_ID_RULE: 10,
}

HARD_RULES = frozenset({REVENUE_RULE, SIGNUP_DATE_RULE, CUSTOMER_ID_RULE})

# Largest value customers.annual_revenue (NUMERIC(18, 2)) can hold.
MAX_ANNUAL_REVENUE = Decimal("9999999999999999.99")


class RuleConfigBuilder:
    """
    Programmatically build rule configurations.
    """

    def __init__(self):
        """Initialize empty rule configuration."""
        self.rules: list[dict[str, Any]] = []

    def _add(
        self,
        rule_name: str,
        rule_type: str,
        field_name: str,
        parameters: dict[str, Any] | None,
        penalty: int | None,
        hard: bool | None,
    ) -> "RuleConfigBuilder":
        self.rules.append({
            "rule_name": rule_name,
            "rule_type": rule_type,
            "field_name": field_name,
            "parameters": parameters or {},
            "penalty": RULE_PENALTIES.get(rule_name, 0) if penalty is None else penalty,
            "hard": rule_name in HARD_RULES if hard is None else hard,
            "enabled": True,
        })
        return self

    def add_email(
        self, field_name: str, rule_name: str = EMAIL_RULE,
        penalty: int | None = None, hard: bool | None = None,
    ) -> "RuleConfigBuilder":
        """Add an email structure rule."""
        return self._add(rule_name, "email", field_name, None, penalty, hard)

    def add_decimal(
        self, field_name: str, min_value: float | None = None, max_value: Decimal | None = None,
        rule_name: str = REVENUE_RULE, penalty: int | None = None, hard: bool | None = None,
    ) -> "RuleConfigBuilder":
        """Add a decimal parsing rule with optional inclusive bounds."""
        params = {"min": min_value, "max": max_value}
        params = {key: bound for key, bound in params.items() if bound is not None}
        return self._add(rule_name, "decimal", field_name, params, penalty, hard)

    def add_required_field(
        self, field_name: str, rule_name: str = NAME_RULE,
        penalty: int | None = None, hard: bool | None = None,
    ) -> "RuleConfigBuilder":
        """Add a required (non-blank) field rule."""
        return self._add(rule_name, "required_field", field_name, None, penalty, hard)

    def add_date(
        self, field_name: str, not_after: date | None = None, rule_name: str = SIGNUP_DATE_RULE,
        penalty: int | None = None, hard: bool | None = None,
    ) -> "RuleConfigBuilder":
        """Add a calendar date rule, optionally rejecting dates after not_after."""
        params = {"not_after": not_after} if not_after is not None else {}
        return self._add(rule_name, "date", field_name, params, penalty, hard)

    def add_unique_id(
        self, field_name: str, seen_ids: ConcurrentSet, rule_name: str = CUSTOMER_ID_RULE,
        penalty: int | None = None, hard: bool | None = None,
    ) -> "RuleConfigBuilder":
        """Add a positive, run-unique integer identifier rule."""
        return self._add(rule_name, "unique_id", field_name, {"seen_ids": seen_ids}, penalty, hard)

    def build(self) -> list[dict[str, Any]]:
        """Build and return the rule configuration."""
        return self.rules


def customer_rules(run_date: date, seen_ids: ConcurrentSet) -> list[dict[str, Any]]:
    """
    The customer rule set, in evaluation order.

    Args:
        run_date: Signup dates after this date are rejected
        seen_ids: Identifiers already claimed in this run
    """
    return (
        RuleConfigBuilder()
        .add_email("email")
        .add_decimal("annual_revenue", min_value=0, max_value=MAX_ANNUAL_REVENUE)
        .add_required_field("name")
        .add_date("signup_date", not_after=run_date)
        .add_unique_id("customer_id", seen_ids)
        .build()
    )
