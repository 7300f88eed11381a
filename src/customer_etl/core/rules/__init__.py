"""
Validation rule engine and customer rule configuration.
"""

from .rule_config import (
    CUSTOMER_ID_RULE,
    EMAIL_RULE,
    HARD_RULES,
    MAX_ANNUAL_REVENUE,
    NAME_RULE,
    REVENUE_RULE,
    RULE_PENALTIES,
    SIGNUP_DATE_RULE,
    RuleConfigBuilder,
    customer_rules,
)
from .rule_engine import RuleEngine

__all__ = [
    "RuleEngine",
    "RuleConfigBuilder",
    "customer_rules",
    "RULE_PENALTIES",
    "HARD_RULES",
    "MAX_ANNUAL_REVENUE",
    "EMAIL_RULE",
    "REVENUE_RULE",
    "NAME_RULE",
    "SIGNUP_DATE_RULE",
    "CUSTOMER_ID_RULE",
]
