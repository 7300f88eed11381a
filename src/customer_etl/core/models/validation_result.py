"""
ValidationResult model representing the outcome of validating a record (ephemeral).
"""

from typing import Any, List

from pydantic import BaseModel, Field, field_validator


class ValidationResult(BaseModel):
    """
    Outcome of running every rule against a raw record.

    Note: ValidationResult is ephemeral, not persisted
    (used in-memory between the rule engine and the transformer).

    Attributes:
        record_id: Raw customer_id of the validated record
        passed: Whether the record is accepted
        passed_rules: Rules that succeeded, in evaluation order
        failed_rules: Rules that failed, in evaluation order
        error_messages: One message per failed rule
        hard_failures: Failed rules that reject regardless of score
        quality_score: 100 minus the penalties of failed rules, floored at 0
        parsed_values: Typed values produced by the rules that passed
    """

    record_id: str | None = None
    passed: bool
    passed_rules: List[str] = Field(default_factory=list)
    failed_rules: List[str] = Field(default_factory=list)
    error_messages: List[str] = Field(default_factory=list)
    hard_failures: List[str] = Field(default_factory=list)
    quality_score: int = Field(..., ge=0, le=100)
    parsed_values: dict[str, Any] = Field(default_factory=dict)

    @field_validator('hard_failures')
    @classmethod
    def check_passed_consistency(cls, v, info):
        """Validate that passed=True implies no hard rule failed."""
        if info.data.get('passed') and len(v) > 0:
            raise ValueError("passed=True but hard_failures is not empty")
        return v

    @property
    def first_failure(self) -> str | None:
        """'rule: message' for the first failed rule, used as rejection reason."""
        if not self.failed_rules:
            return None
        return f"{self.failed_rules[0]}: {self.error_messages[0]}"

    class Config:
        json_schema_extra = {
            "example": {
                "record_id": "7",
                "passed": False,
                "passed_rules": [
                    "email_format",
                    "annual_revenue_valid",
                    "name_required",
                    "signup_date_valid"
                ],
                "failed_rules": ["customer_id_unique"],
                "error_messages": ["customer_id 7 already seen in this run"],
                "hard_failures": ["customer_id_unique"],
                "quality_score": 90
            }
        }
