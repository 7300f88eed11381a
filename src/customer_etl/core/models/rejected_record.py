"""
RejectedRecord model representing a raw row that failed validation.
"""

from pydantic import BaseModel, Field, field_validator


class RejectedRecord(BaseModel):
    """
    A raw record that did not pass validation, with detailed error context.

    Attributes:
        record_id: Raw customer_id value (may be missing or malformed)
        raw_payload: Original data exactly as read from the source
        failed_rules: Ordered names of the rules that failed
        error_messages: Corresponding error messages
        reason: Human-readable rejection reason
        data_quality_score: Score computed over all rules, even on rejection
    """

    record_id: str | None = None
    raw_payload: dict[str, str | None]
    failed_rules: list[str] = Field(..., min_length=1)
    error_messages: list[str] = Field(..., min_length=1)
    reason: str = Field(..., min_length=1)
    data_quality_score: int = Field(0, ge=0, le=100)

    @field_validator('error_messages')
    @classmethod
    def check_arrays_same_length(cls, v, info):
        """Validate that failed_rules and error_messages have the same length."""
        failed_rules = info.data.get('failed_rules', [])
        if len(v) != len(failed_rules):
            raise ValueError(
                f"error_messages length ({len(v)}) must match failed_rules length ({len(failed_rules)})"
            )
        return v

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "record_id": "7",
                "raw_payload": {
                    "customer_id": "7",
                    "name": "Globex",
                    "email": "ops@globex.example",
                    "annual_revenue": "-500",
                    "signup_date": "2024-01-01"
                },
                "failed_rules": ["annual_revenue_valid"],
                "error_messages": ["annual_revenue must be non-negative, got -500"],
                "reason": "annual_revenue_valid: annual_revenue must be non-negative, got -500",
                "data_quality_score": 75
            }
        }
