"""
DateValidator - parses an ISO calendar date, optionally bounded by a latest date.
"""

from datetime import date
from typing import Any

from .base_validator import BaseValidator


class DateValidator(BaseValidator):
    """
    Validates that a field is an ISO 8601 calendar date (YYYY-MM-DD).

    Parameters:
    - not_after: Latest acceptable date (inclusive), typically the run date
    """

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)
        self.not_after: date | None = self.parameters.get("not_after")

    def validate(self, value: Any, record: dict[str, Any]) -> date:
        if value is None or str(value).strip() == "":
            raise self.fail(f"{self.field_name} is missing")

        text = str(value).strip()
        try:
            parsed = date.fromisoformat(text)
        except ValueError:
            raise self.fail(f"{self.field_name} is not a valid calendar date: {text!r}")

        if self.not_after is not None and parsed > self.not_after:
            raise self.fail(
                f"{self.field_name} {parsed.isoformat()} is in the future "
                f"(run date {self.not_after.isoformat()})"
            )

        return parsed

    @property
    def rule_type(self) -> str:
        return "date"
