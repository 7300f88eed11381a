"""
DecimalValidator - parses a value as a Decimal within optional bounds.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from .base_validator import BaseValidator


def _bound(value: Any) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


class DecimalValidator(BaseValidator):
    """
    Validates that a field parses as a finite decimal number.

    Parameters:
    - min: Inclusive lower bound (e.g. 0 for non-negative amounts)
    - max: Inclusive upper bound (e.g. the largest value the warehouse column holds)
    """

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)
        self.min_value = _bound(self.parameters.get("min"))
        self.max_value = _bound(self.parameters.get("max"))

    def validate(self, value: Any, record: dict[str, Any]) -> Decimal:
        if value is None or str(value).strip() == "":
            raise self.fail(f"{self.field_name} is missing")

        text = str(value).strip()
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            raise self.fail(f"{self.field_name} is not a valid decimal: {text!r}")

        if not parsed.is_finite():
            raise self.fail(f"{self.field_name} must be finite, got {text!r}")

        if self.min_value is not None and parsed < self.min_value:
            if self.min_value == 0:
                raise self.fail(f"{self.field_name} must be non-negative, got {text}")
            raise self.fail(f"{self.field_name} must be >= {self.min_value}, got {text}")

        if self.max_value is not None and parsed > self.max_value:
            raise self.fail(f"{self.field_name} is out of range: {text} exceeds {self.max_value}")

        return parsed

    @property
    def rule_type(self) -> str:
        return "decimal"
