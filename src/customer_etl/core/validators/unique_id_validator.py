"""
UniqueIdValidator - positive integer identifiers, unique within a run.
"""

from typing import Any

from customer_etl.utils.concurrent_set import ConcurrentSet

from .base_validator import BaseValidator


class UniqueIdValidator(BaseValidator):
    """
    Validates that a field is a positive integer not seen before in this run.

    The first record presenting an identifier claims it, whatever the outcome
    of its other rules; later records with the same identifier fail.

    Parameters:
    - seen_ids: ConcurrentSet shared by all workers of the run (required)
    """

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)
        seen_ids = self.parameters.get("seen_ids")
        if seen_ids is None:
            raise ValueError("UniqueIdValidator requires 'seen_ids' parameter")
        self.seen_ids: ConcurrentSet[int] = seen_ids

    def validate(self, value: Any, record: dict[str, Any]) -> int:
        if value is None or str(value).strip() == "":
            raise self.fail(f"{self.field_name} is missing")

        text = str(value).strip()
        try:
            parsed = int(text)
        except ValueError:
            raise self.fail(f"{self.field_name} is not an integer: {text!r}")

        if parsed <= 0:
            raise self.fail(f"{self.field_name} must be a positive integer, got {parsed}")

        if not self.seen_ids.add_if_absent(parsed):
            raise self.fail(f"{self.field_name} {parsed} already seen in this run")

        return parsed

    @property
    def rule_type(self) -> str:
        return "unique_id"
