"""
RequiredFieldValidator - ensures a field is present and not null/empty.
"""

from typing import Any, Dict
from .base_validator import BaseValidator


class RequiredFieldValidator(BaseValidator):
    """
    Validates that a required field is present and not empty after trimming.

    Fails if:
    - Field is missing from the record
    - Field value is None
    - Field value is empty or whitespace only

    Returns the value with surrounding whitespace removed.
    """

    def validate(self, value: Any, record: Dict[str, Any]) -> str:
        """
        Validate that the field is present and not null/empty.

        Args:
            value: The field value to validate
            record: The entire record

        Returns:
            The trimmed string value

        Raises:
            ValidationError: If field is missing, None, or blank
        """
        if self.field_name not in record:
            raise self.fail("Field is missing from record")

        if value is None:
            raise self.fail("Field value is null")

        stripped = str(value).strip()
        if stripped == "":
            raise self.fail("Field value is empty after trimming whitespace")

        return stripped

    @property
    def rule_type(self) -> str:
        return "required_field"
