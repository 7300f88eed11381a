"""
EmailValidator - structural check of an email address.
"""

from typing import Any

from .base_validator import BaseValidator


class EmailValidator(BaseValidator):
    """
    Validates that a value contains exactly one "@" with non-empty local
    and domain parts.

    No deliverability or RFC 5322 checks are made; the value is returned
    unchanged apart from surrounding whitespace.
    """

    def validate(self, value: Any, record: dict[str, Any]) -> str:
        if value is None:
            raise self.fail("email is missing")

        email = str(value).strip()
        at_count = email.count("@")
        if at_count != 1:
            raise self.fail(f"email must contain exactly one '@', found {at_count}")

        local, domain = email.split("@")
        if not local:
            raise self.fail("email local part is empty")
        if not domain:
            raise self.fail("email domain part is empty")

        return email

    @property
    def rule_type(self) -> str:
        return "email"
