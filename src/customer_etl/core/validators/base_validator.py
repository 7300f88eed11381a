"""
Field validators for raw customer records.

A validator checks one field of a raw record. On success it returns the
parsed value (str, Decimal, date or int); on failure it raises
ValidationError carrying the message that ends up in a rejection reason.
"""

from abc import ABC, abstractmethod
from typing import Any


class ValidationError(Exception):
    """A field failed one validator; ``message`` is the human-readable part."""

    def __init__(self, rule_name: str, field_name: str, message: str):
        super().__init__(f"[{rule_name}] {field_name}: {message}")
        self.rule_name = rule_name
        self.field_name = field_name
        self.message = message


class BaseValidator(ABC):
    """
    Checks ``record[field_name]``, configured through ``parameters``.

    Subclasses set ``rule_type`` to the identifier used in rule
    definitions and call ``self.fail(...)`` to build their errors.
    """

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        self.field_name = field_name
        self.parameters = dict(parameters or {})

    @abstractmethod
    def validate(self, value: Any, record: dict[str, Any]) -> Any:
        """
        Parse ``value`` (None when the field is absent) and return it typed.

        ``record`` is the whole raw record for checks that need context.
        """

    @property
    @abstractmethod
    def rule_type(self) -> str: ...

    def fail(self, message: str) -> ValidationError:
        return ValidationError(self.rule_type, self.field_name, message)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.field_name!r} {self.parameters}>"
