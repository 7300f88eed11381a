"""
Validation rule implementations.

Provides validators for required fields, email structure, decimals,
calendar dates and run-unique identifiers.
"""

from .base_validator import BaseValidator, ValidationError
from .date_validator import DateValidator
from .decimal_validator import DecimalValidator
from .email_validator import EmailValidator
from .required_field_validator import RequiredFieldValidator
from .unique_id_validator import UniqueIdValidator

__all__ = [
    "BaseValidator",
    "ValidationError",
    "RequiredFieldValidator",
    "EmailValidator",
    "DecimalValidator",
    "DateValidator",
    "UniqueIdValidator",
]
