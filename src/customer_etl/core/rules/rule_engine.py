"""
Rule engine for orchestrating validation rules on raw records.

The rule engine applies every rule in order, computes the data quality
score and decides acceptance.
"""

from typing import Any, Mapping

from customer_etl.core.models import ValidationResult
from customer_etl.core.validators import (
    BaseValidator,
    DateValidator,
    DecimalValidator,
    EmailValidator,
    RequiredFieldValidator,
    UniqueIdValidator,
    ValidationError,
)

MAX_QUALITY_SCORE = 100


class RuleEngine:
    """
    Orchestrates validation rules on raw records.

    Every enabled rule is evaluated, even after a failure, so the quality
    score reflects all of them. A record is accepted when its score reaches
    min_quality_score and no hard rule failed.
    """

    VALIDATOR_REGISTRY = {
        "required_field": RequiredFieldValidator,
        "email": EmailValidator,
        "decimal": DecimalValidator,
        "date": DateValidator,
        "unique_id": UniqueIdValidator,
    }

    def __init__(self, rules: list[dict[str, Any]], min_quality_score: int = 60):
        """
        Initialize the rule engine with validation rules.

        Args:
            rules: List of rule configurations, each containing:
                   - rule_name: str
                   - rule_type: str (required_field, email, decimal, date, unique_id)
                   - field_name: str
                   - parameters: Dict[str, Any] (optional)
                   - penalty: int (points subtracted on failure)
                   - hard: bool (failure rejects regardless of score)
                   - enabled: bool (default True)
            min_quality_score: Minimum score for acceptance (0-100)
        """
        if not 0 <= min_quality_score <= MAX_QUALITY_SCORE:
            raise ValueError(f"min_quality_score must be between 0 and 100, got {min_quality_score}")

        self.rules = rules
        self.min_quality_score = min_quality_score
        self.validators: list[tuple[str, int, bool, BaseValidator]] = []
        self._build_validators()

    def _build_validators(self) -> None:
        """Build validator instances from rule configurations."""
        for rule in self.rules:
            if not rule.get("enabled", True):
                continue

            rule_name = rule["rule_name"]
            rule_type = rule["rule_type"]

            validator_class = self.VALIDATOR_REGISTRY.get(rule_type)
            if not validator_class:
                raise ValueError(f"Unknown rule type: {rule_type}")

            try:
                validator = validator_class(rule["field_name"], rule.get("parameters", {}))
            except Exception as e:
                raise ValueError(f"Failed to create validator for rule '{rule_name}': {e}") from e

            self.validators.append(
                (rule_name, int(rule.get("penalty", 0)), bool(rule.get("hard", False)), validator)
            )

    def validate_record(self, raw: Mapping[str, Any], record_id_field: str = "customer_id") -> ValidationResult:
        """
        Validate a raw record against all rules.

        Args:
            raw: The raw record
            record_id_field: Field reported as the record id

        Returns:
            ValidationResult with acceptance, score, failures and parsed values
        """
        payload = dict(raw)
        passed_rules: list[str] = []
        failed_rules: list[str] = []
        error_messages: list[str] = []
        hard_failures: list[str] = []
        parsed_values: dict[str, Any] = {}
        score = MAX_QUALITY_SCORE

        for rule_name, penalty, hard, validator in self.validators:
            value = payload.get(validator.field_name)
            try:
                parsed_values[validator.field_name] = validator.validate(value, payload)
                passed_rules.append(rule_name)
            except ValidationError as e:
                failed_rules.append(rule_name)
                error_messages.append(e.message)
                score -= penalty
                if hard:
                    hard_failures.append(rule_name)

        score = max(0, score)
        passed = not hard_failures and score >= self.min_quality_score

        record_id = payload.get(record_id_field)
        return ValidationResult(
            record_id=None if record_id is None else str(record_id),
            passed=passed,
            passed_rules=passed_rules,
            failed_rules=failed_rules,
            error_messages=error_messages,
            hard_failures=hard_failures,
            quality_score=score,
            parsed_values=parsed_values,
        )

    def get_rule_summary(self) -> dict[str, Any]:
        """
        Get summary of loaded rules.

        Returns:
            Dictionary with rule names, hard rules and total penalty
        """
        return {
            "total_rules": len(self.validators),
            "rule_names": [name for name, _, _, _ in self.validators],
            "hard_rules": [name for name, _, hard, _ in self.validators if hard],
            "total_penalty": sum(penalty for _, penalty, _, _ in self.validators),
        }
