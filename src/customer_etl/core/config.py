"""
Pipeline configuration.

PipelineConfig is validated by Pydantic and can be loaded from a YAML file:

```yaml
pipeline:
  batch_size: 500
  retry_attempts: 3
  backoff_base_ms: 200
  backoff_max_ms: 5000
  min_quality_score: 60
  concurrency: 4
  run_timeout_seconds: 900
  segment_weights:
    Enterprise: 1.5
    SMB: 0.8
```

Environment variables prefixed with ETL_ (e.g. ETL_BATCH_SIZE=250) override
values from the file. Every failure is raised as ConfigurationError.
"""

import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from customer_etl.core.exceptions import ConfigurationError

ENV_PREFIX = "ETL_"


class PipelineConfig(BaseModel):
    """
    Options recognized by a pipeline run.

    Attributes:
        pipeline_name: Label used in logs and exported metrics
        batch_size: Records per sealed batch
        retry_attempts: Retries after the first failed write of a batch
        backoff_base_ms: Base delay of the exponential backoff
        backoff_max_ms: Upper bound of any single backoff delay
        min_quality_score: Minimum data quality score for acceptance
        concurrency: Loader worker threads
        queue_depth: Sealed batches buffered between producer and loaders
        transform_workers: Threads used to transform records in parallel
        run_timeout_seconds: Cancel the run after this many seconds (None = no limit)
        sink_timeout_seconds: Timeout applied by the sink to each operation
        max_rejected_in_report: Cap on rejected records listed in the report
        segment_weights: Tenure weight per customer segment
        default_segment_weight: Weight for segments not listed above
    """

    pipeline_name: str = Field("customers", min_length=1)
    batch_size: int = Field(100, gt=0)
    retry_attempts: int = Field(3, ge=0)
    backoff_base_ms: int = Field(100, gt=0)
    backoff_max_ms: int = Field(10_000, gt=0)
    min_quality_score: int = Field(60, ge=0, le=100)
    concurrency: int = Field(4, gt=0)
    queue_depth: int = Field(4, gt=0)
    transform_workers: int = Field(1, gt=0)
    run_timeout_seconds: int | None = Field(None, gt=0)
    sink_timeout_seconds: float = Field(30.0, gt=0)
    max_rejected_in_report: int = Field(1000, ge=0)
    segment_weights: dict[str, float] = Field(default_factory=lambda: {"Enterprise": 1.5})
    default_segment_weight: float = Field(1.0, gt=0)

    class Config:
        frozen = True
        extra = "forbid"

    @field_validator('segment_weights')
    @classmethod
    def check_positive_weights(cls, v):
        """Segment weights must be positive."""
        for segment, weight in v.items():
            if weight <= 0:
                raise ValueError(f"segment weight for '{segment}' must be positive, got {weight}")
        return v

    @model_validator(mode='after')
    def check_backoff_bounds(self):
        """The backoff cap cannot be below the base delay."""
        if self.backoff_max_ms < self.backoff_base_ms:
            raise ValueError(
                f"backoff_max_ms ({self.backoff_max_ms}) must be >= backoff_base_ms ({self.backoff_base_ms})"
            )
        return self

    def segment_weight(self, segment: str) -> float:
        """Tenure weight for a segment (exact match, then case-insensitive)."""
        if segment in self.segment_weights:
            return self.segment_weights[segment]
        lowered = segment.strip().lower()
        for name, weight in self.segment_weights.items():
            if name.lower() == lowered:
                return weight
        return self.default_segment_weight

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "PipelineConfig":
        """
        Build a config from a mapping.

        Raises:
            ConfigurationError: If any option is unknown or invalid
        """
        try:
            return cls(**dict(values))
        except ValidationError as e:
            raise ConfigurationError(
                "Invalid pipeline configuration",
                context={"errors": _format_errors(e)},
                original_exception=e,
            ) from e


def _format_errors(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'config'}: {err['msg']}"
        for err in error.errors()
    )


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """
    Collect ETL_* environment variables for known scalar options.

    Empty values unset optional options (e.g. ETL_RUN_TIMEOUT_SECONDS=).
    """
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for field_name in PipelineConfig.model_fields:
        if field_name == "segment_weights":
            continue
        key = f"{ENV_PREFIX}{field_name.upper()}"
        if key in environ:
            value = environ[key]
            overrides[field_name] = None if value == "" else value
    return overrides


def load_config(
    path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> PipelineConfig:
    """
    Load configuration from YAML, environment and explicit overrides.

    Precedence (lowest to highest): defaults, YAML file, ETL_* environment
    variables, overrides.

    Args:
        path: YAML file with a top-level 'pipeline' section (optional)
        overrides: Explicit option values (e.g. from CLI flags)
        environ: Environment mapping (defaults to os.environ)

    Raises:
        ConfigurationError: If the file is missing or invalid, or values are invalid
    """
    values: dict[str, Any] = {}

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_path}",
                context={"path": str(config_path)},
            )
        try:
            with open(config_path) as f:
                document = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                "Configuration file is not valid YAML",
                context={"path": str(config_path)},
                original_exception=e,
            ) from e

        if not isinstance(document, dict):
            raise ConfigurationError(
                "Configuration file must contain a mapping",
                context={"path": str(config_path)},
            )
        section = document.get("pipeline", {})
        if not isinstance(section, dict):
            raise ConfigurationError(
                "'pipeline' section must be a mapping",
                context={"path": str(config_path)},
            )
        values.update(section)

    values.update(env_overrides(environ))
    if overrides:
        values.update({k: v for k, v in overrides.items() if v is not None})

    return PipelineConfig.from_dict(values)
