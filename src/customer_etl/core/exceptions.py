"""
Exception hierarchy for the customer ETL pipeline.

Every pipeline error carries a human-readable message, a context dictionary
for structured logging, and the original exception when one was wrapped.

Exception Hierarchy:
    PipelineError (base)
    ├── ConfigurationError
    ├── ConnectivityError
    │   ├── SourceConnectivityError
    │   └── SinkConnectivityError
    ├── MalformedRecordError
    └── LoadError
        ├── RetryableLoadError
        └── TerminalLoadError

Only ConfigurationError and ConnectivityError may abort a run. Record-level
and batch-level errors are captured by the pipeline and reported.
"""

from datetime import datetime, timezone
from typing import Any


class PipelineError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, batch, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        original_exception: BaseException | None = None,
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        super().__init__(message)
        if original_exception is not None:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        base_msg = self.message

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception is not None:
            base_msg += (
                f" | Caused by: {type(self.original_exception).__name__}: "
                f"{self.original_exception}"
            )

        return base_msg

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/reporting."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None,
        }


class ConfigurationError(PipelineError):
    """Raised when pipeline configuration is invalid. Fails a run before any record is read."""
    pass


# ============================================================================
# Connectivity Errors
# ============================================================================

class ConnectivityError(PipelineError):
    """Base exception for an unreachable source or sink."""
    pass


class SourceConnectivityError(ConnectivityError):
    """
    Raised when the record source cannot be opened or read.

    Context should include:
        - source_name: Name of the record source
        - location: Path or URI of the source (if applicable)
    """
    pass


class SinkConnectivityError(ConnectivityError):
    """Raised when the sink cannot be reached at all (e.g. pool cannot be opened)."""
    pass


class MalformedRecordError(PipelineError):
    """
    Raised by a source for a row that cannot be decoded into a raw record.

    The source stays usable: the next call continues with the following row.

    Attributes:
        raw_payload: Whatever could be recovered from the row
        line_number: Position of the row in the source (if known)
    """

    def __init__(
        self,
        message: str,
        raw_payload: dict[str, str] | None = None,
        line_number: int | None = None,
        context: dict[str, Any] | None = None,
        original_exception: BaseException | None = None,
    ):
        super().__init__(message, context, original_exception)
        self.raw_payload = raw_payload or {}
        self.line_number = line_number
        if line_number is not None:
            self.context["line_number"] = line_number


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(PipelineError):
    """Base exception for batch write failures raised by sink adapters."""
    pass


class RetryableLoadError(LoadError):
    """
    Transient write failure that should trigger retry logic.

    Use this for:
    - Timeouts and statement cancellation
    - Connection resets / unavailable database
    - Deadlocks and serialization failures
    """
    pass


class TerminalLoadError(LoadError):
    """
    Permanent write failure; the batch is quarantined without retry.

    Use this for:
    - Constraint violations
    - Malformed batch data rejected by the sink
    """
    pass
