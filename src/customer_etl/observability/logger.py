"""
Structured logging for the customer ETL pipeline

Every pipeline logger writes one line per event to stdout, either as a JSON
object (python-json-logger) or as plain text for local runs. Extra fields
passed through ``extra=`` become top-level JSON keys, so a batch commit can be
found by ``sequence_number`` and a rejected record by ``record_id``.
"""
import logging
import os
import sys
import time

from pythonjsonlogger import jsonlogger

DEFAULT_LOGGER_NAME = "customer-etl"
PACKAGE_LOGGER_PREFIX = "customer_etl"

JSON_FIELDS = "%(timestamp)s %(level)s %(logger)s %(thread)s %(message)s"
TEXT_FIELDS = "%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(message)s"

# Format for loggers created lazily by get_logger()
_default_format = os.getenv("LOG_FORMAT", "json")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter emitting timestamp, level, logger, origin and thread"""

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["origin"] = f"{record.module}.{record.funcName}:{record.lineno}"
        log_record["thread"] = record.threadName


def resolve_level(level: str | None) -> int:
    """Map a level name (or LOG_LEVEL) to a logging constant, INFO when unknown"""
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def build_formatter(format_type: str) -> logging.Formatter:
    if format_type == "json":
        return CustomJsonFormatter(fmt=JSON_FIELDS, datefmt="%Y-%m-%dT%H:%M:%S")
    return logging.Formatter(fmt=TEXT_FIELDS, datefmt="%Y-%m-%d %H:%M:%S")


def setup_logger(
    name: str = DEFAULT_LOGGER_NAME,
    level: str | None = None,
    format_type: str | None = None,
) -> logging.Logger:
    """
    (Re)configure a logger with a single stdout handler.

    Args:
        name: Logger name
        level: Level name; falls back to LOG_LEVEL, then INFO
        format_type: "json" or "text"; falls back to LOG_FORMAT, then json

    Returns:
        The configured logger. It does not propagate to the root logger.
    """
    log_level = resolve_level(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(build_formatter(format_type or _default_format))

    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    logger.handlers = [handler]
    logger.propagate = False
    return logger


def configure_logging(level: str | None = None, format_type: str = "json") -> None:
    """
    Apply CLI logging options to the pipeline loggers.

    Loggers that already exist are rebuilt; loggers created afterwards pick
    up the new format through get_logger().
    """
    global _default_format
    _default_format = format_type
    if level:
        os.environ["LOG_LEVEL"] = level

    existing = [
        name for name in logging.Logger.manager.loggerDict
        if name == DEFAULT_LOGGER_NAME or name.startswith(PACKAGE_LOGGER_PREFIX)
    ]
    for name in existing:
        setup_logger(name, level=level, format_type=format_type)


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """Return the named logger, configuring it on first use"""
    logger = logging.getLogger(name)
    return logger if logger.handlers else setup_logger(name)


class log_operation:
    """
    Log the start and end of a unit of work with its duration.

    Usage:
        with log_operation("Ensure warehouse schema", logger=logger) as op:
            schema.ensure_schema()
        op.duration  # seconds

    Exceptions are logged with their type and re-raised.
    """

    def __init__(self, operation_name: str, logger: logging.Logger | None = None, **extra_fields):
        self.operation_name = operation_name
        self.logger = logger or get_logger()
        self.extra_fields = extra_fields
        self.start_time: float | None = None
        self.duration: float | None = None

    def _fields(self, **fields) -> dict:
        return {"operation": self.operation_name, **fields, **self.extra_fields}

    def __enter__(self):
        self.start_time = time.monotonic()
        self.logger.info(f"Starting: {self.operation_name}", extra=self._fields())
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.monotonic() - self.start_time
        elapsed = round(self.duration, 3)

        if exc_type is None:
            self.logger.info(
                f"Completed: {self.operation_name}",
                extra=self._fields(duration_seconds=elapsed, status="success"),
            )
        else:
            self.logger.error(
                f"Failed: {self.operation_name}",
                extra=self._fields(
                    duration_seconds=elapsed,
                    status="error",
                    error_type=exc_type.__name__,
                    error_message=str(exc_val),
                ),
                exc_info=(exc_type, exc_val, exc_tb),
            )
        return False
