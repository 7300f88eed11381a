"""
Observability: structured logging and metrics.
"""

from .logger import get_logger, log_operation, setup_logger
from .metrics import MetricsCollector, start_metrics_server

__all__ = [
    "get_logger",
    "log_operation",
    "setup_logger",
    "MetricsCollector",
    "start_metrics_server",
]
