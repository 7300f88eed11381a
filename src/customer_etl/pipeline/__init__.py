"""
Pipeline orchestration: run lifecycle, concurrency and cancellation.
"""

from .cancellation import CancellationToken
from .orchestrator import PipelineOrchestrator, start_run

__all__ = [
    "CancellationToken",
    "PipelineOrchestrator",
    "start_run",
]
