"""
Batching and loading: batcher, retry policy, loader and quarantine log.
"""

from .batcher import Batcher
from .loader import BatchLoader
from .quarantine import QuarantineLog
from .retry import RetryPolicy, equal_jitter, full_jitter, no_jitter

__all__ = [
    "Batcher",
    "BatchLoader",
    "QuarantineLog",
    "RetryPolicy",
    "equal_jitter",
    "full_jitter",
    "no_jitter",
]
