"""
Transactional sinks.
"""

from .base import RecordSink
from .memory_sink import InMemorySink
from .postgres_sink import PostgresSink

__all__ = [
    "RecordSink",
    "InMemorySink",
    "PostgresSink",
]
