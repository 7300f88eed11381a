"""
Record sources.
"""

from .base import RecordSource
from .csv_source import CSVFileSource
from .jsonl_source import JSONLinesSource
from .memory_source import InMemorySource

__all__ = [
    "RecordSource",
    "CSVFileSource",
    "JSONLinesSource",
    "InMemorySource",
]
