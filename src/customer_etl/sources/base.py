"""
Base class for record sources.

A source is a lazy, finite, restartable sequence of raw customer rows.
"""

import re
from abc import ABC, abstractmethod
from typing import Iterator

from customer_etl.core.models import RawRecord
from customer_etl.observability.logger import get_logger

logger = get_logger(__name__)

# File sources decode with this handler so a bad byte only spoils its own row.
DECODE_ERRORS = "surrogateescape"

_ESCAPED_BYTES = re.compile("[\udc80-\udcff]")


def has_undecodable_bytes(text: str) -> bool:
    return _ESCAPED_BYTES.search(text) is not None


def readable_text(text: str, encoding: str) -> str:
    """Replace bytes escaped by DECODE_ERRORS with U+FFFD."""
    return text.encode(encoding, DECODE_ERRORS).decode(encoding, "replace")


class RecordSource(ABC):
    """
    Abstract record source.

    Subclasses implement _open(), _read() and _close(). Callers use
    open() / next_record() / close(), or the context manager and iterator
    protocols:

        with CSVFileSource("customers.csv") as source:
            for raw in source:
                ...

    next_record() returns None at end of stream. A connectivity failure
    raises SourceConnectivityError; an undecodable row raises
    MalformedRecordError and the following call continues with the next row.
    Calling open() after close() starts over from the first row.
    """

    def __init__(self, name: str):
        self.name = name
        self._is_open = False

    @property
    def is_open(self) -> bool:
        return self._is_open

    def open(self) -> None:
        """
        Open (or reopen) the source at its first row.

        Raises:
            SourceConnectivityError: If the source cannot be reached
        """
        if self._is_open:
            self.close()
        self._open()
        self._is_open = True
        logger.debug("Source opened", extra={"source": self.name})

    def next_record(self) -> RawRecord | None:
        """
        Read the next raw record.

        Returns:
            The next row, or None when the source is exhausted

        Raises:
            SourceConnectivityError: If the source becomes unreachable
            MalformedRecordError: If the next row cannot be decoded
        """
        if not self._is_open:
            self.open()
        return self._read()

    def close(self) -> None:
        """Release underlying resources. Safe to call more than once."""
        if self._is_open:
            self._is_open = False
            self._close()
            logger.debug("Source closed", extra={"source": self.name})

    def __enter__(self) -> "RecordSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __iter__(self) -> Iterator[RawRecord]:
        return self

    def __next__(self) -> RawRecord:
        record = self.next_record()
        if record is None:
            raise StopIteration
        return record

    @abstractmethod
    def _open(self) -> None:
        pass

    @abstractmethod
    def _read(self) -> RawRecord | None:
        pass

    @abstractmethod
    def _close(self) -> None:
        pass
