"""
In-memory record source for tests, dry runs and embedding.
"""

from typing import Iterable, Mapping

from customer_etl.core.exceptions import SourceConnectivityError
from customer_etl.core.models import RawRecord

from .base import RecordSource


class InMemorySource(RecordSource):
    """
    Serves rows from a list.

    Items that are exceptions are raised when reached instead of returned,
    which lets callers reproduce malformed rows or a connection dropping
    mid-stream:

        InMemorySource([row1, MalformedRecordError("bad row"), row2])
    """

    def __init__(
        self,
        records: Iterable[Mapping[str, str] | Exception],
        name: str = "memory",
        fail_on_open: Exception | None = None,
    ):
        """
        Args:
            records: Rows (or exceptions) in the order they are served
            name: Source name for logs
            fail_on_open: Raised from open() when set, to simulate an unreachable source
        """
        super().__init__(name)
        self.records = list(records)
        self.fail_on_open = fail_on_open
        self.open_count = 0
        self._position = 0

    def _open(self) -> None:
        if self.fail_on_open is not None:
            if isinstance(self.fail_on_open, SourceConnectivityError):
                raise self.fail_on_open
            raise SourceConnectivityError(
                f"Cannot open source {self.name}",
                context={"source_name": self.name},
                original_exception=self.fail_on_open,
            )
        self.open_count += 1
        self._position = 0

    def _read(self) -> RawRecord | None:
        if self._position >= len(self.records):
            return None
        item = self.records[self._position]
        self._position += 1
        if isinstance(item, Exception):
            raise item
        return dict(item)

    def _close(self) -> None:
        pass
