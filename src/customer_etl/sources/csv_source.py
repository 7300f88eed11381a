"""
CSV file source with header normalization and optional gzip decompression.
"""

import csv
import gzip
import re
from pathlib import Path
from typing import TextIO

from customer_etl.core.exceptions import MalformedRecordError, SourceConnectivityError
from customer_etl.core.models import RawRecord

from .base import DECODE_ERRORS, RecordSource, has_undecodable_bytes, readable_text

_HEADER_SEPARATORS = re.compile(r"[\s\-]+")


def normalize_header(column: str) -> str:
    """'Customer ID' -> 'customer_id', 'Annual-Revenue' -> 'annual_revenue'"""
    return _HEADER_SEPARATORS.sub("_", column.strip()).lower()


class CSVFileSource(RecordSource):
    """
    Reads customer rows from a CSV file with a header line.

    Files ending in .gz are decompressed transparently. Blank lines are
    skipped. A row whose column count differs from the header, or that holds
    bytes invalid in the file encoding, raises MalformedRecordError carrying
    whatever could be recovered.
    """

    def __init__(
        self,
        path: str | Path,
        delimiter: str = ",",
        encoding: str = "utf-8-sig",
        name: str | None = None,
    ):
        """
        Initialize CSV source.

        Args:
            path: Path to the CSV (or .csv.gz) file
            delimiter: Field delimiter
            encoding: Text encoding (BOM-tolerant by default)
            name: Source name for logs (defaults to the file name)
        """
        self.path = Path(path)
        super().__init__(name or self.path.name)
        self.delimiter = delimiter
        self.encoding = encoding
        self._file: TextIO | None = None
        self._reader = None
        self._header: list[str] | None = None

    @property
    def header(self) -> list[str] | None:
        return self._header

    def _open(self) -> None:
        try:
            if self.path.suffix == ".gz":
                self._file = gzip.open(
                    self.path, "rt", encoding=self.encoding, errors=DECODE_ERRORS, newline=""
                )
            else:
                self._file = open(self.path, "r", encoding=self.encoding, errors=DECODE_ERRORS, newline="")
            self._reader = csv.reader(self._file, delimiter=self.delimiter)
            first_row = next(self._reader, None)
        except (OSError, csv.Error) as e:
            self._release()
            raise SourceConnectivityError(
                f"Cannot open CSV source: {self.path}",
                context={"source_name": self.name, "location": str(self.path)},
                original_exception=e,
            ) from e

        self._header = [normalize_header(column) for column in first_row] if first_row else None

    def _read(self) -> RawRecord | None:
        if self._header is None:
            return None

        try:
            row = next(self._reader, None)
            while row is not None and not any(value.strip() for value in row):
                row = next(self._reader, None)
        except csv.Error as e:
            raise MalformedRecordError(
                f"Unparseable CSV row: {e}",
                line_number=self._reader.line_num,
                context={"source_name": self.name},
                original_exception=e,
            ) from e
        except (OSError, EOFError) as e:
            raise SourceConnectivityError(
                f"Failed reading CSV source: {self.path}",
                context={"source_name": self.name, "location": str(self.path)},
                original_exception=e,
            ) from e

        if row is None:
            return None

        if any(has_undecodable_bytes(value) for value in row):
            raise MalformedRecordError(
                f"Row is not valid {self.encoding} text",
                raw_payload=dict(zip(self._header, (readable_text(value, self.encoding) for value in row))),
                line_number=self._reader.line_num,
                context={"source_name": self.name},
            )

        if len(row) != len(self._header):
            raise MalformedRecordError(
                f"Expected {len(self._header)} columns, got {len(row)}",
                raw_payload=dict(zip(self._header, row)),
                line_number=self._reader.line_num,
                context={"source_name": self.name},
            )

        return dict(zip(self._header, row))

    def _close(self) -> None:
        self._release()

    def _release(self) -> None:
        if self._file is not None:
            self._file.close()
        self._file = None
        self._reader = None
        self._header = None
