"""
JSON Lines file source: one JSON object per line.
"""

import gzip
import json
from pathlib import Path
from typing import Any, TextIO

from customer_etl.core.exceptions import MalformedRecordError, SourceConnectivityError
from customer_etl.core.models import RawRecord

from .base import DECODE_ERRORS, RecordSource, has_undecodable_bytes, readable_text
from .csv_source import normalize_header


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class JSONLinesSource(RecordSource):
    """
    Reads customer rows from a JSON Lines file (optionally .gz).

    Scalar values are converted to strings so rows look exactly like CSV
    rows downstream. Lines that are not valid text in the file encoding, are
    not JSON objects, or hold nested values raise MalformedRecordError.
    """

    def __init__(self, path: str | Path, encoding: str = "utf-8", name: str | None = None):
        self.path = Path(path)
        super().__init__(name or self.path.name)
        self.encoding = encoding
        self._file: TextIO | None = None
        self._line_number = 0

    def _open(self) -> None:
        try:
            if self.path.suffix == ".gz":
                self._file = gzip.open(self.path, "rt", encoding=self.encoding, errors=DECODE_ERRORS)
            else:
                self._file = open(self.path, "r", encoding=self.encoding, errors=DECODE_ERRORS)
        except OSError as e:
            raise SourceConnectivityError(
                f"Cannot open JSON Lines source: {self.path}",
                context={"source_name": self.name, "location": str(self.path)},
                original_exception=e,
            ) from e
        self._line_number = 0

    def _read(self) -> RawRecord | None:
        while True:
            try:
                line = self._file.readline()
            except (OSError, EOFError) as e:
                raise SourceConnectivityError(
                    f"Failed reading JSON Lines source: {self.path}",
                    context={"source_name": self.name, "location": str(self.path)},
                    original_exception=e,
                ) from e

            if not line:
                return None
            self._line_number += 1
            if line.strip():
                return self._decode(line)

    def _decode(self, line: str) -> RawRecord:
        if has_undecodable_bytes(line):
            raise MalformedRecordError(
                f"Line is not valid {self.encoding} text",
                raw_payload={"_line": readable_text(line, self.encoding).rstrip("\n")},
                line_number=self._line_number,
                context={"source_name": self.name},
            )

        try:
            document = json.loads(line)
        except json.JSONDecodeError as e:
            raise MalformedRecordError(
                f"Invalid JSON: {e.msg}",
                raw_payload={"_line": line.rstrip("\n")},
                line_number=self._line_number,
                context={"source_name": self.name},
                original_exception=e,
            ) from e

        if not isinstance(document, dict):
            raise MalformedRecordError(
                f"Expected a JSON object, got {type(document).__name__}",
                raw_payload={"_line": line.rstrip("\n")},
                line_number=self._line_number,
                context={"source_name": self.name},
            )

        nested = [key for key, value in document.items() if isinstance(value, (dict, list))]
        if nested:
            raise MalformedRecordError(
                f"Nested values are not supported: {', '.join(nested)}",
                raw_payload={"_line": line.rstrip("\n")},
                line_number=self._line_number,
                context={"source_name": self.name},
            )

        return {normalize_header(str(key)): _as_text(value) for key, value in document.items()}

    def _close(self) -> None:
        if self._file is not None:
            self._file.close()
        self._file = None
