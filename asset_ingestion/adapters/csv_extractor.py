"""
CSV extractor: raw bytes -> header list + row dicts.

Uses csv.reader so quoted fields with embedded delimiters and newlines are
handled.  Decodes with utf-8-sig (strips a BOM) by default.  Header names
are trimmed, blank lines are skipped, and a row whose column count
differs from the header is reported and skipped rather than failing the file.
"""

from __future__ import annotations

import csv
import io
from typing import Any

from asset_ingestion.adapters.base import CsvExtraction


_QUOTING = {
    "minimal": csv.QUOTE_MINIMAL,
    "all": csv.QUOTE_ALL,
    "none": csv.QUOTE_NONE,
}


def _get_encoding(options: dict[str, Any]) -> str:
    enc = options.get("encoding", "utf-8")
    if enc.lower() == "utf-8":
        return "utf-8-sig"  # Strip BOM if present
    return enc


def _get_quoting(options: dict[str, Any]) -> int:
    q = options.get("quoting", "minimal")
    if isinstance(q, int):
        return q
    return _QUOTING.get(str(q).lower(), csv.QUOTE_MINIMAL)


class CsvExtractor:
    """Parse a CSV payload held in memory.

    Options: delimiter (default ","), encoding (default utf-8), quoting,
    strip_values (default False; values reach the CLEAN rules untouched).
    """

    def __init__(self, options: dict[str, Any] | None = None):
        self._options = dict(options or {})

    def extract(self, content: bytes | str) -> CsvExtraction:
        if isinstance(content, bytes):
            try:
                text = content.decode(_get_encoding(self._options))
            except UnicodeDecodeError as exc:
                return CsvExtraction(columns=(), rows=(), errors=(f"Failed to read file: {exc}",))
        else:
            text = content

        if not text.strip():
            return CsvExtraction(columns=(), rows=(), errors=("CSV file is empty",))

        reader = csv.reader(
            io.StringIO(text, newline=""),
            delimiter=self._options.get("delimiter", ","),
            quoting=_get_quoting(self._options),
        )

        strip_values = bool(self._options.get("strip_values", False))
        header: list[str] | None = None
        rows: list[dict[str, str]] = []
        errors: list[str] = []

        try:
            for record in reader:
                if not record or all(not cell.strip() for cell in record):
                    continue
                if header is None:
                    header = [cell.strip() for cell in record]
                    continue
                if len(record) != len(header):
                    errors.append(
                        f"Row {len(rows) + len(errors) + 1}: Expected {len(header)} "
                        f"columns but got {len(record)}"
                    )
                    continue
                if strip_values:
                    record = [cell.strip() for cell in record]
                rows.append(dict(zip(header, record)))
        except csv.Error as exc:
            errors.append(f"Failed to read file: {exc}")

        if header is None:
            return CsvExtraction(columns=(), rows=(), errors=("CSV file is empty",))

        return CsvExtraction(columns=tuple(header), rows=tuple(rows), errors=tuple(errors))
