"""
Storage collaborator protocol and extraction DTO.

Contract:
    StorageCollaborator is the pipeline's only window onto file storage and
    the permanent asset store:
        fetch_file_bytes(file_id) -> bytes
        bulk_insert_records(records) -> inserted count
        list_files() -> importable files
    CsvExtraction is the parsed form of one file.

Architecture: asset_ingestion/adapters. No kernel DB imports here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, Sequence, runtime_checkable

from asset_ingestion.domain.types import StoredFile


@runtime_checkable
class StorageCollaborator(Protocol):
    """Protocol for the file store / asset store the pipeline calls into."""

    def fetch_file_bytes(self, file_id: str) -> bytes:
        """Return the raw content of a file.

        Raises:
            FileNotFoundInStorageError: If no such file exists.
        """
        ...

    def bulk_insert_records(self, records: Sequence[dict[str, Any]]) -> int:
        """Insert finished asset records; return how many were inserted.

        All-or-nothing: raises on any failure so the caller can fall back
        to row-by-row insertion.
        """
        ...

    def list_files(self) -> tuple[StoredFile, ...]:
        """List files available for import."""
        ...


@dataclass(frozen=True)
class CsvExtraction:
    """Result of parsing a CSV payload (header list, rows, per-line errors)."""

    columns: tuple[str, ...]
    rows: tuple[dict[str, str], ...]  # do not mutate
    errors: tuple[str, ...] = ()

    @property
    def total_rows(self) -> int:
        return len(self.rows)
