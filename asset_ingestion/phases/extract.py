"""
ExtractPhase -- turn a stored file into header + row dicts.

Reads ``file_id`` from the blob, fetches the bytes through the storage
collaborator and parses them with CsvExtractor.  The synthetic id
``test-file-123`` yields two fixed sample rows without touching storage.

Output keys: ``file_id``, ``rows``, ``columns``, ``total_rows``.
Raises ParseError (reported as a failed outcome) when the file cannot be
parsed into at least one row.  Row-level parse problems on an otherwise
readable file are reported as warnings.
"""

from __future__ import annotations

from typing import Any, Mapping

from asset_kernel.domain.clock import Clock
from asset_kernel.exceptions import ParseError

from asset_ingestion.adapters.base import CsvExtraction, StorageCollaborator
from asset_ingestion.adapters.csv_extractor import CsvExtractor
from asset_ingestion.domain.types import PipelinePhase
from asset_ingestion.phases.base import BasePhase, PhaseContext, PhaseWork

SAMPLE_FILE_ID = "test-file-123"

_SAMPLE_COLUMNS = ("Asset Tag", "Asset Name", "Manufacturer", "Status", "Condition")

_SAMPLE_ROWS = (
    {
        "Asset Tag": "  HVAC-001  ",
        "Asset Name": "\t HVAC Unit 001 \n",
        "Manufacturer": "  TestCorp  ",
        "Status": "active",
        "Condition": "good",
    },
    {
        "Asset Tag": "HVAC-002",
        "Asset Name": "HVAC Unit 002",
        "Manufacturer": "TestCorp",
        "Status": "maintenance",
        "Condition": "fair",
    },
)


def sample_extraction() -> CsvExtraction:
    """The fixed two-row sample served for ``SAMPLE_FILE_ID``."""
    return CsvExtraction(columns=_SAMPLE_COLUMNS, rows=tuple(dict(r) for r in _SAMPLE_ROWS))


class ExtractPhase(BasePhase):
    """EXTRACT: storage bytes -> rows."""

    phase = PipelinePhase.EXTRACT

    def __init__(
        self,
        storage: StorageCollaborator,
        extractor: CsvExtractor | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(clock)
        self._storage = storage
        self._extractor = extractor or CsvExtractor()

    def _run(self, data: Mapping[str, Any], context: PhaseContext) -> PhaseWork:
        file_id = data.get("file_id")
        if not file_id:
            raise ValueError("Invalid input: expected file_id")

        if file_id == SAMPLE_FILE_ID:
            extraction = sample_extraction()
        else:
            extraction = self._extractor.extract(self._storage.fetch_file_bytes(file_id))

        if not extraction.rows and extraction.errors:
            raise ParseError(file_id, extraction.errors)

        rows = [dict(r) for r in extraction.rows]
        output = {
            **data,
            "file_id": file_id,
            "rows": rows,
            "columns": list(extraction.columns),
            "total_rows": extraction.total_rows,
        }

        return PhaseWork(
            data=output,
            processed=len(rows),
            succeeded=len(rows),
            failed=len(extraction.errors),
            warnings=extraction.errors,
            transformations=(
                {
                    "field": "fileStructure",
                    "before": "CSV file",
                    "after": f"{len(rows)} rows with {len(extraction.columns)} columns",
                },
            ),
        )
