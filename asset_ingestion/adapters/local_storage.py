"""
LocalStorageService -- directory-backed files, SQLAlchemy-backed asset store.

Files are served from ``root_dir`` by their file name (the file id).  Records
are written to the ``assets`` table through the caller's session, inside a
SAVEPOINT so a failed bulk insert leaves the outer transaction usable for the
row-by-row fallback.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from asset_kernel.exceptions import FileNotFoundInStorageError
from asset_kernel.logging_config import get_logger

from asset_ingestion.domain.types import StoredFile
from asset_ingestion.models.asset import AssetModel

logger = get_logger("ingestion.local_storage")


class LocalStorageService:
    """StorageCollaborator over a local directory and the assets table."""

    def __init__(
        self,
        root_dir: Path,
        session: Session,
        actor_id: UUID,
        extensions: tuple[str, ...] = (".csv",),
    ):
        self._root = Path(root_dir)
        self._session = session
        self._actor_id = actor_id
        self._extensions = tuple(e.lower() for e in extensions)

    def _resolve(self, file_id: str) -> Path:
        candidate = (self._root / file_id).resolve()
        # Reject ids that escape the storage root
        if self._root.resolve() not in candidate.parents:
            raise FileNotFoundInStorageError(file_id)
        return candidate

    def fetch_file_bytes(self, file_id: str) -> bytes:
        path = self._resolve(file_id)
        if not path.is_file():
            raise FileNotFoundInStorageError(file_id)
        return path.read_bytes()

    def list_files(self) -> tuple[StoredFile, ...]:
        if not self._root.is_dir():
            return ()
        files = sorted(
            p for p in self._root.iterdir()
            if p.is_file() and p.suffix.lower() in self._extensions
        )
        return tuple(
            StoredFile(file_id=p.name, name=p.name, size_bytes=p.stat().st_size)
            for p in files
        )

    def bulk_insert_records(self, records: Sequence[dict[str, Any]]) -> int:
        if not records:
            return 0
        savepoint = self._session.begin_nested()
        try:
            models = [AssetModel.from_record(r, self._actor_id) for r in records]
            self._session.add_all(models)
            self._session.flush()
        except Exception:
            savepoint.rollback()
            raise
        savepoint.commit()
        logger.info("assets_inserted", extra={"count": len(models)})
        return len(models)
