"""
Pytest fixtures for the asset import pipeline test suite.

Provides:
- Structured logging configured once per session, LogContext cleared per test
- In-memory SQLite engine with every table created once per session
- Per-test session inside an outer transaction that is rolled back
- Deterministic clock, actor id, default pipeline settings
- InMemoryStorage, a StorageCollaborator holding files and inserted assets
  in memory
"""

import json
import logging
from io import StringIO
from typing import Any, Sequence
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from asset_config import get_pipeline_settings
from asset_kernel.db.engine import create_tables, init_engine_from_url, reset_engine
from asset_kernel.domain.clock import DeterministicClock
from asset_kernel.exceptions import FileNotFoundInStorageError
from asset_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

from asset_ingestion.domain.types import StoredFile

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

SAMPLE_CSV = (
    "Asset Tag,Asset Name,Manufacturer,Status,Condition,Purchase Date,Purchase Cost\n"
    "  A-001 , Pump One ,Acme,active,good,2023-01-15,\"$1,500.00\"\n"
    "A-002,Pump Two,Acme,pending,fair,01/31/2022,250\n"
    "A-003,Pump Three,Acme,reserved,damaged,,\n"
    ",Missing Tag,Acme,active,good,,\n"
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture asset_pipeline logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.orchestrate("test-file-123")
            logs = captured_logs()
            assert any(r["message"] == "orchestration_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("asset_pipeline")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single in-memory SQLite engine for the entire test session."""
    eng = init_engine_from_url("sqlite://")
    create_tables()
    yield eng
    reset_engine()


@pytest.fixture
def session(db_engine) -> Session:
    """Session whose work is rolled back after the test.

    Service code may open SAVEPOINTs freely; the outer transaction is never
    committed.
    """
    connection = db_engine.connect()
    transaction = connection.begin()
    sess = Session(
        bind=connection,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )
    yield sess
    sess.close()
    if transaction.is_active:
        transaction.rollback()
    connection.close()


# =============================================================================
# Common collaborators
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def test_actor_id():
    return TEST_ACTOR_ID


@pytest.fixture(scope="session")
def settings():
    return get_pipeline_settings()


class InMemoryStorage:
    """StorageCollaborator keeping files and inserted assets in memory.

    ``fail_bulk`` makes every multi-record insert raise, forcing callers onto
    their row-by-row path.  Records whose ``asset_tag`` is in
    ``rejected_tags`` always fail.
    """

    def __init__(self, files: dict[str, str] | None = None):
        self.files: dict[str, bytes] = {
            k: v.encode("utf-8") for k, v in (files or {}).items()
        }
        self.inserted: list[dict[str, Any]] = []
        self.fail_bulk = False
        self.rejected_tags: set[str] = set()
        self.bulk_calls = 0

    def add_file(self, file_id: str, content: str | bytes) -> None:
        self.files[file_id] = content.encode("utf-8") if isinstance(content, str) else content

    def fetch_file_bytes(self, file_id: str) -> bytes:
        try:
            return self.files[file_id]
        except KeyError:
            raise FileNotFoundInStorageError(file_id) from None

    def bulk_insert_records(self, records: Sequence[dict[str, Any]]) -> int:
        self.bulk_calls += 1
        if self.fail_bulk and len(records) > 1:
            raise RuntimeError("bulk insert rejected")
        for record in records:
            if record.get("asset_tag") in self.rejected_tags:
                raise ValueError(f"duplicate asset_tag {record['asset_tag']}")
        self.inserted.extend(dict(r) for r in records)
        return len(records)

    def list_files(self) -> tuple[StoredFile, ...]:
        return tuple(
            StoredFile(file_id=k, name=k, size_bytes=len(v))
            for k, v in sorted(self.files.items())
        )


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage({"assets.csv": SAMPLE_CSV})
