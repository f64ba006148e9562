"""Tests for structured logging, the clock, and the engine helpers."""

import json
import logging
import sys
from datetime import UTC, datetime

from sqlalchemy import create_engine, text

from asset_kernel.db.engine import enable_sqlite_savepoints
from asset_kernel.domain.clock import DeterministicClock
from asset_kernel.exceptions import InvalidJobTransitionError, ParseError
from asset_kernel.logging_config import LogContext, StructuredFormatter, get_logger


def _format(message, exc_info=None, **extra):
    record = logging.LogRecord("asset_pipeline.test", logging.INFO, __file__, 1, message, (), exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(StructuredFormatter().format(record))


class TestStructuredFormatter:
    def test_basic_payload(self):
        payload = _format("job_created", file_id="assets.csv")
        assert payload["message"] == "job_created"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "asset_pipeline.test"
        assert payload["file_id"] == "assets.csv"
        assert "ts" in payload

    def test_context_fields_included(self):
        with LogContext.bind(correlation_id="c-1", job_id="j-1"):
            payload = _format("phase_started")
        assert payload["correlation_id"] == "c-1"
        assert payload["job_id"] == "j-1"

    def test_exception_fields(self):
        try:
            raise InvalidJobTransitionError("j-1", "STAGED", "RUNNING")
        except InvalidJobTransitionError:
            payload = _format("boom", exc_info=sys.exc_info())
        assert payload["exc_type"] == "InvalidJobTransitionError"
        assert payload["exc_code"] == "INVALID_JOB_TRANSITION"
        assert payload["exc_from_status"] == "STAGED"
        assert "traceback" in payload

    def test_get_logger_namespace(self):
        assert get_logger("ingestion.x").name == "asset_pipeline.ingestion.x"


class TestLogContext:
    def test_bind_nests_and_restores(self):
        with LogContext.bind(job_id="outer"):
            with LogContext.bind(job_id="inner", phase="CLEAN"):
                assert LogContext.get_all() == {"job_id": "inner", "phase": "CLEAN"}
            assert LogContext.get_all() == {"job_id": "outer"}
        assert LogContext.get_all() == {}

    def test_none_values_ignored(self):
        with LogContext.bind(job_id="j", phase=None):
            assert LogContext.get_all() == {"job_id": "j"}

    def test_set_and_clear(self):
        LogContext.set(actor_id="a", producer="p")
        assert LogContext.get_all() == {"actor_id": "a", "producer": "p"}
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestExceptions:
    def test_parse_error_message(self):
        error = ParseError("assets.csv", ["Row 2: bad"])
        assert error.code == "CSV_PARSE_ERROR"
        assert "assets.csv" in str(error)


class TestClocks:
    def test_deterministic_clock_advance(self):
        clock = DeterministicClock(datetime(2024, 5, 1, tzinfo=UTC))
        clock.advance(90)
        assert clock.now_utc() == datetime(2024, 5, 1, 0, 1, 30, tzinfo=UTC)


class TestSqliteSavepoints:
    def test_nested_rollback_keeps_outer_work(self, tmp_path):
        eng = create_engine(f"sqlite:///{tmp_path / 'sp.db'}")
        enable_sqlite_savepoints(eng)
        with eng.connect() as conn:
            conn.execute(text("CREATE TABLE t (x INTEGER)"))
            conn.commit()
            with conn.begin():
                conn.execute(text("INSERT INTO t VALUES (1)"))
                nested = conn.begin_nested()
                conn.execute(text("INSERT INTO t VALUES (2)"))
                nested.rollback()
            assert conn.execute(text("SELECT x FROM t")).scalars().all() == [1]
        eng.dispose()
