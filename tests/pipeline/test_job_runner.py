"""
Tests for ImportJobRunner.

Uses a file-backed SQLite database so the worker thread's session sees the
job committed by the launching session.
"""

import threading
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import asset_ingestion.models  # noqa: F401  (registers tables)
from asset_kernel.db.base import Base
from asset_kernel.db.engine import enable_sqlite_savepoints

from asset_ingestion.domain.types import ImportJobStatus
from asset_ingestion.services.import_service import ImportJobService
from asset_ingestion.services.job_runner import ImportJobRunner


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'runner.db'}",
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def runner(session_factory, storage, settings):
    return ImportJobRunner(
        session_factory,
        lambda session: ImportJobService(session, storage, settings=settings),
    )


class TestImportJobRunner:
    def test_job_processed_in_background(self, runner, session_factory, storage, settings, test_actor_id):
        job_id = runner.start_import("assets.csv", test_actor_id)

        assert runner.wait(job_id, timeout=30)
        assert runner.active_jobs == ()

        with session_factory() as session:
            job = ImportJobService(session, storage, settings=settings).get_job(job_id)
        assert job.status == ImportJobStatus.STAGED
        assert job.total_rows == 4
        assert job.processed_rows == 3

    def test_failed_file_marks_job_failed(self, runner, session_factory, storage, settings, test_actor_id):
        job_id = runner.start_import("missing.csv", test_actor_id)
        assert runner.wait(job_id, timeout=30)

        with session_factory() as session:
            job = ImportJobService(session, storage, settings=settings).get_job(job_id)
        assert job.status == ImportJobStatus.FAILED
        assert job.errors[0].startswith("EXTRACT failed:")

    def test_worker_exception_marks_job_failed(
        self, session_factory, storage, settings, test_actor_id, captured_logs, deterministic_clock
    ):
        calls = []

        def factory(session):
            calls.append(session)
            if len(calls) > 1:
                raise RuntimeError("no service for you")
            return ImportJobService(session, storage, settings=settings)

        runner = ImportJobRunner(session_factory, factory, clock=deterministic_clock)
        job_id = runner.start_import("assets.csv", test_actor_id)
        assert runner.wait(job_id, timeout=30)

        failures = [r for r in captured_logs() if r["message"] == "import_worker_failed"]
        assert len(failures) == 1
        assert failures[0]["job_id"] == str(job_id)
        assert failures[0]["exc_message"] == "no service for you"

        with session_factory() as session:
            job = ImportJobService(session, storage, settings=settings).get_job(job_id)
        assert job.status == ImportJobStatus.FAILED
        assert job.errors == ("Import failed: no service for you",)
        assert job.completed_at is not None

    def test_failed_worker_job_is_cleanable(
        self, session_factory, storage, settings, test_actor_id, deterministic_clock
    ):
        def factory(session):
            if factory.calls:
                raise RuntimeError("worker down")
            factory.calls += 1
            return ImportJobService(session, storage, settings=settings, clock=deterministic_clock)

        factory.calls = 0
        runner = ImportJobRunner(session_factory, factory, clock=deterministic_clock)
        job_id = runner.start_import("assets.csv", test_actor_id)
        assert runner.wait(job_id, timeout=30)

        deterministic_clock.advance(seconds=25 * 3600)
        with session_factory() as session:
            result = ImportJobService(
                session, storage, settings=settings, clock=deterministic_clock
            ).cleanup_old_jobs(24)
            session.commit()
        assert result.jobs_deleted == 1

    def test_finished_threads_are_forgotten_without_wait(self, runner, test_actor_id):
        job_ids = [runner.start_import("assets.csv", test_actor_id) for _ in range(3)]

        names = {f"import-{job_id}" for job_id in job_ids}
        for thread in threading.enumerate():
            if thread.name in names:
                thread.join(timeout=30)

        assert runner.active_jobs == ()
        assert runner._threads == {}

    def test_wait_for_unknown_job(self, runner):
        assert runner.wait(uuid4())
