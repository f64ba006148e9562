"""
ImportJobRunner -- fire-and-forget launch of import jobs.

Contract:
    ``start_import()`` creates the job in its own committed session, then
    processes it on a daemon thread with a fresh session, and returns the
    job id immediately.  Callers poll ``ImportJobService.get_job_status()``.
    ``wait()`` joins a job's thread (tests, shutdown).  A worker that raises
    rolls back and then moves the job to FAILED in a fresh session, so no
    job is left PENDING or RUNNING by a crashed thread.  Finished threads
    drop out of the tracking map on their own.

Architecture: asset_ingestion/services.  One Session per thread; sessions
    are never shared across threads.

Non-goals:
    - No cancellation and no timeout on a running job.
    - No deduplication of concurrent imports of the same file.
"""

from __future__ import annotations

import threading
from typing import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.logging_config import LogContext, get_logger

from asset_ingestion.domain.types import ImportJobStatus
from asset_ingestion.models.staging import ImportJobModel
from asset_ingestion.services.import_service import ImportJobService

logger = get_logger("ingestion.job_runner")

_UNFINISHED = (ImportJobStatus.PENDING.value, ImportJobStatus.RUNNING.value)


class ImportJobRunner:
    """Runs each import job on its own background thread."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        service_factory: Callable[[Session], ImportJobService],
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._service_factory = service_factory
        self._clock = clock or SystemClock()
        self._threads: dict[UUID, threading.Thread] = {}
        self._lock = threading.Lock()

    def start_import(self, file_id: str, actor_id: UUID) -> UUID:
        """Create a PENDING job and start processing it in the background."""
        session = self._session_factory()
        try:
            job = self._service_factory(session).create_job(file_id, actor_id)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        thread = threading.Thread(
            target=self._process,
            args=(job.job_id, actor_id),
            name=f"import-{job.job_id}",
            daemon=True,
        )
        with self._lock:
            self._threads[job.job_id] = thread
        thread.start()
        logger.info("import_started", extra={"job_id": str(job.job_id), "file_id": file_id})
        return job.job_id

    def wait(self, job_id: UUID, timeout: float | None = None) -> bool:
        """Join the job's thread; True if it finished (or was never started here)."""
        with self._lock:
            thread = self._threads.get(job_id)
        if thread is None:
            return True
        thread.join(timeout=timeout)
        finished = not thread.is_alive()
        if finished:
            with self._lock:
                self._threads.pop(job_id, None)
        return finished

    @property
    def active_jobs(self) -> tuple[UUID, ...]:
        with self._lock:
            return tuple(j for j, t in self._threads.items() if t.is_alive())

    def _process(self, job_id: UUID, actor_id: UUID) -> None:
        with LogContext.bind(job_id=str(job_id), actor_id=str(actor_id)):
            try:
                session = self._session_factory()
                try:
                    self._service_factory(session).process_import(job_id)
                    session.commit()
                except Exception as exc:
                    session.rollback()
                    logger.exception("import_worker_failed")
                    self._mark_failed(job_id, exc)
                finally:
                    session.close()
            finally:
                with self._lock:
                    self._threads.pop(job_id, None)

    def _mark_failed(self, job_id: UUID, exc: Exception) -> None:
        """Move a job the worker could not finish to FAILED in a fresh session.

        The worker's rollback returns the job to its last committed status,
        normally PENDING; only PENDING or RUNNING jobs are touched here.
        """
        session = self._session_factory()
        try:
            model = session.get(ImportJobModel, job_id)
            if model is None or model.status not in _UNFINISHED:
                return
            model.status = ImportJobStatus.FAILED.value
            model.errors = [f"Import failed: {exc}"]
            if model.completed_at is None:
                model.completed_at = self._clock.now_utc()
            session.commit()
            logger.warning("import_marked_failed", extra={"error": str(exc)})
        except Exception:
            session.rollback()
            logger.exception("import_mark_failed_error")
        finally:
            session.close()
