"""Starts jobs on worker threads and reconciles their outcome with the registry."""

from __future__ import annotations

import os
import shutil
import threading
from typing import Any, Dict, Optional, Protocol, Tuple

from ..config import DOWNLOAD_FOLDER, JobStatus
from ..exceptions import DownloadCancelled, DownloadError, InvalidJobTransition
from ..log_config import verbose_log
from ..utils import strip_ansi
from .job_logger import JobLogger
from .models import CancelResult, Job, JobRequest
from .registry import JobRegistry


def remove_job_workdir(download_root: str, job_id: str) -> None:
    workdir = os.path.join(download_root, job_id)
    if not os.path.isdir(workdir):
        return
    try:
        shutil.rmtree(workdir)
    except OSError as exc:
        verbose_log("workdir_cleanup_failed", {"job_id": job_id, "error": repr(exc)})


class ExecutionBackend(Protocol):
    def execute(
        self,
        request: JobRequest,
        workdir: str,
        reporter: "JobReporter",
        *,
        logger: Any = None,
    ) -> str: ...


class JobReporter:
    """Bridges backend callbacks to registry mutations for one job."""

    def __init__(self, registry: JobRegistry, job: Job) -> None:
        self._registry = registry
        self.job_id = job.job_id
        self._cancel_event = job.cancel_event

    def stage(self, label: str) -> None:
        self._registry.set_stage(self.job_id, label)

    def progress(self, percent: float) -> None:
        self._registry.set_progress(self.job_id, percent)

    def checkpoint(self) -> None:
        if self._cancel_event.is_set():
            raise DownloadCancelled(self.job_id)

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()


class JobController:
    """Runs each job's backend execution in its own daemon thread."""

    def __init__(
        self,
        registry: JobRegistry,
        backend: ExecutionBackend,
        *,
        download_root: str = DOWNLOAD_FOLDER,
    ) -> None:
        self.registry = registry
        self.backend = backend
        self.download_root = download_root
        self._threads: Dict[str, threading.Thread] = {}
        self._threads_lock = threading.Lock()

    def start(self, request: JobRequest) -> Job:
        """Register a job for ``request`` and launch its execution."""
        job = self.registry.create(request)
        self._spawn_worker(job, request)
        return job

    def cancel(self, job_id: str) -> CancelResult:
        return self.registry.request_cancel(job_id)

    def workdir_for(self, job_id: str) -> str:
        return os.path.join(self.download_root, job_id)

    def join(self, job_id: str, timeout: Optional[float] = None) -> bool:
        """Wait for a job's worker thread; returns False if it is still alive."""
        with self._threads_lock:
            thread = self._threads.get(job_id)
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    def _spawn_worker(self, job: Job, request: JobRequest) -> None:
        thread = threading.Thread(
            target=self._run,
            args=(job, request),
            name=f"job-{job.job_id}",
            daemon=True,
        )
        with self._threads_lock:
            self._threads[job.job_id] = thread
        thread.start()

    def _run(self, job: Job, request: JobRequest) -> None:
        job_id = job.job_id
        try:
            self.registry.mark_running(job_id)
        except (InvalidJobTransition, KeyError) as exc:
            verbose_log("job_start_skipped", {"job_id": job_id, "error": repr(exc)})
            self._forget_thread(job_id)
            return

        reporter = JobReporter(self.registry, job)
        workdir = self.workdir_for(job_id)
        artifact: Optional[str] = None
        status = JobStatus.SUCCEEDED
        error: Optional[str] = None
        try:
            reporter.checkpoint()
            artifact = self.backend.execute(
                request,
                workdir,
                reporter,
                logger=JobLogger(self.registry, job_id),
            )
        except DownloadCancelled:
            status = JobStatus.CANCELLED
        except DownloadError as exc:
            status, error = JobStatus.FAILED, self._describe(exc)
        except Exception as exc:  # noqa: BLE001 - any backend failure ends the job
            verbose_log(
                "job_execution_crashed", {"job_id": job_id, "error": repr(exc)}
            )
            status, error = JobStatus.FAILED, self._describe(exc)

        status, error = self._resolve_final_status(reporter, status, error)
        try:
            if status is JobStatus.SUCCEEDED:
                self.registry.finish(job_id, status, artifact_path=artifact)
            else:
                self.registry.finish(job_id, status, error_message=error)
        finally:
            if status is not JobStatus.SUCCEEDED:
                self._remove_workdir(job_id)
            self._forget_thread(job_id)

    @staticmethod
    def _resolve_final_status(
        reporter: JobReporter, status: JobStatus, error: Optional[str]
    ) -> Tuple[JobStatus, Optional[str]]:
        """A requested cancellation wins over whatever the backend reported."""
        if reporter.cancelled:
            return JobStatus.CANCELLED, None
        return status, error

    @staticmethod
    def _describe(exc: BaseException) -> str:
        text = strip_ansi(str(exc))
        if not text:
            return exc.__class__.__name__
        if text.startswith("ERROR: "):
            text = text[len("ERROR: ") :]
        return text

    def _remove_workdir(self, job_id: str) -> None:
        remove_job_workdir(self.download_root, job_id)

    def _forget_thread(self, job_id: str) -> None:
        with self._threads_lock:
            self._threads.pop(job_id, None)


__all__ = ["ExecutionBackend", "JobController", "JobReporter", "remove_job_workdir"]
