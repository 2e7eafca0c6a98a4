"""Authoritative in-memory store of jobs and their lifecycle."""

from __future__ import annotations

import asyncio
import threading
import uuid
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..channels import ChannelManager, ProgressEvent, Subscription
from ..config import (
    ACTIVE_STATUSES,
    JOB_RETENTION_SECONDS,
    JOB_TOMBSTONE_LIMIT,
    JobCommandStatus,
    JobStatus,
    TerminalReason,
)
from ..log_config import debug_verbose, verbose_log
from ..models.api.http import JobCounts
from ..utils import now_iso, utc_now_naive
from .models import (
    CancelResult,
    Job,
    JobLookup,
    JobLookupState,
    JobRequest,
    artifact_reference,
    ensure_transition,
)
from .stages import JobStage

CANCELLED_MESSAGE = "download cancelled"


class JobRegistry:
    """Creates, tracks and terminates jobs.

    Every read and mutation goes through one re-entrant lock, and channel
    events are published while that lock is held, so the order subscribers
    observe for a job is the order in which its mutations happened.
    """

    def __init__(
        self,
        channels: ChannelManager,
        *,
        retention_seconds: int = JOB_RETENTION_SECONDS,
        tombstone_limit: int = JOB_TOMBSTONE_LIMIT,
        on_purge: Optional[Callable[[Job], None]] = None,
        clock: Callable[[], datetime] = utc_now_naive,
    ) -> None:
        self.channels = channels
        self._retention = timedelta(seconds=retention_seconds)
        self._tombstone_limit = max(1, tombstone_limit)
        self._on_purge = on_purge
        self._clock = clock
        self._lock = threading.RLock()
        self._jobs: Dict[str, Job] = {}
        self._tombstones: "OrderedDict[str, None]" = OrderedDict()

    # ------------------------------------------------------------------
    # Client-facing operations
    # ------------------------------------------------------------------
    def create(self, request: JobRequest) -> Job:
        """Register a new pending job for an already validated request."""
        self.purge_expired()
        with self._lock:
            job_id = self._allocate_id()
            job = Job(job_id=job_id, request=request.without_credentials())
            self._jobs[job_id] = job
            snapshot = job.copy()
        verbose_log(
            "job_created",
            {
                "job_id": job_id,
                "operation": request.operation.value,
                "url": request.url,
            },
        )
        return snapshot

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.copy() if job else None

    def lookup(self, job_id: str) -> JobLookup:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is not None:
                return JobLookup(JobLookupState.FOUND, job.copy())
            if job_id in self._tombstones:
                return JobLookup(JobLookupState.EXPIRED)
            return JobLookup(JobLookupState.MISSING)

    def counts(self) -> JobCounts:
        with self._lock:
            status_counts: Dict[str, int] = {status.value: 0 for status in JobStatus}
            for job in self._jobs.values():
                status_counts[job.status] = status_counts.get(job.status, 0) + 1
            active = sum(status_counts[status] for status in ACTIVE_STATUSES)
            return {
                "total": len(self._jobs),
                "active": active,
                "status_counts": status_counts,
            }

    def request_cancel(self, job_id: str) -> CancelResult:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return CancelResult(job_id, JobCommandStatus.NOT_FOUND)
            if job.is_terminal:
                return CancelResult(
                    job_id, JobCommandStatus.ALREADY_TERMINAL, job.status
                )
            job.cancel_requested = True
            job.cancel_event.set()
            status = job.status
        verbose_log("job_cancel_requested", {"job_id": job_id, "status": status})
        return CancelResult(job_id, JobCommandStatus.CANCEL_REQUESTED, status)

    def is_cancel_requested(self, job_id: str) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            return bool(job and job.cancel_requested)

    def subscribe(
        self, job_id: str, loop: asyncio.AbstractEventLoop
    ) -> Optional[Subscription]:
        """Register a subscription preloaded with the job's current snapshot.

        Returns ``None`` when the job is not registered.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            subscription = self.channels.subscribe(job_id, loop)
            if job.stage:
                subscription.deliver(ProgressEvent.stage(job_id, job.stage))
            subscription.deliver(ProgressEvent.progress(job_id, job.progress))
            if job.is_terminal:
                subscription.deliver(self._terminal_event(job))
                self.channels.unsubscribe(subscription)
            return subscription

    # ------------------------------------------------------------------
    # Execution-side mutators
    # ------------------------------------------------------------------
    def mark_running(self, job_id: str) -> Job:
        with self._lock:
            job = self._require(job_id)
            ensure_transition(job_id, job.status, JobStatus.RUNNING.value)
            job.status = JobStatus.RUNNING.value
            job.started_at = self._clock()
            snapshot = job.copy()
        verbose_log("job_running", {"job_id": job_id})
        return snapshot

    def set_stage(self, job_id: str, stage: str) -> bool:
        """Update the stage label, publishing only when it changes."""
        label = stage.value if isinstance(stage, JobStage) else str(stage)
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.RUNNING.value:
                return False
            if job.stage == label:
                return False
            job.stage = label
            self.channels.publish(ProgressEvent.stage(job_id, label))
            return True

    def set_progress(self, job_id: str, value: float) -> bool:
        """Raise the job's progress; lower or unchanged values are ignored."""
        clamped = int(max(0.0, min(float(value), 100.0)))
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.RUNNING.value:
                return False
            if clamped <= job.progress:
                return False
            job.progress = clamped
            self.channels.publish(ProgressEvent.progress(job_id, clamped))
            return True

    def finish(
        self,
        job_id: str,
        status: JobStatus | str,
        *,
        artifact_path: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> Job:
        """Apply the single terminal transition and publish its terminal event."""
        target = status.value if isinstance(status, JobStatus) else str(status)
        with self._lock:
            job = self._require(job_id)
            ensure_transition(job_id, job.status, target)
            if target == JobStatus.SUCCEEDED.value:
                if job.progress < 100:
                    job.progress = 100
                    self.channels.publish(ProgressEvent.progress(job_id, 100))
                if job.stage != JobStage.COMPLETED.value:
                    job.stage = JobStage.COMPLETED.value
                    self.channels.publish(
                        ProgressEvent.stage(job_id, JobStage.COMPLETED.value)
                    )
                job.artifact_path = artifact_path
                job.result = artifact_reference(job_id)
            elif target == JobStatus.FAILED.value:
                job.error_message = error_message or "download failed"
            job.status = target
            job.finished_at = self._clock()
            self.channels.publish(self._terminal_event(job))
            snapshot = job.copy()
        verbose_log(
            "job_finished",
            {
                "job_id": job_id,
                "status": target,
                "error": snapshot.error_message,
                "artifact": snapshot.artifact_path,
            },
        )
        return snapshot

    def append_log(self, job_id: str, level: str, message: str) -> None:
        entry = {"timestamp": now_iso(), "level": level, "message": message}
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job.logs.append(entry)  # type: ignore[arg-type]
        debug_verbose("job_log", {"job_id": job_id, **entry})

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------
    def purge_expired(self, now: Optional[datetime] = None) -> List[str]:
        """Drop terminal jobs past retention that nobody is subscribed to."""
        current = now or self._clock()
        purged: List[Job] = []
        with self._lock:
            for job_id, job in list(self._jobs.items()):
                if not job.is_terminal or job.finished_at is None:
                    continue
                if job.finished_at + self._retention > current:
                    continue
                if self.channels.has_subscribers(job_id):
                    continue
                del self._jobs[job_id]
                self._remember_tombstone(job_id)
                purged.append(job)
        for job in purged:
            verbose_log("job_purged", {"job_id": job.job_id, "status": job.status})
            if self._on_purge is not None:
                self._on_purge(job)
        return [job.job_id for job in purged]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _allocate_id(self) -> str:
        while True:
            candidate = str(uuid.uuid4())
            if candidate not in self._jobs and candidate not in self._tombstones:
                return candidate

    def _remember_tombstone(self, job_id: str) -> None:
        self._tombstones[job_id] = None
        while len(self._tombstones) > self._tombstone_limit:
            self._tombstones.popitem(last=False)

    def _require(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise KeyError(job_id)
        return job

    @staticmethod
    def _terminal_event(job: Job) -> ProgressEvent:
        if job.status == JobStatus.SUCCEEDED.value:
            return ProgressEvent.ready(
                job.job_id, job.result or artifact_reference(job.job_id), job.filename
            )
        if job.status == JobStatus.CANCELLED.value:
            return ProgressEvent.error(
                job.job_id, CANCELLED_MESSAGE, TerminalReason.CANCELLED.value
            )
        return ProgressEvent.error(
            job.job_id,
            job.error_message or "download failed",
            TerminalReason.FAILED.value,
        )


__all__ = ["CANCELLED_MESSAGE", "JobRegistry"]
