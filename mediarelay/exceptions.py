"""Custom exceptions used by the job registry and controller."""

from __future__ import annotations


class DownloadCancelled(Exception):
    """Raised at a checkpoint when a job was cancelled by the user."""


class InvalidJobTransition(RuntimeError):
    """Raised when a job is asked to move to a status it cannot reach."""

    def __init__(self, job_id: str, current: str, target: str) -> None:
        super().__init__(f"job {job_id} cannot move from {current} to {target}")
        self.job_id = job_id
        self.current = current
        self.target = target


class JobValidationError(ValueError):
    """Raised when a job request fails validation before registration."""

    def __init__(self, code: str, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.field = field


class DownloadError(RuntimeError):
    """Raised when yt_dlp raises an unexpected exception."""
