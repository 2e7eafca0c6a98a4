"""Data models for extraction jobs."""

from __future__ import annotations

import os
import re
import threading
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Deque, Dict, FrozenSet, List, Optional, TypedDict

from ..config import (
    ApiRoute,
    DEFAULT_SUBTITLE_LANGUAGE,
    JobCommandStatus,
    JobStatus,
    OperationType,
    TERMINAL_STATUSES,
)
from ..exceptions import InvalidJobTransition, JobValidationError
from ..models.api.errors import ErrorCode
from ..models.api.http import CancelJobEndpointResponse
from ..utils import clean_string, iso_or_none, utc_now_naive

JOB_LOG_LIMIT = 200

_QUALITY_RE = re.compile(r"^\d+$")
_SUBTITLE_LANG_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,31}$")

_ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    JobStatus.PENDING.value: frozenset({JobStatus.RUNNING.value}),
    JobStatus.RUNNING.value: frozenset(
        {
            JobStatus.SUCCEEDED.value,
            JobStatus.FAILED.value,
            JobStatus.CANCELLED.value,
        }
    ),
}


def ensure_transition(job_id: str, current: str, target: str) -> None:
    allowed = _ALLOWED_TRANSITIONS.get(current, frozenset())
    if target not in allowed:
        raise InvalidJobTransition(job_id, current, target)


@dataclass(frozen=True)
class JobRequest:
    """Validated parameters of a job, including the opaque credential blob."""

    url: str
    operation: OperationType = OperationType.VIDEO
    quality: Optional[str] = None
    sub_lang: Optional[str] = None
    credentials: Optional[str] = field(default=None, repr=False)

    @classmethod
    def build(
        cls,
        *,
        url: Optional[str],
        operation: Optional[object] = None,
        quality: Optional[object] = None,
        sub_lang: Optional[str] = None,
        credentials: Optional[str] = None,
    ) -> "JobRequest":
        """Validate raw request fields, raising :class:`JobValidationError`."""

        cleaned_url = clean_string(url)
        if not cleaned_url:
            raise JobValidationError(
                ErrorCode.URL_REQUIRED.value, "url is required", field="url"
            )

        resolved_operation = OperationType.VIDEO
        if clean_string(operation) is not None:
            candidate = OperationType.from_value(operation)
            if candidate is None:
                raise JobValidationError(
                    ErrorCode.OPERATION_UNSUPPORTED.value,
                    f"unsupported operation: {operation}",
                    field="type",
                )
            resolved_operation = candidate

        cleaned_quality = clean_string(quality)
        if cleaned_quality is not None and not _QUALITY_RE.match(cleaned_quality):
            raise JobValidationError(
                ErrorCode.QUALITY_INVALID.value,
                "quality must contain digits only",
                field="quality",
            )

        cleaned_lang = clean_string(sub_lang)
        if cleaned_lang is not None and not _SUBTITLE_LANG_RE.match(cleaned_lang):
            raise JobValidationError(
                ErrorCode.SUBTITLE_LANGUAGE_INVALID.value,
                f"invalid subtitle language: {cleaned_lang}",
                field="subLang",
            )
        if resolved_operation is OperationType.SUBTITLES:
            cleaned_lang = cleaned_lang or DEFAULT_SUBTITLE_LANGUAGE
        else:
            cleaned_lang = None

        return cls(
            url=cleaned_url,
            operation=resolved_operation,
            quality=cleaned_quality,
            sub_lang=cleaned_lang,
            credentials=clean_string(credentials),
        )

    def without_credentials(self) -> "JobRequest":
        return replace(self, credentials=None)


class SerializedJobPayload(TypedDict):
    job_id: str
    status: str
    stage: Optional[str]
    progress: int
    result: Optional[str]
    filename: Optional[str]
    error_message: Optional[str]
    cancel_requested: bool
    operation: str
    url: str
    quality: Optional[str]
    sub_lang: Optional[str]
    created_at: Optional[str]
    started_at: Optional[str]
    finished_at: Optional[str]


class JobLogEntry(TypedDict):
    timestamp: str
    level: str
    message: str


def _empty_log() -> Deque[JobLogEntry]:
    return deque(maxlen=JOB_LOG_LIMIT)


@dataclass
class Job:
    job_id: str
    request: JobRequest
    status: str = JobStatus.PENDING.value
    stage: Optional[str] = None
    progress: int = 0
    result: Optional[str] = None
    error_message: Optional[str] = None
    cancel_requested: bool = False
    created_at: datetime = field(default_factory=utc_now_naive)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    artifact_path: Optional[str] = None
    logs: Deque[JobLogEntry] = field(default_factory=_empty_log)
    cancel_event: threading.Event = field(
        default_factory=threading.Event, repr=False, compare=False
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def filename(self) -> Optional[str]:
        if not self.artifact_path:
            return None
        return os.path.basename(self.artifact_path)

    def copy(self) -> "Job":
        """Return a detached copy safe to hand out of the registry lock."""
        return replace(self, logs=deque(self.logs, maxlen=JOB_LOG_LIMIT))

    def to_payload(self) -> SerializedJobPayload:
        return {
            "job_id": self.job_id,
            "status": self.status,
            "stage": self.stage,
            "progress": self.progress,
            "result": self.result,
            "filename": self.filename,
            "error_message": self.error_message,
            "cancel_requested": self.cancel_requested,
            "operation": self.request.operation.value,
            "url": self.request.url,
            "quality": self.request.quality,
            "sub_lang": self.request.sub_lang,
            "created_at": iso_or_none(self.created_at),
            "started_at": iso_or_none(self.started_at),
            "finished_at": iso_or_none(self.finished_at),
        }

    def log_entries(self) -> List[JobLogEntry]:
        return list(self.logs)


def artifact_reference(job_id: str) -> str:
    return ApiRoute.JOB_FILE.value.format(job_id=job_id)


class JobLookupState(str, Enum):
    FOUND = "found"
    EXPIRED = "expired"
    MISSING = "missing"


@dataclass(frozen=True)
class JobLookup:
    state: JobLookupState
    job: Optional[Job] = None


@dataclass(frozen=True)
class CancelResult:
    job_id: str
    status: JobCommandStatus
    job_status: Optional[str] = None

    def to_payload(self) -> CancelJobEndpointResponse:
        payload: CancelJobEndpointResponse = {
            "job_id": self.job_id,
            "status": self.status.value,
        }
        if self.job_status is not None:
            payload["job_status"] = self.job_status
        return payload


__all__ = [
    "CancelResult",
    "JOB_LOG_LIMIT",
    "Job",
    "JobLogEntry",
    "JobLookup",
    "JobLookupState",
    "JobRequest",
    "SerializedJobPayload",
    "artifact_reference",
    "ensure_transition",
]
