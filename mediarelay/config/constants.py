from __future__ import annotations

from enum import Enum
from typing import Final, FrozenSet, Optional

from .environment import get_server_environment

# ---------------------------------------------------------------------------
# Application bootstrap defaults
# ---------------------------------------------------------------------------
_SERVER_ENV = get_server_environment()

DEFAULT_HOST: Final[str] = _SERVER_ENV.host
DEFAULT_PORT: Final[int] = _SERVER_ENV.port
DEFAULT_LOG_LEVEL: Final[str] = _SERVER_ENV.log_level
DATA_FOLDER: Final[str] = _SERVER_ENV.data_folder
CACHE_FOLDER: Final[str] = _SERVER_ENV.cache_folder
DOWNLOAD_FOLDER: Final[str] = _SERVER_ENV.download_folder
JOB_RETENTION_SECONDS: Final[int] = _SERVER_ENV.job_retention_seconds
JOB_TOMBSTONE_LIMIT: Final[int] = _SERVER_ENV.job_tombstone_limit
SSE_HEARTBEAT_SECONDS: Final[int] = _SERVER_ENV.sse_heartbeat_seconds

# ---------------------------------------------------------------------------
# API routing conventions
# ---------------------------------------------------------------------------
API_PREFIX: Final[str] = "/api"
HEALTH_CHECK_PATH: Final[str] = "/"


class ApiRoute(str, Enum):
    INFO = f"{API_PREFIX}/info"
    JOBS = f"{API_PREFIX}/jobs"
    JOB_DETAIL = f"{API_PREFIX}/jobs/{{job_id}}"
    JOB_CANCEL = f"{API_PREFIX}/jobs/{{job_id}}/cancel"
    JOB_EVENTS = f"{API_PREFIX}/jobs/{{job_id}}/events"
    JOB_FILE = f"{API_PREFIX}/jobs/{{job_id}}/file"
    WS_JOB = "/ws/jobs/{job_id}"


# ---------------------------------------------------------------------------
# Job lifecycle constants
# ---------------------------------------------------------------------------
class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    CANCELLED = "cancelled"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class JobCommandStatus(str, Enum):
    NOT_FOUND = "not_found"
    CANCEL_REQUESTED = "cancel_requested"
    ALREADY_TERMINAL = "already_terminal"


class OperationType(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"
    SUBTITLES = "subs"
    THUMBNAIL = "thumb"

    @classmethod
    def from_value(cls, value: object) -> Optional["OperationType"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        token = value.strip().lower()
        if not token:
            return None
        token = _OPERATION_ALIASES.get(token, token)
        for operation in cls:
            if operation.value == token:
                return operation
        return None


_OPERATION_ALIASES: Final[dict[str, str]] = {
    "subtitles": OperationType.SUBTITLES.value,
    "subtitle": OperationType.SUBTITLES.value,
    "thumbnail": OperationType.THUMBNAIL.value,
}

DEFAULT_SUBTITLE_LANGUAGE: Final[str] = "en"

TERMINAL_STATUSES: Final[FrozenSet[str]] = frozenset(
    {
        JobStatus.SUCCEEDED.value,
        JobStatus.FAILED.value,
        JobStatus.CANCELLED.value,
    }
)
ACTIVE_STATUSES: Final[FrozenSet[str]] = frozenset(
    {JobStatus.PENDING.value, JobStatus.RUNNING.value}
)


# ---------------------------------------------------------------------------
# Progress channel events
# ---------------------------------------------------------------------------
class ProgressEventType(str, Enum):
    PROGRESS = "progress"
    STAGE = "stage"
    READY = "ready"
    ERROR = "error"


TERMINAL_EVENTS: Final[FrozenSet[str]] = frozenset(
    {ProgressEventType.READY.value, ProgressEventType.ERROR.value}
)


class TerminalReason(str, Enum):
    FAILED = JobStatus.FAILED.value
    CANCELLED = JobStatus.CANCELLED.value


__all__ = [
    "ACTIVE_STATUSES",
    "API_PREFIX",
    "ApiRoute",
    "CACHE_FOLDER",
    "DATA_FOLDER",
    "DEFAULT_HOST",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_PORT",
    "DEFAULT_SUBTITLE_LANGUAGE",
    "DOWNLOAD_FOLDER",
    "HEALTH_CHECK_PATH",
    "JOB_RETENTION_SECONDS",
    "JOB_TOMBSTONE_LIMIT",
    "JobCommandStatus",
    "JobStatus",
    "OperationType",
    "ProgressEventType",
    "SSE_HEARTBEAT_SECONDS",
    "TERMINAL_EVENTS",
    "TERMINAL_STATUSES",
    "TerminalReason",
]
