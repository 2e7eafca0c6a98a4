from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Canonical error identifiers shared across HTTP and websocket APIs."""

    URL_REQUIRED = "url_required"
    OPERATION_UNSUPPORTED = "operation_unsupported"
    QUALITY_INVALID = "quality_invalid"
    SUBTITLE_LANGUAGE_INVALID = "subtitle_language_invalid"
    COOKIES_INVALID = "cookies_invalid"
    INVALID_JSON_PAYLOAD = "invalid_json_payload"
    JOB_NOT_FOUND = "job_not_found"
    JOB_EXPIRED = "job_expired"
    PROBE_FAILED = "probe_failed"
    ARTIFACT_UNAVAILABLE = "artifact_unavailable"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return str(self.value)


__all__ = ["ErrorCode"]
