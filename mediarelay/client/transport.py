"""HTTP transport used by the client session to talk to the server."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

import requests

from ..config import ApiRoute, TERMINAL_EVENTS
from ..core.media_info import MediaInfo
from ..log_config import verbose_log
from .sse import parse_sse

REQUEST_TIMEOUTS: Tuple[float, float] = (5.0, 30.0)
# Must stay above the server heartbeat interval.
STREAM_TIMEOUTS: Tuple[float, float] = (5.0, 60.0)


class TransportError(RuntimeError):
    """Raised when a request cannot be completed or the server refuses it."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class JobRejected(TransportError):
    """The server refused to create a job (validation failure)."""


class ConnectionLost(TransportError):
    """The event stream ended without delivering a terminal event."""


@dataclass(frozen=True)
class StreamEvent:
    event: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def terminal(self) -> bool:
        return self.event in TERMINAL_EVENTS


def _error_from_response(response: requests.Response, default: str) -> Tuple[str, Optional[str]]:
    try:
        body = response.json()
    except ValueError:
        return default, None
    if not isinstance(body, Mapping):
        return default, None
    code = body.get("error")
    detail = body.get("detail")
    if isinstance(detail, str) and detail:
        message = detail
    elif detail:
        message = f"{code}: {detail}"
    else:
        message = str(code or default)
    return message, str(code) if code else None


class EventStream:
    """Iterable view of one job's SSE subscription.

    Iteration stops after the terminal event. Ending any other way raises
    :class:`ConnectionLost` unless :meth:`close` was called first.
    """

    def __init__(self, job_id: str, response: requests.Response) -> None:
        self.job_id = job_id
        self._response = response
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._response.close()

    def __iter__(self) -> Iterator[StreamEvent]:
        if self._response.encoding is None:
            self._response.encoding = "utf-8"
        lines = self._response.iter_lines(chunk_size=None, decode_unicode=True)
        try:
            for message in parse_sse(lines):
                if self.closed:
                    return
                payload = message.json()
                event = StreamEvent(
                    message.event, dict(payload) if isinstance(payload, Mapping) else {}
                )
                yield event
                if event.terminal:
                    return
        except Exception as exc:  # noqa: BLE001 - any read failure ends the stream
            if self.closed:
                return
            verbose_log("client_stream_failed", {"job_id": self.job_id, "error": repr(exc)})
            raise ConnectionLost(f"connection lost: {exc}") from exc
        if not self.closed:
            raise ConnectionLost("connection lost")


class HttpTransport:
    """``requests`` based implementation of the session transport."""

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: Tuple[float, float] = REQUEST_TIMEOUTS,
        stream_timeout: Tuple[float, float] = STREAM_TIMEOUTS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.stream_timeout = stream_timeout

    def _url(self, route: ApiRoute, **params: str) -> str:
        return self.base_url + route.value.format(**params)

    def _post(self, url: str, payload: Optional[Mapping[str, Any]] = None) -> requests.Response:
        try:
            return self.session.post(url, json=dict(payload or {}), timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"request failed: {exc}") from exc

    def probe(self, url: str, cookies: Optional[str] = None) -> MediaInfo:
        payload: Dict[str, Any] = {"url": url}
        if cookies:
            payload["cookies"] = cookies
        response = self._post(self._url(ApiRoute.INFO), payload)
        if response.status_code != 200:
            message, code = _error_from_response(response, "probe failed")
            raise TransportError(message, code=code, status_code=response.status_code)
        return MediaInfo.from_payload(response.json())

    def create_job(self, payload: Mapping[str, Any]) -> str:
        response = self._post(self._url(ApiRoute.JOBS), payload)
        if response.status_code != 201:
            message, code = _error_from_response(response, "job rejected")
            error_cls = JobRejected if 400 <= response.status_code < 500 else TransportError
            raise error_cls(message, code=code, status_code=response.status_code)
        body = response.json()
        job_id = body.get("jobId") or body.get("job_id")
        if not job_id:
            raise TransportError("server response did not include a job id")
        return str(job_id)

    def cancel_job(self, job_id: str) -> Dict[str, Any]:
        response = self._post(self._url(ApiRoute.JOB_CANCEL, job_id=job_id))
        if response.status_code != 200:
            message, code = _error_from_response(response, "cancel failed")
            raise TransportError(message, code=code, status_code=response.status_code)
        return dict(response.json())

    def subscribe(self, job_id: str) -> EventStream:
        try:
            response = self.session.get(
                self._url(ApiRoute.JOB_EVENTS, job_id=job_id),
                headers={"Accept": "text/event-stream"},
                stream=True,
                timeout=self.stream_timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise ConnectionLost(f"connection lost: {exc}") from exc
        if response.status_code != 200:
            message, code = _error_from_response(response, "subscription refused")
            response.close()
            raise TransportError(message, code=code, status_code=response.status_code)
        return EventStream(job_id, response)


__all__ = [
    "ConnectionLost",
    "EventStream",
    "HttpTransport",
    "JobRejected",
    "StreamEvent",
    "TransportError",
]
