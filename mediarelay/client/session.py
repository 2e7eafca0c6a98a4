"""Client-side mirror of one download at a time.

A :class:`DownloadSession` owns no server state. It drives the create,
subscribe and cancel calls through a transport and reconciles the stream's
events with its local view, discarding anything that arrives for a stream it
no longer follows.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from ..config import OperationType, ProgressEventType, TerminalReason
from ..core.media_info import MediaInfo
from ..log_config import verbose_log
from .transport import ConnectionLost, StreamEvent, TransportError

CANCELLED_MESSAGE = "download cancelled"
CONNECTION_LOST_MESSAGE = "connection lost"


class SessionState(str, Enum):
    IDLE = "idle"
    FETCHING_INFO = "fetching_info"
    READY = "ready"
    DOWNLOADING = "downloading"
    TERMINAL = "terminal"


class Outcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    CONNECTION_LOST = "connection_lost"


class ActionMode(str, Enum):
    START = "start"
    CANCEL = "cancel"


class SessionBusy(RuntimeError):
    """Raised when a second operation is requested while one is in flight."""


class SupportsEventStream(Protocol):
    def __iter__(self) -> Any: ...

    def close(self) -> None: ...


class SessionTransport(Protocol):
    def probe(self, url: str, cookies: Optional[str] = None) -> MediaInfo: ...

    def create_job(self, payload: Dict[str, Any]) -> str: ...

    def cancel_job(self, job_id: str) -> Dict[str, Any]: ...

    def subscribe(self, job_id: str) -> SupportsEventStream: ...


Runner = Callable[[Callable[[], None]], None]
Listener = Callable[["SessionSnapshot"], None]


def _thread_runner(target: Callable[[], None]) -> None:
    threading.Thread(target=target, name="mediarelay-stream", daemon=True).start()


@dataclass(frozen=True)
class DownloadForm:
    url: str
    operation: str = OperationType.VIDEO.value
    quality: Optional[str] = None
    sub_lang: Optional[str] = None

    def to_payload(self, cookies: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"url": self.url, "type": self.operation}
        if self.quality:
            payload["quality"] = self.quality
        if self.sub_lang:
            payload["subLang"] = self.sub_lang
        if cookies:
            payload["cookies"] = cookies
        return payload


@dataclass(frozen=True)
class SessionSnapshot:
    state: SessionState = SessionState.IDLE
    job_id: Optional[str] = None
    stage: Optional[str] = None
    progress: int = 0
    outcome: Optional[Outcome] = None
    message: Optional[str] = None
    artifact: Optional[str] = None
    filename: Optional[str] = None
    media_info: Optional[MediaInfo] = None

    @property
    def action_mode(self) -> ActionMode:
        if self.state is SessionState.DOWNLOADING:
            return ActionMode.CANCEL
        return ActionMode.START

    @property
    def can_start(self) -> bool:
        return self.state in (
            SessionState.IDLE,
            SessionState.READY,
            SessionState.TERMINAL,
        )


class DownloadSession:
    """State machine for one active job per client session."""

    def __init__(
        self,
        transport: SessionTransport,
        *,
        credentials: Optional[Callable[[], Optional[str]]] = None,
        runner: Optional[Runner] = None,
    ) -> None:
        self.transport = transport
        self._credentials = credentials or (lambda: None)
        self._runner = runner or _thread_runner
        self._lock = threading.RLock()
        self._snapshot = SessionSnapshot()
        self._stream: Optional[SupportsEventStream] = None
        self._generation = 0
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def state(self) -> SessionState:
        return self.snapshot().state

    @property
    def action_mode(self) -> ActionMode:
        return self.snapshot().action_mode

    def add_listener(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    def fetch_info(self, url: str) -> Optional[MediaInfo]:
        """Probe ``url``; on failure the prior state is restored with the error."""
        with self._lock:
            if not self._snapshot.can_start:
                raise SessionBusy(f"cannot fetch info while {self._snapshot.state.value}")
            prior = self._snapshot
            self._set(replace(prior, state=SessionState.FETCHING_INFO, message=None))
        try:
            info = self.transport.probe(url, self._credentials())
        except TransportError as exc:
            verbose_log("client_probe_failed", {"url": url, "error": str(exc)})
            with self._lock:
                self._set(replace(prior, message=str(exc)))
            return None
        with self._lock:
            self._set(
                SessionSnapshot(
                    state=SessionState.READY, media_info=info, message=None
                )
            )
        return info

    def start_download(self, form: DownloadForm) -> Optional[str]:
        """Create a job and follow its event stream in the background.

        Returns the job id, or ``None`` when the server rejected the request.
        """
        with self._lock:
            if not self._snapshot.can_start:
                raise SessionBusy(
                    f"cannot start while {self._snapshot.state.value}"
                )
            prior = self._snapshot
            self._generation += 1
            token = self._generation
            self._set(
                SessionSnapshot(
                    state=SessionState.DOWNLOADING, media_info=prior.media_info
                )
            )

        try:
            job_id = self.transport.create_job(form.to_payload(self._credentials()))
        except TransportError as exc:
            verbose_log("client_job_rejected", {"error": str(exc)})
            with self._lock:
                if token == self._generation:
                    self._set(replace(prior, message=str(exc)))
            return None

        with self._lock:
            superseded = token != self._generation
            if not superseded:
                self._set(replace(self._snapshot, job_id=job_id))
        if superseded:
            # Cancelled while the create request was in flight.
            self._cancel_remote(job_id)
            return job_id

        try:
            stream = self.transport.subscribe(job_id)
        except TransportError as exc:
            verbose_log("client_subscribe_failed", {"job_id": job_id, "error": str(exc)})
            self._finish(token, Outcome.CONNECTION_LOST, CONNECTION_LOST_MESSAGE)
            return job_id

        with self._lock:
            if token != self._generation:
                stream.close()
                return job_id
            self._stream = stream
        self._runner(lambda: self._consume(stream, token))
        return job_id

    def cancel(self) -> bool:
        """Cancel the active job and return to idle without waiting for the server."""
        with self._lock:
            if self._snapshot.state is not SessionState.DOWNLOADING:
                return False
            job_id = self._snapshot.job_id
            stream = self._stream
            self._stream = None
            self._generation += 1
            self._set(
                SessionSnapshot(
                    state=SessionState.IDLE,
                    message=CANCELLED_MESSAGE,
                    media_info=self._snapshot.media_info,
                )
            )
        if stream is not None:
            stream.close()
        if job_id is not None:
            self._cancel_remote(job_id)
        return True

    def _cancel_remote(self, job_id: str) -> None:
        try:
            self.transport.cancel_job(job_id)
        except TransportError as exc:
            verbose_log("client_cancel_failed", {"job_id": job_id, "error": str(exc)})

    def press_action(self, form: Optional[DownloadForm] = None) -> Optional[str]:
        """Single action button: start when idle-like, cancel while downloading."""
        if self.action_mode is ActionMode.CANCEL:
            self.cancel()
            return None
        if form is None:
            raise ValueError("a download form is required to start")
        return self.start_download(form)

    # ------------------------------------------------------------------
    # Stream reconciliation
    # ------------------------------------------------------------------
    def _consume(self, stream: Iterable[StreamEvent], token: int) -> None:
        try:
            for event in stream:
                if not self._apply(event, token):
                    return
        except ConnectionLost as exc:
            verbose_log("client_connection_lost", {"error": str(exc)})
        finally:
            close = getattr(stream, "close", None)
            if callable(close):
                close()
        # The stream ended without a terminal event.
        self._finish(token, Outcome.CONNECTION_LOST, CONNECTION_LOST_MESSAGE)

    def _apply(self, event: StreamEvent, token: int) -> bool:
        """Fold one event into the mirror; False once the stream is no longer followed."""
        payload = event.payload
        with self._lock:
            if token != self._generation:
                return False
            current = self._snapshot
            if current.state is not SessionState.DOWNLOADING:
                return False
            if event.event == ProgressEventType.PROGRESS.value:
                progress = payload.get("progress")
                if isinstance(progress, (int, float)):
                    self._set(replace(current, progress=int(progress)))
                return True
            if event.event == ProgressEventType.STAGE.value:
                stage = payload.get("stage")
                if isinstance(stage, str):
                    self._set(replace(current, stage=stage))
                return True
        if event.event == ProgressEventType.READY.value:
            self._finish(
                token,
                Outcome.SUCCEEDED,
                None,
                artifact=payload.get("artifact"),
                filename=payload.get("filename"),
            )
            return False
        if event.event == ProgressEventType.ERROR.value:
            reason = payload.get("reason")
            outcome = (
                Outcome.CANCELLED
                if reason == TerminalReason.CANCELLED.value
                else Outcome.FAILED
            )
            message = payload.get("message")
            self._finish(token, outcome, str(message) if message else outcome.value)
            return False
        return True

    def _finish(
        self,
        token: int,
        outcome: Outcome,
        message: Optional[str],
        *,
        artifact: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> None:
        with self._lock:
            if token != self._generation:
                return
            if self._snapshot.state is not SessionState.DOWNLOADING:
                return
            stream = self._stream
            self._stream = None
            self._set(
                replace(
                    self._snapshot,
                    state=SessionState.TERMINAL,
                    outcome=outcome,
                    message=message,
                    artifact=artifact,
                    filename=filename,
                )
            )
        if stream is not None:
            stream.close()

    def _set(self, snapshot: SessionSnapshot) -> None:
        self._snapshot = snapshot
        listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as exc:  # noqa: BLE001 - listeners must not stall the session
                verbose_log(
                    "client_listener_failed",
                    {"state": snapshot.state.value, "error": repr(exc)},
                )


__all__ = [
    "ActionMode",
    "CANCELLED_MESSAGE",
    "CONNECTION_LOST_MESSAGE",
    "DownloadForm",
    "DownloadSession",
    "Outcome",
    "SessionBusy",
    "SessionSnapshot",
    "SessionState",
]
