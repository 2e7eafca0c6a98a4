from __future__ import annotations

from typing import Protocol


class SupportsJobLog(Protocol):
    def append_log(self, job_id: str, level: str, message: str) -> None: ...


class JobLogger:
    """Proxy logger handed to yt-dlp that records messages against a job."""

    def __init__(self, sink: SupportsJobLog, job_id: str) -> None:
        self.sink = sink
        self.job_id = job_id

    def debug(self, message: str) -> None:
        # yt-dlp sends regular output through debug() without the "[debug] " prefix.
        if str(message).startswith("[debug] "):
            self._log("debug", message)
        else:
            self._log("info", message)

    def info(self, message: str) -> None:
        self._log("info", message)

    def warning(
        self, message: str, *, once: bool | None = None, only_once: bool | None = None
    ) -> None:
        self._log("warning", message)

    def error(self, message: str) -> None:
        self._log("error", message)

    def _log(self, level: str, message: str) -> None:
        text = str(message)
        if not text:
            return
        self.sink.append_log(self.job_id, level, text)


__all__ = ["JobLogger", "SupportsJobLog"]
