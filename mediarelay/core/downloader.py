"""High-level integration layer around yt_dlp consumption.

This module centralizes every direct call to :mod:`yt_dlp` so the job
controller can rely on a narrow contract: probe a URL into a
:class:`MediaInfo`, or execute a validated :class:`JobRequest` inside a work
directory while reporting stage and progress through a reporter.
"""

from __future__ import annotations

import os
import tempfile
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Tuple,
    TypeVar,
    cast,
)

from yt_dlp import YoutubeDL

from ..config import OperationType
from ..exceptions import DownloadCancelled, DownloadError
from ..jobs.models import JobRequest
from ..jobs.stages import JobStage, download_stage
from ..utils import percent_from_bytes, strip_ansi
from .cookies import COOKIE_FILENAME, cookie_file
from .media_info import MediaInfo
from .options import build_download_options, build_probe_options

TReturn = TypeVar("TReturn")

_PREFERRED_EXTENSIONS: Dict[OperationType, Tuple[str, ...]] = {
    OperationType.VIDEO: (".mp4",),
    OperationType.AUDIO: (".mp3",),
    OperationType.SUBTITLES: (".srt", ".vtt"),
    OperationType.THUMBNAIL: (".jpg", ".jpeg", ".png", ".webp"),
}
_PARTIAL_SUFFIXES = (".part", ".ytdl", ".temp")
_IGNORED_POSTPROCESSORS = ("MoveFiles",)


class LoggerLike(Protocol):
    def debug(self, msg: str) -> None: ...

    def warning(self, msg: str) -> None: ...

    def error(self, msg: str) -> None: ...


class ProgressReporter(Protocol):
    """Receives execution updates; ``checkpoint`` raises when cancelled."""

    def stage(self, label: str) -> None: ...

    def progress(self, percent: float) -> None: ...

    def checkpoint(self) -> None: ...


class _BufferedLogger:
    """Logger that keeps yt-dlp warnings and errors, optionally forwarding them."""

    def __init__(self, forward: Optional[LoggerLike] = None) -> None:
        self._forward = forward
        self._warnings: list[str] = []
        self._errors: list[str] = []

    @staticmethod
    def _normalize(message: object) -> Optional[str]:
        text = str(message)
        cleaned = strip_ansi(text)
        if cleaned is not None:
            text = cleaned
        normalized = " ".join(part for part in text.split() if part)
        return normalized or None

    def debug(self, msg: str) -> None:
        if self._forward is not None:
            self._forward.debug(msg)

    def info(self, msg: str) -> None:
        self.debug(msg)

    def warning(self, msg: str) -> None:
        normalized = self._normalize(msg)
        if normalized:
            self._warnings.append(normalized)
        if self._forward is not None:
            self._forward.warning(msg)

    def error(self, msg: str) -> None:
        normalized = self._normalize(msg)
        if normalized:
            self._errors.append(normalized)
        if self._forward is not None:
            self._forward.error(msg)

    def last_message(self) -> Optional[str]:
        for bucket in (self._errors, self._warnings):
            for message in reversed(bucket):
                if message:
                    return message
        return None


def find_cancellation(exc: BaseException) -> Optional[DownloadCancelled]:
    """Return the :class:`DownloadCancelled` buried in an exception chain, if any."""
    seen: set[int] = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, DownloadCancelled):
            return current
        exc_info = getattr(current, "exc_info", None)
        if isinstance(exc_info, tuple) and len(exc_info) > 1:
            inner = exc_info[1]
            if isinstance(inner, DownloadCancelled):
                return inner
        current = current.__cause__ or current.__context__
    return None


def _run_with_ytdlp(
    options: Mapping[str, Any],
    runner: Callable[[YoutubeDL], TReturn],
) -> TReturn:
    try:
        with YoutubeDL(cast(Any, dict(options))) as ydl:
            return runner(ydl)
    except (DownloadError, DownloadCancelled):
        raise
    except Exception as exc:  # noqa: BLE001 - wrap third-party exceptions
        cancelled = find_cancellation(exc)
        if cancelled is not None:
            raise cancelled from exc
        message = strip_ansi(str(exc)) or exc.__class__.__name__
        raise DownloadError(message) from exc


def find_artifact(workdir: str, operation: OperationType) -> str:
    """Locate the produced file, preferring the operation's extensions."""
    candidates: List[Tuple[int, str]] = []
    for root, _dirs, files in os.walk(workdir):
        for name in files:
            if name == COOKIE_FILENAME or name.endswith(_PARTIAL_SUFFIXES):
                continue
            path = os.path.join(root, name)
            try:
                size = os.path.getsize(path)
            except OSError:
                continue
            candidates.append((size, path))
    if not candidates:
        raise DownloadError("no output file was produced")
    preferred = _PREFERRED_EXTENSIONS[operation]
    matching = [item for item in candidates if item[1].lower().endswith(preferred)]
    pool = matching or candidates
    return max(pool)[1]


class YtDlpBackend:
    """Media backend that probes and downloads through yt-dlp."""

    def probe(self, url: str, credentials: Optional[str] = None) -> MediaInfo:
        capture = _BufferedLogger()
        with tempfile.TemporaryDirectory(prefix="mediarelay-probe-") as workdir:
            with cookie_file(credentials, workdir) as cookiefile:
                options = build_probe_options(cookiefile=cookiefile, logger=capture)

                def _runner(ydl: YoutubeDL) -> MediaInfo:
                    info = ydl.extract_info(url, download=False)
                    if info is None:
                        raise DownloadError(
                            capture.last_message()
                            or "no information returned for the url"
                        )
                    if not isinstance(info, Mapping):
                        raise DownloadError("unexpected probe result")
                    return MediaInfo.from_info(info)

                return _run_with_ytdlp(options, _runner)

    def execute(
        self,
        request: JobRequest,
        workdir: str,
        reporter: ProgressReporter,
        *,
        logger: Optional[LoggerLike] = None,
    ) -> str:
        """Run ``request`` inside ``workdir`` and return the artifact path."""

        os.makedirs(workdir, exist_ok=True)
        reporter.stage(JobStage.FETCHING_METADATA.value)
        reporter.checkpoint()
        capture = _BufferedLogger(logger)
        operation = request.operation

        def _on_progress(payload: Mapping[str, Any]) -> None:
            reporter.checkpoint()
            if payload.get("status") != "downloading":
                return
            info = payload.get("info_dict") or {}
            vcodec = info.get("vcodec") if isinstance(info, Mapping) else None
            reporter.stage(
                download_stage(
                    operation, vcodec=vcodec if isinstance(vcodec, str) else None
                ).value
            )
            percent = percent_from_bytes(
                payload.get("downloaded_bytes"),
                payload.get("total_bytes") or payload.get("total_bytes_estimate"),
            )
            if percent is not None:
                reporter.progress(percent)

        def _on_postprocess(payload: Mapping[str, Any]) -> None:
            reporter.checkpoint()
            name = str(payload.get("postprocessor") or "")
            if name.startswith(_IGNORED_POSTPROCESSORS):
                return
            if payload.get("status") == "started":
                reporter.stage(JobStage.ENCODING.value)

        with cookie_file(request.credentials, workdir) as cookiefile:
            options = build_download_options(
                request,
                workdir,
                cookiefile=cookiefile,
                logger=capture,
                progress_hooks=[_on_progress],
                postprocessor_hooks=[_on_postprocess],
            )

            def _runner(ydl: YoutubeDL) -> None:
                info = ydl.extract_info(request.url, download=True)
                if info is None:
                    raise DownloadError(
                        capture.last_message() or "yt-dlp returned no result"
                    )

            _run_with_ytdlp(options, _runner)
        reporter.checkpoint()
        return find_artifact(workdir, operation)


__all__ = [
    "LoggerLike",
    "ProgressReporter",
    "YtDlpBackend",
    "find_artifact",
    "find_cancellation",
]
