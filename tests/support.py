"""Test doubles shared by the job, channel and HTTP tests."""

from __future__ import annotations

import os
import threading
from typing import Any, List, Optional, Sequence, Tuple

from mediarelay.channels import ChannelManager, ProgressEvent
from mediarelay.core import MediaInfo
from mediarelay.exceptions import DownloadError
from mediarelay.jobs import JobRequest

Step = Tuple[str, Any]


class RecordingChannels(ChannelManager):
    """Channel manager double that records every published event."""

    def __init__(self) -> None:
        super().__init__()
        self.events: List[ProgressEvent] = []
        self._events_lock = threading.Lock()

    def publish(self, event: ProgressEvent) -> None:
        with self._events_lock:
            self.events.append(event)
        super().publish(event)

    def for_job(self, job_id: str) -> List[ProgressEvent]:
        with self._events_lock:
            return [event for event in self.events if event.job_id == job_id]

    def names(self, job_id: str) -> List[str]:
        return [event.event for event in self.for_job(job_id)]


class ScriptedBackend:
    """Backend double that replays stage/progress steps.

    ``gate`` blocks the execution after the scripted steps until the test
    releases it, followed by a checkpoint so cancellation can land there.
    """

    def __init__(
        self,
        steps: Sequence[Step] = (),
        *,
        gate: Optional[threading.Event] = None,
        error: Optional[BaseException] = None,
        artifact_name: str = "Clip_1280x720.mp4",
        media_info: Optional[MediaInfo] = None,
        probe_error: Optional[BaseException] = None,
    ) -> None:
        self.steps = list(steps)
        self.gate = gate
        self.error = error
        self.artifact_name = artifact_name
        self.media_info = media_info or MediaInfo(
            title="Clip",
            video_qualities=("1080", "720"),
            audio_qualities=("128",),
            subtitle_languages=("en",),
            thumbnail_url="https://img.example/clip.jpg",
        )
        self.probe_error = probe_error
        self.started = threading.Event()
        self.requests: List[JobRequest] = []
        self.workdirs: List[str] = []
        self.probes: List[Tuple[str, Optional[str]]] = []

    def probe(self, url: str, credentials: Optional[str] = None) -> MediaInfo:
        self.probes.append((url, credentials))
        if self.probe_error is not None:
            raise self.probe_error
        return self.media_info

    def execute(
        self,
        request: JobRequest,
        workdir: str,
        reporter: Any,
        *,
        logger: Any = None,
    ) -> str:
        self.requests.append(request)
        self.workdirs.append(workdir)
        os.makedirs(workdir, exist_ok=True)
        self.started.set()
        if logger is not None:
            logger.info(f"[scripted] {request.url}")
        for kind, value in self.steps:
            if kind == "stage":
                reporter.stage(value)
            elif kind == "progress":
                reporter.progress(value)
            reporter.checkpoint()
        if self.gate is not None:
            self.gate.wait(5)
            reporter.checkpoint()
        if self.error is not None:
            raise self.error
        path = os.path.join(workdir, self.artifact_name)
        with open(path, "wb") as handle:
            handle.write(b"\x00\x00\x00\x18ftypmp42")
        return path


def failing_backend(message: str = "ERROR: unsupported URL") -> ScriptedBackend:
    return ScriptedBackend(
        [("stage", "fetching metadata")], error=DownloadError(message)
    )


VIDEO_720_STEPS: List[Step] = [
    ("stage", "fetching metadata"),
    ("stage", "downloading video"),
    ("progress", 10),
    ("progress", 55),
    ("progress", 100),
    ("stage", "encoding"),
]
