"""Stage labels reported while a job executes."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from ..config import OperationType


class JobStage(str, Enum):
    """Human readable phases a job moves through."""

    FETCHING_METADATA = "fetching metadata"
    DOWNLOADING_VIDEO = "downloading video"
    DOWNLOADING_AUDIO = "downloading audio"
    DOWNLOADING_SUBTITLES = "downloading subtitles"
    DOWNLOADING_THUMBNAIL = "downloading thumbnail"
    ENCODING = "encoding"
    COMPLETED = "completed"


_OPERATION_STAGES = {
    OperationType.VIDEO: JobStage.DOWNLOADING_VIDEO,
    OperationType.AUDIO: JobStage.DOWNLOADING_AUDIO,
    OperationType.SUBTITLES: JobStage.DOWNLOADING_SUBTITLES,
    OperationType.THUMBNAIL: JobStage.DOWNLOADING_THUMBNAIL,
}


def download_stage(
    operation: OperationType, *, vcodec: Optional[str] = None
) -> JobStage:
    """Resolve the downloading label for a hook update.

    Video jobs fetch separate video and audio streams; the stream's ``vcodec``
    tells them apart (``"none"`` marks an audio-only stream).
    """

    if operation is OperationType.VIDEO and vcodec is not None:
        if vcodec.strip().lower() == "none":
            return JobStage.DOWNLOADING_AUDIO
        return JobStage.DOWNLOADING_VIDEO
    return _OPERATION_STAGES[operation]


__all__ = ["JobStage", "download_stage"]
