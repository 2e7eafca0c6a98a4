"""Per-operation yt-dlp option building."""

from __future__ import annotations

import os
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..config import OperationType
from ..jobs.models import JobRequest

VIDEO_FORMAT_DEFAULT = "bestvideo[ext=mp4]+bestaudio[ext=m4a]/best[ext=mp4]/best"
VIDEO_FORMAT_CAPPED = (
    "bestvideo[ext=mp4][height<={quality}]+bestaudio[ext=m4a]"
    "/best[ext=mp4][height<={quality}]/best"
)

_OUTPUT_TEMPLATES: Dict[OperationType, str] = {
    OperationType.VIDEO: "%(title)s_%(resolution)s.%(ext)s",
    OperationType.AUDIO: "%(title)s_audio.%(ext)s",
    OperationType.SUBTITLES: "%(title)s.%(ext)s",
    OperationType.THUMBNAIL: "%(title)s_thumb.%(ext)s",
}

Hook = Callable[[Mapping[str, Any]], None]


def video_format(quality: Optional[str]) -> str:
    if not quality:
        return VIDEO_FORMAT_DEFAULT
    return VIDEO_FORMAT_CAPPED.format(quality=quality)


def output_template(operation: OperationType, workdir: str) -> str:
    return os.path.join(workdir, _OUTPUT_TEMPLATES[operation])


def _operation_options(request: JobRequest) -> Dict[str, Any]:
    operation = request.operation
    if operation is OperationType.AUDIO:
        extractor: Dict[str, Any] = {
            "key": "FFmpegExtractAudio",
            "preferredcodec": "mp3",
        }
        if request.quality:
            extractor["preferredquality"] = request.quality
        return {"format": "bestaudio", "postprocessors": [extractor]}
    if operation is OperationType.SUBTITLES:
        return {
            "skip_download": True,
            "writesubtitles": True,
            "subtitleslangs": [request.sub_lang or "en"],
            "subtitlesformat": "srt",
            "postprocessors": [
                {"key": "FFmpegSubtitlesConvertor", "format": "srt"},
            ],
        }
    if operation is OperationType.THUMBNAIL:
        return {"skip_download": True, "writethumbnail": True}
    return {
        "format": video_format(request.quality),
        "merge_output_format": "mp4",
    }


def build_download_options(
    request: JobRequest,
    workdir: str,
    *,
    cookiefile: Optional[str] = None,
    logger: Any = None,
    progress_hooks: Optional[List[Hook]] = None,
    postprocessor_hooks: Optional[List[Hook]] = None,
) -> Dict[str, Any]:
    """Assemble the YoutubeDL parameters for executing ``request`` in ``workdir``."""

    options: Dict[str, Any] = {
        "outtmpl": output_template(request.operation, workdir),
        "noplaylist": True,
        "quiet": True,
        "no_warnings": False,
        "noprogress": True,
    }
    options.update(_operation_options(request))
    if cookiefile:
        options["cookiefile"] = cookiefile
    if logger is not None:
        options["logger"] = logger
    if progress_hooks:
        options["progress_hooks"] = list(progress_hooks)
    if postprocessor_hooks:
        options["postprocessor_hooks"] = list(postprocessor_hooks)
    return options


def build_probe_options(
    *, cookiefile: Optional[str] = None, logger: Any = None
) -> Dict[str, Any]:
    options: Dict[str, Any] = {
        "quiet": True,
        "no_warnings": True,
        "skip_download": True,
        "noplaylist": True,
        "noprogress": True,
    }
    if cookiefile:
        options["cookiefile"] = cookiefile
    if logger is not None:
        options["logger"] = logger
    return options


__all__ = [
    "VIDEO_FORMAT_CAPPED",
    "VIDEO_FORMAT_DEFAULT",
    "build_download_options",
    "build_probe_options",
    "output_template",
    "video_format",
]
