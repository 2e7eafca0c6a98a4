"""Probe results extracted from yt-dlp info dicts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from ..models.api.http import MediaInfoResponse
from ..utils import clean_string, to_float


def _as_int(value: Any) -> Optional[int]:
    numeric = to_float(value)
    if numeric is None or numeric != numeric:
        return None
    return int(numeric)


def _iter_formats(info: Mapping[str, Any]) -> Iterable[Mapping[str, Any]]:
    formats = info.get("formats")
    if not isinstance(formats, list):
        return []
    return [entry for entry in formats if isinstance(entry, Mapping)]


def _video_qualities(info: Mapping[str, Any]) -> Tuple[str, ...]:
    heights = set()
    for entry in _iter_formats(info):
        if entry.get("vcodec") == "none":
            continue
        height = _as_int(entry.get("height"))
        if height and height > 0:
            heights.add(height)
    return tuple(str(height) for height in sorted(heights, reverse=True))


def _audio_qualities(info: Mapping[str, Any]) -> Tuple[str, ...]:
    bitrates = set()
    for entry in _iter_formats(info):
        if entry.get("acodec") == "none" or entry.get("vcodec") != "none":
            continue
        abr = to_float(entry.get("abr"))
        if abr is None or abr <= 0:
            continue
        bitrates.add("%.0f" % abr)
    return tuple(sorted(bitrates, key=int))


def _subtitle_languages(info: Mapping[str, Any]) -> Tuple[str, ...]:
    subtitles = info.get("subtitles")
    if not isinstance(subtitles, Mapping):
        return ()
    return tuple(sorted(str(lang) for lang in subtitles.keys()))


def _thumbnail_url(info: Mapping[str, Any]) -> Optional[str]:
    thumbnails = info.get("thumbnails")
    if isinstance(thumbnails, list) and thumbnails:
        last = thumbnails[-1]
        if isinstance(last, Mapping):
            url = clean_string(last.get("url"))
            if url:
                return url
    return clean_string(info.get("thumbnail"))


@dataclass(frozen=True)
class MediaInfo:
    """Formats available for a media URL, as offered to the user."""

    title: Optional[str] = None
    video_qualities: Tuple[str, ...] = field(default_factory=tuple)
    audio_qualities: Tuple[str, ...] = field(default_factory=tuple)
    subtitle_languages: Tuple[str, ...] = field(default_factory=tuple)
    thumbnail_url: Optional[str] = None

    @classmethod
    def from_info(cls, info: Mapping[str, Any]) -> "MediaInfo":
        return cls(
            title=clean_string(info.get("title")),
            video_qualities=_video_qualities(info),
            audio_qualities=_audio_qualities(info),
            subtitle_languages=_subtitle_languages(info),
            thumbnail_url=_thumbnail_url(info),
        )

    def to_payload(self) -> MediaInfoResponse:
        return {
            "title": self.title,
            "video_qualities": list(self.video_qualities),
            "audio_qualities": list(self.audio_qualities),
            "subtitle_languages": list(self.subtitle_languages),
            "thumbnail_url": self.thumbnail_url,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "MediaInfo":
        def _strings(key: str) -> Tuple[str, ...]:
            raw = payload.get(key)
            if not isinstance(raw, list):
                return ()
            values: List[str] = [str(item) for item in raw if item is not None]
            return tuple(values)

        return cls(
            title=clean_string(payload.get("title")),
            video_qualities=_strings("video_qualities"),
            audio_qualities=_strings("audio_qualities"),
            subtitle_languages=_strings("subtitle_languages"),
            thumbnail_url=clean_string(payload.get("thumbnail_url")),
        )


__all__ = ["MediaInfo"]
