"""Media backend built on yt-dlp: probing, option building and execution."""

from ..exceptions import DownloadError
from .cookies import CookieFormatError, cookie_file, json_to_netscape
from .downloader import YtDlpBackend, find_artifact, find_cancellation
from .media_info import MediaInfo
from .options import build_download_options, build_probe_options

__all__ = [
    "CookieFormatError",
    "DownloadError",
    "MediaInfo",
    "YtDlpBackend",
    "build_download_options",
    "build_probe_options",
    "cookie_file",
    "find_artifact",
    "find_cancellation",
    "json_to_netscape",
]
