from .helpers import (
    clean_string,
    iso_or_none,
    now_iso,
    percent_from_bytes,
    strip_ansi,
    to_float,
    utc_now_naive,
)

__all__ = [
    "clean_string",
    "iso_or_none",
    "now_iso",
    "percent_from_bytes",
    "strip_ansi",
    "to_float",
    "utc_now_naive",
]
