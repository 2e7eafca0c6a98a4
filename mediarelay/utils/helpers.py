from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any, Optional

_ANSI_ESCAPE_RE = re.compile(r"\x1B[@-_][0-?]*[ -/]*[@-~]")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def iso_or_none(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat() + "Z"


def utc_now_naive() -> datetime:
    """Return a timezone-aware UTC timestamp converted to naive form."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def clean_string(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return float(text)
    except (TypeError, ValueError):
        return None


def percent_from_bytes(downloaded: Any, total: Any) -> Optional[int]:
    done = to_float(downloaded)
    size = to_float(total)
    if done is None or size is None or size <= 0:
        return None
    if math.isnan(done) or math.isinf(done) or math.isinf(size):
        return None
    return int(max(0.0, min(done / size * 100.0, 100.0)))


def strip_ansi(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    cleaned = _ANSI_ESCAPE_RE.sub("", text)
    trimmed = cleaned.strip()
    return trimmed or None


__all__ = [
    "clean_string",
    "iso_or_none",
    "now_iso",
    "percent_from_bytes",
    "strip_ansi",
    "to_float",
    "utc_now_naive",
]
