"""Conversion of pasted browser cookies into a yt-dlp cookie file."""

from __future__ import annotations

import contextlib
import json
import os
from typing import Any, Iterator, Mapping, Optional

from ..log_config import verbose_log

COOKIE_FILENAME = "cookies.txt"
NETSCAPE_HEADER = "# Netscape HTTP Cookie File"


class CookieFormatError(ValueError):
    """Raised when a cookie blob looks like JSON but cannot be converted."""


def _flag(value: bool) -> str:
    return "TRUE" if value else "FALSE"


def _cookie_line(cookie: Mapping[str, Any]) -> str:
    domain = str(cookie.get("domain") or "")
    path = str(cookie.get("path") or "")
    expiry_raw = cookie.get("expirationDate") or 0
    try:
        expiry = int(float(expiry_raw) + 0.5)
    except (TypeError, ValueError) as exc:
        raise CookieFormatError(f"invalid expirationDate: {expiry_raw!r}") from exc
    fields = (
        domain,
        _flag(domain.startswith(".")),
        path,
        _flag(bool(cookie.get("secure"))),
        str(expiry),
        str(cookie.get("name") or ""),
        str(cookie.get("value") or ""),
    )
    return "\t".join(fields)


def json_to_netscape(raw: str) -> str:
    """Convert a browser-exported JSON cookie array into Netscape format."""
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CookieFormatError(f"invalid cookie JSON: {exc.msg}") from exc
    if not isinstance(decoded, list):
        raise CookieFormatError("cookie JSON must be an array")
    lines = [NETSCAPE_HEADER]
    for entry in decoded:
        if not isinstance(entry, Mapping):
            raise CookieFormatError("cookie entries must be objects")
        lines.append(_cookie_line(entry))
    return "\n".join(lines) + "\n"


def to_netscape_text(raw: str) -> str:
    """Return Netscape cookie text for either accepted input shape."""
    if raw.lstrip().startswith("["):
        return json_to_netscape(raw)
    return raw


@contextlib.contextmanager
def cookie_file(raw: Optional[str], workdir: str) -> Iterator[Optional[str]]:
    """Materialize the cookie blob for one execution and remove it afterwards.

    Yields ``None`` when no credentials were supplied.
    """
    if not raw:
        yield None
        return
    text = to_netscape_text(raw)
    os.makedirs(workdir, exist_ok=True)
    path = os.path.join(workdir, COOKIE_FILENAME)
    descriptor = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(descriptor, "w", encoding="utf-8") as handle:
        handle.write(text)
    try:
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            verbose_log("cookie_cleanup_failed", {"path": path, "error": repr(exc)})


__all__ = [
    "COOKIE_FILENAME",
    "CookieFormatError",
    "cookie_file",
    "json_to_netscape",
    "to_netscape_text",
]
