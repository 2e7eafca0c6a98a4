"""Incremental parser for ``text/event-stream`` bodies."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Optional

DEFAULT_EVENT = "message"


@dataclass(frozen=True)
class SseMessage:
    event: str
    data: str
    id: Optional[str] = None

    def json(self) -> Any:
        return json.loads(self.data) if self.data else None


def parse_sse(lines: Iterable[str | bytes]) -> Iterator[SseMessage]:
    """Turn raw stream lines into dispatched messages.

    Comment lines (``: keep-alive``) are skipped; a blank line dispatches the
    buffered fields. A trailing message without its blank line is dropped.
    """
    event: Optional[str] = None
    data: List[str] = []
    last_id: Optional[str] = None
    for raw in lines:
        line = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r\n")
        if not line:
            if data:
                yield SseMessage(event or DEFAULT_EVENT, "\n".join(data), last_id)
            event, data = None, []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)
        elif name == "id":
            last_id = value


__all__ = ["DEFAULT_EVENT", "SseMessage", "parse_sse"]
