"""Python client for the MediaRelay job protocol."""

from .session import (
    ActionMode,
    DownloadForm,
    DownloadSession,
    Outcome,
    SessionBusy,
    SessionSnapshot,
    SessionState,
)
from .sse import SseMessage, parse_sse
from .transport import (
    ConnectionLost,
    EventStream,
    HttpTransport,
    JobRejected,
    StreamEvent,
    TransportError,
)

__all__ = [
    "ActionMode",
    "ConnectionLost",
    "DownloadForm",
    "DownloadSession",
    "EventStream",
    "HttpTransport",
    "JobRejected",
    "Outcome",
    "SessionBusy",
    "SessionSnapshot",
    "SessionState",
    "SseMessage",
    "StreamEvent",
    "TransportError",
    "parse_sse",
]
