from __future__ import annotations

import json
import unittest
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests

from mediarelay.client import (
    ConnectionLost,
    EventStream,
    HttpTransport,
    JobRejected,
    TransportError,
)


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        body: Any = None,
        lines: Iterable[str] = (),
        fail_after: Optional[int] = None,
    ) -> None:
        self.status_code = status_code
        self._body = body
        self._lines = list(lines)
        self._fail_after = fail_after
        self.encoding: Optional[str] = None
        self.closed = False

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no body")
        return self._body

    def iter_lines(self, chunk_size: Any = None, decode_unicode: bool = False):
        for index, line in enumerate(self._lines):
            if self._fail_after is not None and index >= self._fail_after:
                raise requests.exceptions.ChunkedEncodingError("peer reset")
            yield line

    def close(self) -> None:
        self.closed = True


class FakeSession:
    def __init__(self, responses: List[FakeResponse]) -> None:
        self.responses = responses
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append(("POST", url, kwargs))
        return self._next()

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append(("GET", url, kwargs))
        return self._next()

    def _next(self) -> FakeResponse:
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _frame(event: str, payload: Dict[str, Any]) -> List[str]:
    return [f"event: {event}", f"data: {json.dumps(payload)}", ""]


class HttpTransportTests(unittest.TestCase):
    def _transport(self, *responses: Any) -> Tuple[HttpTransport, FakeSession]:
        session = FakeSession(list(responses))
        return HttpTransport("http://relay.local/", session=session), session  # type: ignore[arg-type]

    def test_probe_decodes_media_info(self) -> None:
        transport, session = self._transport(
            FakeResponse(200, {"title": "Clip", "video_qualities": ["720"]})
        )

        media = transport.probe("https://v.example/1", cookies="SID=1")

        self.assertEqual(media.video_qualities, ("720",))
        method, url, kwargs = session.calls[0]
        self.assertEqual(url, "http://relay.local/api/info")
        self.assertEqual(kwargs["json"], {"url": "https://v.example/1", "cookies": "SID=1"})

    def test_create_job_returns_id(self) -> None:
        transport, _ = self._transport(FakeResponse(201, {"jobId": "abc"}))

        self.assertEqual(transport.create_job({"url": "https://v.example/1"}), "abc")

    def test_rejected_job_carries_error_code(self) -> None:
        transport, _ = self._transport(
            FakeResponse(400, {"error": "quality_invalid", "detail": "quality must contain digits only"})
        )

        with self.assertRaises(JobRejected) as ctx:
            transport.create_job({"url": "https://v.example/1", "quality": "hd"})

        self.assertEqual(ctx.exception.code, "quality_invalid")
        self.assertEqual(str(ctx.exception), "quality must contain digits only")

    def test_network_failure_becomes_transport_error(self) -> None:
        transport, _ = self._transport(requests.exceptions.ConnectionError("refused"))

        with self.assertRaises(TransportError):
            transport.cancel_job("abc")

    def test_subscribe_refused_closes_response(self) -> None:
        response = FakeResponse(410, {"error": "job_expired"})
        transport, _ = self._transport(response)

        with self.assertRaises(TransportError) as ctx:
            transport.subscribe("abc")

        self.assertEqual(ctx.exception.status_code, 410)
        self.assertTrue(response.closed)

    def test_subscribe_streams_events(self) -> None:
        lines = _frame("progress", {"job_id": "abc", "progress": 30}) + [": keep-alive", ""]
        lines += _frame("ready", {"job_id": "abc", "artifact": "/api/jobs/abc/file"})
        transport, session = self._transport(FakeResponse(200, lines=lines))

        stream = transport.subscribe("abc")
        events = list(stream)

        self.assertEqual([e.event for e in events], ["progress", "ready"])
        self.assertTrue(events[-1].terminal)
        self.assertTrue(session.calls[0][2]["stream"])


class EventStreamTests(unittest.TestCase):
    def test_stream_without_terminal_event_is_connection_lost(self) -> None:
        stream = EventStream(
            "abc", FakeResponse(lines=_frame("progress", {"progress": 5}))  # type: ignore[arg-type]
        )

        with self.assertRaises(ConnectionLost):
            list(stream)

    def test_read_failure_is_connection_lost(self) -> None:
        lines = _frame("progress", {"progress": 5}) + _frame("progress", {"progress": 9})
        stream = EventStream("abc", FakeResponse(lines=lines, fail_after=3))  # type: ignore[arg-type]

        received = []
        with self.assertRaises(ConnectionLost):
            for event in stream:
                received.append(event)

        self.assertEqual(len(received), 1)

    def test_closed_stream_ends_quietly(self) -> None:
        response = FakeResponse(lines=_frame("progress", {"progress": 5}) * 2)
        stream = EventStream("abc", response)  # type: ignore[arg-type]

        received = []
        for event in stream:
            received.append(event)
            stream.close()

        self.assertEqual(len(received), 1)
        self.assertTrue(response.closed)


if __name__ == "__main__":
    unittest.main()
