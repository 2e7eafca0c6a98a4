"""Server-Sent Events projection of a job's progress channel."""

from __future__ import annotations

import asyncio
import json
from typing import AsyncIterator

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import Response, StreamingResponse

from ..channels import ProgressEvent, Subscription
from ..config import ApiRoute, SSE_HEARTBEAT_SECONDS
from ..jobs import JobRegistry
from ..log_config import verbose_log
from .http import lookup_failure

KEEP_ALIVE_FRAME = ": keep-alive\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def encode_sse(event: ProgressEvent) -> str:
    """Format as SSE: ``event: <type>\\ndata: <json>\\n\\n``."""
    data = json.dumps(event.payload(), separators=(",", ":"))
    return f"event: {event.event}\ndata: {data}\n\n"


async def stream_events(
    subscription: Subscription, *, heartbeat: float = SSE_HEARTBEAT_SECONDS
) -> AsyncIterator[str]:
    """Yield SSE frames until the channel ends, closing the subscription after."""
    try:
        while True:
            try:
                event = await subscription.next(timeout=heartbeat)
            except asyncio.TimeoutError:
                yield KEEP_ALIVE_FRAME
                continue
            except StopAsyncIteration:
                break
            yield encode_sse(event)
    finally:
        subscription.close()
        verbose_log("sse_stream_closed", {"job_id": subscription.job_id})


def register_event_routes(
    app: Starlette,
    registry: JobRegistry,
    *,
    heartbeat: float = SSE_HEARTBEAT_SECONDS,
) -> None:
    """Attach the SSE subscription endpoint."""

    async def job_events_endpoint(request: Request) -> Response:
        job_id = request.path_params.get("job_id", "")
        subscription = registry.subscribe(job_id, asyncio.get_running_loop())
        if subscription is None:
            return lookup_failure(registry.lookup(job_id))
        return StreamingResponse(
            stream_events(subscription, heartbeat=heartbeat),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    app.router.add_route(ApiRoute.JOB_EVENTS.value, job_events_endpoint, methods=["GET"])


__all__ = [
    "KEEP_ALIVE_FRAME",
    "encode_sse",
    "register_event_routes",
    "stream_events",
]
