from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from starlette.applications import Starlette
from starlette.routing import WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

from ..channels import Subscription
from ..config import ApiRoute, ProgressEventType
from ..jobs import JobLookupState, JobRegistry
from ..log_config import verbose_log
from ..models.api.errors import ErrorCode


def register_websocket_routes(app: Starlette, registry: JobRegistry) -> None:
    """Attach the websocket mirror of the job progress channel."""

    def websocket_route(
        path: str,
    ) -> Callable[
        [Callable[[WebSocket], Awaitable[None]]], Callable[[WebSocket], Awaitable[None]]
    ]:
        def decorator(
            func: Callable[[WebSocket], Awaitable[None]],
        ) -> Callable[[WebSocket], Awaitable[None]]:
            app.router.routes.append(WebSocketRoute(path, func))
            return func

        return decorator

    async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
        try:
            async for event in subscription:
                await websocket.send_json(event.to_message())
            await websocket.close()
        except (WebSocketDisconnect, RuntimeError) as exc:
            verbose_log(
                "socket_send_failed",
                {"job_id": subscription.job_id, "error": repr(exc)},
            )

    @websocket_route(ApiRoute.WS_JOB.value)
    async def job_socket(websocket: WebSocket) -> None:
        job_id = websocket.path_params.get("job_id", "")
        await websocket.accept()
        subscription = registry.subscribe(job_id, asyncio.get_running_loop())
        if subscription is None:
            expired = registry.lookup(job_id).state is JobLookupState.EXPIRED
            code = ErrorCode.JOB_EXPIRED if expired else ErrorCode.JOB_NOT_FOUND
            await websocket.send_json(
                {
                    "event": ProgressEventType.ERROR.value,
                    "payload": {
                        "job_id": job_id,
                        "message": "job expired" if expired else "job not found",
                        "reason": code.value,
                    },
                }
            )
            await websocket.close()
            return

        forward_task = asyncio.create_task(_forward(websocket, subscription))
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            forward_task.cancel()
            subscription.close()

    _ = job_socket


__all__ = ["register_websocket_routes"]
