from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Protocol, Tuple

import certifi
from starlette.applications import Starlette

from ..api.events import register_event_routes
from ..api.http import SupportsProbe, register_http_routes
from ..api.websockets import register_websocket_routes
from ..channels import ChannelManager
from ..config import (
    CACHE_FOLDER,
    DATA_FOLDER,
    DOWNLOAD_FOLDER,
    JOB_RETENTION_SECONDS,
    JOB_TOMBSTONE_LIMIT,
    SSE_HEARTBEAT_SECONDS,
)
from ..core import YtDlpBackend
from ..jobs import Job, JobRegistry
from ..jobs.controller import ExecutionBackend, JobController, remove_job_workdir


class MediaBackend(ExecutionBackend, SupportsProbe, Protocol):
    """Backend able to both probe URLs and execute jobs."""


def _configure_certificates() -> None:
    cert_path = certifi.where()
    os.environ.setdefault("SSL_CERT_FILE", cert_path)
    os.environ.setdefault("REQUESTS_CA_BUNDLE", cert_path)


def _configure_xdg_dirs() -> None:
    os.environ.setdefault("XDG_CONFIG_HOME", DATA_FOLDER)
    os.environ.setdefault("XDG_CACHE_HOME", CACHE_FOLDER)


def create_app(
    *,
    backend: Optional[MediaBackend] = None,
    download_root: str = DOWNLOAD_FOLDER,
    retention_seconds: int = JOB_RETENTION_SECONDS,
    tombstone_limit: int = JOB_TOMBSTONE_LIMIT,
    heartbeat_seconds: float = SSE_HEARTBEAT_SECONDS,
) -> Tuple[Starlette, JobController, ChannelManager]:
    """Instantiate the Starlette app along with its supporting managers."""

    _configure_certificates()
    _configure_xdg_dirs()
    media_backend = backend if backend is not None else YtDlpBackend()
    channels = ChannelManager()

    def _on_purge(job: Job) -> None:
        remove_job_workdir(download_root, job.job_id)

    registry = JobRegistry(
        channels,
        retention_seconds=retention_seconds,
        tombstone_limit=tombstone_limit,
        on_purge=_on_purge,
    )
    controller = JobController(registry, media_backend, download_root=download_root)

    @asynccontextmanager
    async def lifespan(_: Starlette) -> AsyncIterator[None]:
        try:
            yield
        finally:
            await channels.aclose()

    app = Starlette(lifespan=lifespan)
    register_http_routes(app, controller, media_backend)
    register_event_routes(app, registry, heartbeat=heartbeat_seconds)
    register_websocket_routes(app, registry)
    app.state.job_controller = controller
    app.state.channel_manager = channels
    return app, controller, channels


__all__ = ["MediaBackend", "create_app"]
