"""Application bootstrap for the MediaRelay backend."""

from __future__ import annotations

from starlette.applications import Starlette

from .channels import ChannelManager
from .jobs.controller import JobController
from .server import create_app

_app: Starlette
_controller: JobController
_channels: ChannelManager
_app, _controller, _channels = create_app()
app = _app


__all__ = ["app", "create_app"]
