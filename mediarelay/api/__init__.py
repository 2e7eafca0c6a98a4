"""REST, SSE and websocket route registration helpers."""

from .events import register_event_routes
from .http import register_http_routes
from .websockets import register_websocket_routes

__all__ = ["register_event_routes", "register_http_routes", "register_websocket_routes"]
