from .base import MediaRelaySchema

__all__ = ["MediaRelaySchema"]
