from .factory import MediaBackend, create_app

__all__ = ["MediaBackend", "create_app"]
