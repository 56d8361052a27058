"""Socket.IO server for overlay clients."""

from .app import create_app

__all__ = ["create_app"]
