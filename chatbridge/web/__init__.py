"""Web surface: operator page, status endpoint and observer websocket."""

from .server import ObserverServer

__all__ = ["ObserverServer"]
