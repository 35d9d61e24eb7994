"""HTTP and websocket surface of the Vehicle Tracker service."""

from .app import create_app

__all__ = ["create_app"]
