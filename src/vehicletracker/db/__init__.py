"""Database setup for the Vehicle Tracker service."""

from .session import create_engine, get_sessionmaker, init_db
from .models import Alert, Camera, Detection, Search

__all__ = [
    "create_engine",
    "get_sessionmaker",
    "init_db",
    "Alert",
    "Camera",
    "Detection",
    "Search",
]
