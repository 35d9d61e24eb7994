"""Durable tracker storage facade."""

from .tracker_storage import (
    AlertCreate,
    CameraCreate,
    CameraUpdate,
    DetectionCreate,
    SearchCreate,
    SearchUpdate,
    TrackerStorage,
)

__all__ = [
    "AlertCreate",
    "CameraCreate",
    "CameraUpdate",
    "DetectionCreate",
    "SearchCreate",
    "SearchUpdate",
    "TrackerStorage",
]
