"""Request-scoped accessors for objects stored on the application state."""

from __future__ import annotations

from fastapi import Request

from ..realtime import BroadcastHub
from ..runtime import DetectionSimulator
from ..service import TrackerService


def get_tracker(request: Request) -> TrackerService:
    tracker = getattr(request.app.state, "tracker", None)
    if tracker is None:
        raise RuntimeError("Tracker service has not been configured on the application state.")
    return tracker


def get_hub(request: Request) -> BroadcastHub:
    hub = getattr(request.app.state, "hub", None)
    if hub is None:
        raise RuntimeError("Broadcast hub has not been configured on the application state.")
    return hub


def get_simulator(request: Request) -> DetectionSimulator:
    simulator = getattr(request.app.state, "simulator", None)
    if simulator is None:
        raise RuntimeError("Detection simulator has not been configured on the application state.")
    return simulator


__all__ = ["get_hub", "get_simulator", "get_tracker"]
