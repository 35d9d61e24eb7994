"""Domain exceptions raised by the tracker service and runtime."""

from __future__ import annotations


class SearchNotFoundError(KeyError):
    """Raised when a search identifier is unknown to the store."""


class CameraNotFoundError(KeyError):
    """Raised when a camera identifier is unknown to the store."""


class DetectionNotFoundError(KeyError):
    """Raised when a detection identifier is unknown to the store."""


class AlertNotFoundError(KeyError):
    """Raised when an alert identifier is unknown to the store."""


class NoFieldsToUpdateError(ValueError):
    """Raised when a partial update carries no fields."""


class SimulationAlreadyRunningError(RuntimeError):
    """Raised when starting a simulation that is already running."""


class SimulationNotRunningError(RuntimeError):
    """Raised when stopping a simulation that is not running."""
