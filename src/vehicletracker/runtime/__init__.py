"""Runtime orchestration for background detection simulation."""

from .simulation import DetectionSimulator

__all__ = ["DetectionSimulator"]
