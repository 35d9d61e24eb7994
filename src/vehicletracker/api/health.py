"""Service health route."""

from __future__ import annotations

import time
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Request

from ..realtime import BroadcastHub
from ..runtime import DetectionSimulator
from ..schemas import HealthStatus
from .dependencies import get_hub, get_simulator

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthStatus)
async def health(
    request: Request,
    hub: BroadcastHub = Depends(get_hub),
    simulator: DetectionSimulator = Depends(get_simulator),
) -> HealthStatus:
    """Return liveness information for monitoring."""

    started = getattr(request.app.state, "started_at", time.monotonic())
    return HealthStatus(
        status="ok",
        timestamp=datetime.now(UTC),
        uptime=round(time.monotonic() - started, 3),
        connected_clients=hub.connected_count(),
        running_simulations=simulator.running(),
    )


__all__ = ["router"]
