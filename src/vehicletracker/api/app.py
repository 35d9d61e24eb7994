"""FastAPI application factory for the Vehicle Tracker service."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from ..config import Settings, get_settings
from ..realtime import BroadcastHub, serve_websocket
from ..runtime import DetectionSimulator
from ..service import TrackerService
from ..storage import TrackerStorage
from .alerts import router as alerts_router
from .analytics import router as analytics_router
from .cameras import router as cameras_router
from .detections import router as detections_router
from .health import router as health_router
from .searches import router as searches_router

logger = logging.getLogger(__name__)


def create_app(
    tracker: TrackerService | None = None,
    hub: BroadcastHub | None = None,
    *,
    simulator: DetectionSimulator | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Parameters
    ----------
    tracker:
        Optional service instance, primarily used for injecting a temporary
        database in tests.
    hub:
        Optional broadcast hub; each application gets its own by default.
    simulator:
        Optional detection simulator bound to ``tracker``.
    settings:
        Explicit settings; defaults to the environment.

    Returns
    -------
    FastAPI
        Configured app instance.
    """

    settings = settings or get_settings()
    hub = hub or BroadcastHub()
    tracker = tracker or TrackerService(
        storage=TrackerStorage(db_url=settings.db_url)
    )
    tracker.bind_events(hub)
    simulator = simulator or DetectionSimulator(
        tracker, interval=settings.simulation_interval
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await tracker.initialize()
        logger.info("Vehicle Tracker service started")
        try:
            yield
        finally:
            await simulator.shutdown()
            await tracker.close()
            logger.info("Vehicle Tracker service stopped")

    app = FastAPI(title="Vehicle Tracker API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.tracker = tracker
    app.state.hub = hub
    app.state.simulator = simulator
    app.state.started_at = time.monotonic()

    api = APIRouter(prefix="/api")
    api.include_router(health_router)
    api.include_router(cameras_router)
    api.include_router(searches_router)
    api.include_router(detections_router)
    api.include_router(alerts_router)
    api.include_router(analytics_router)
    app.include_router(api)

    @app.websocket("/ws")
    async def live_feed(websocket: WebSocket) -> None:
        """Stream detections and alerts to a dashboard client."""

        await serve_websocket(
            websocket, websocket.app.state.hub, max_pending=settings.ws_max_pending
        )

    return app


app = create_app()

__all__ = ["app", "create_app"]
