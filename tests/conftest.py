"""Shared pytest fixtures for tracker tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from vehicletracker.api import create_app
from vehicletracker.config import Settings
from vehicletracker.service import TrackerService
from vehicletracker.storage import TrackerStorage


class RecordingSink:
    """Broadcast sink that remembers what the service published."""

    def __init__(self) -> None:
        self.detections: list[Any] = []
        self.alerts: list[Any] = []

    def on_detection_persisted(self, record: Any) -> None:
        self.detections.append(record)

    def on_alert_raised(self, record: Any) -> None:
        self.alerts.append(record)


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest_asyncio.fixture()
async def tracker(db_url: str, sink: RecordingSink):
    """Provide an initialised service on a fresh database publishing to ``sink``."""

    service = TrackerService(storage=TrackerStorage(db_url=db_url), events=sink)
    await service.initialize()
    try:
        yield service
    finally:
        await service.close()


@pytest.fixture()
def client(db_url: str) -> TestClient:
    """Provide a TestClient backed by a fresh app instance for each test."""

    settings = Settings(db_url=db_url, simulation_interval=0.05)
    app = create_app(settings=settings)
    with TestClient(app) as test_client:
        yield test_client
