from __future__ import annotations

import logging
import random
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.exc import NoResultFound

from vehicletracker.exceptions import (
    AlertNotFoundError,
    CameraNotFoundError,
    DetectionNotFoundError,
    NoFieldsToUpdateError,
    SearchNotFoundError,
)
from vehicletracker.schemas import (
    AlertCreate,
    CameraCreate,
    CameraUpdate,
    DetectionCreate,
    SearchCreate,
    SearchUpdate,
)
from vehicletracker.service import TrackerService
from vehicletracker.storage import TrackerStorage


async def _open_search(tracker: TrackerService, plate: str = "ABC123") -> str:
    search = await tracker.create_search(
        SearchCreate(license_plate=plate, make="Toyota", model="Camry", color="Blue")
    )
    return search.id


def _sighting(search_id: str, camera_id: str = "CAM_001", **overrides) -> DetectionCreate:
    payload = {
        "search_id": search_id,
        "camera_id": camera_id,
        "confidence": 0.91,
        "location_lat": 37.7749,
        "location_lng": -122.4194,
    }
    payload.update(overrides)
    return DetectionCreate(**payload)


@pytest.mark.asyncio
async def test_seeded_cameras_are_available(tracker: TrackerService) -> None:
    cameras = await tracker.list_cameras()

    assert {camera.id for camera in cameras} >= {
        "CAM_001",
        "CAM_002",
        "CAM_003",
        "CAM_004",
        "CAM_005",
    }
    assert all(camera.created_at.tzinfo is not None for camera in cameras)


@pytest.mark.asyncio
async def test_create_detection_publishes_enriched_record_once(tracker, sink) -> None:
    search_id = await _open_search(tracker)

    record = await tracker.create_detection(_sighting(search_id))

    assert record.id.startswith("DET_")
    assert record.camera_name == "Market St & 5th"
    assert record.camera_address == "5th St & Market St, San Francisco, CA"
    assert record.timestamp.tzinfo is not None
    assert sink.detections == [record]


@pytest.mark.asyncio
async def test_create_detection_requires_existing_search_and_camera(tracker, sink) -> None:
    search_id = await _open_search(tracker)

    with pytest.raises(SearchNotFoundError):
        await tracker.create_detection(_sighting("SEARCH_missing"))
    with pytest.raises(CameraNotFoundError):
        await tracker.create_detection(_sighting(search_id, camera_id="CAM_MISSING"))

    assert sink.detections == []
    assert await tracker.list_search_detections(search_id) == []


@pytest.mark.asyncio
async def test_enrichment_failure_skips_broadcast(tracker, sink, monkeypatch, caplog) -> None:
    search_id = await _open_search(tracker)

    async def _vanished(detection_id: str):
        raise NoResultFound(detection_id)

    monkeypatch.setattr(tracker.storage, "get_detection", _vanished)

    with caplog.at_level(logging.ERROR, logger="vehicletracker.service"):
        record = await tracker.create_detection(_sighting(search_id))

    assert record.search_id == search_id
    assert record.camera_name is None
    assert sink.detections == []
    assert "not broadcasting" in caplog.text


@pytest.mark.asyncio
async def test_simulate_detection_uses_camera_location(db_url, sink) -> None:
    tracker = TrackerService(
        storage=TrackerStorage(db_url=db_url), events=sink, rng=random.Random(7)
    )
    async with tracker:
        search_id = await _open_search(tracker)
        cameras = {camera.id: camera for camera in await tracker.list_cameras()}

        records = [await tracker.simulate_detection(search_id) for _ in range(5)]

    for record in records:
        camera = cameras[record.camera_id]
        assert 0.75 <= record.confidence <= 0.99
        assert (record.location_lat, record.location_lng) == (
            camera.location_lat,
            camera.location_lng,
        )
    assert [record.id for record in sink.detections] == [record.id for record in records]


@pytest.mark.asyncio
async def test_simulate_detection_unknown_search(tracker) -> None:
    with pytest.raises(SearchNotFoundError):
        await tracker.simulate_detection("SEARCH_missing")


@pytest.mark.asyncio
async def test_simulate_detection_without_cameras(tracker) -> None:
    search_id = await _open_search(tracker)
    for camera in await tracker.list_cameras():
        await tracker.delete_camera(camera.id)

    with pytest.raises(CameraNotFoundError):
        await tracker.simulate_detection(search_id)


@pytest.mark.asyncio
async def test_detection_detail_includes_search_fields(tracker) -> None:
    search_id = await _open_search(tracker, plate="XYZ789")
    record = await tracker.create_detection(
        _sighting(search_id, metadata={"lane": 2}, image_url="http://img/1.jpg")
    )

    detail = await tracker.get_detection(record.id)

    assert detail.license_plate == "XYZ789"
    assert (detail.make, detail.model, detail.color) == ("Toyota", "Camry", "Blue")
    assert detail.metadata == {"lane": 2}
    assert detail.image_url == "http://img/1.jpg"

    with pytest.raises(DetectionNotFoundError):
        await tracker.get_detection("DET_missing")


@pytest.mark.asyncio
async def test_search_detections_are_newest_first(tracker) -> None:
    search_id = await _open_search(tracker)
    base = datetime(2024, 10, 19, 8, 0, tzinfo=UTC)
    for offset in (0, 2, 1):
        await tracker.create_detection(
            _sighting(search_id, timestamp=base + timedelta(minutes=offset))
        )

    detections = await tracker.list_search_detections(search_id)

    assert [item.timestamp for item in detections] == [
        base + timedelta(minutes=2),
        base + timedelta(minutes=1),
        base,
    ]
    assert all(item.camera_name == "Market St & 5th" for item in detections)


@pytest.mark.asyncio
async def test_search_updates_and_filters(tracker) -> None:
    search_id = await _open_search(tracker)
    await _open_search(tracker, plate="OTHER1")

    with pytest.raises(NoFieldsToUpdateError):
        await tracker.update_search(search_id, SearchUpdate())
    with pytest.raises(SearchNotFoundError):
        await tracker.update_search("SEARCH_missing", SearchUpdate(status="closed"))

    updated = await tracker.update_search(
        search_id, SearchUpdate(status="closed", priority="high")
    )
    assert (updated.status, updated.priority) == ("closed", "high")
    assert updated.make == "Toyota"

    closed = await tracker.list_searches(status="closed")
    assert [search.id for search in closed] == [search_id]
    assert len(await tracker.list_searches()) == 2


@pytest.mark.asyncio
async def test_deleting_search_removes_its_detections(tracker) -> None:
    search_id = await _open_search(tracker)
    record = await tracker.create_detection(_sighting(search_id))

    await tracker.delete_search(search_id)

    with pytest.raises(DetectionNotFoundError):
        await tracker.get_detection(record.id)
    with pytest.raises(SearchNotFoundError):
        await tracker.delete_search(search_id)


@pytest.mark.asyncio
async def test_camera_lifecycle_and_stats(tracker) -> None:
    camera = await tracker.create_camera(
        CameraCreate(name="Pier 39", location_lat=37.8087, location_lng=-122.4098)
    )
    assert camera.id.startswith("CAM_") and len(camera.id) == 12
    assert camera.status == "active"

    with pytest.raises(NoFieldsToUpdateError):
        await tracker.update_camera(camera.id, CameraUpdate())
    updated = await tracker.update_camera(camera.id, CameraUpdate(status="offline"))
    assert updated.status == "offline"

    empty = await tracker.camera_stats(camera.id)
    assert empty.total_detections == 0
    assert empty.first_detection is None

    search_id = await _open_search(tracker)
    await tracker.create_detection(_sighting(search_id, camera_id=camera.id, confidence=0.8))
    await tracker.create_detection(_sighting(search_id, camera_id=camera.id, confidence=0.9))

    stats = await tracker.camera_stats(camera.id)
    assert stats.total_detections == 2
    assert stats.avg_confidence == pytest.approx(0.85)
    assert stats.first_detection is not None and stats.first_detection.tzinfo is not None

    await tracker.delete_camera(camera.id)
    with pytest.raises(CameraNotFoundError):
        await tracker.get_camera(camera.id)
    with pytest.raises(CameraNotFoundError):
        await tracker.camera_stats(camera.id)


@pytest.mark.asyncio
async def test_alerts_are_published_and_acknowledged(tracker, sink) -> None:
    search_id = await _open_search(tracker)
    detection = await tracker.create_detection(_sighting(search_id))

    alert = await tracker.create_alert(
        AlertCreate(
            detection_id=detection.id,
            type="match",
            message="ABC123 spotted",
            severity="high",
        )
    )

    assert sink.alerts == [alert]
    assert alert.acknowledged is False
    assert [item.id for item in await tracker.list_alerts(unacknowledged_only=True)] == [
        alert.id
    ]

    acknowledged = await tracker.acknowledge_alert(alert.id)
    assert acknowledged.acknowledged is True
    assert await tracker.list_alerts(unacknowledged_only=True) == []
    assert len(await tracker.list_alerts()) == 1

    with pytest.raises(AlertNotFoundError):
        await tracker.acknowledge_alert(9999)
    with pytest.raises(DetectionNotFoundError):
        await tracker.create_alert(
            AlertCreate(detection_id="DET_missing", type="match", message="nope")
        )
    assert len(sink.alerts) == 1


@pytest.mark.asyncio
async def test_detection_stats_filters(tracker) -> None:
    first = await _open_search(tracker)
    second = await _open_search(tracker, plate="OTHER1")
    base = datetime(2024, 10, 1, tzinfo=UTC)
    await tracker.create_detection(_sighting(first, timestamp=base))
    await tracker.create_detection(
        _sighting(first, camera_id="CAM_002", timestamp=base + timedelta(days=1))
    )
    await tracker.create_detection(_sighting(second, timestamp=base + timedelta(days=2)))

    overall = await tracker.detection_stats()
    assert overall.total_detections == 3
    assert overall.searches_detected == 2
    assert overall.cameras_used == 2

    scoped = await tracker.detection_stats(search_id=first)
    assert scoped.total_detections == 2
    assert scoped.first_detection == base
    assert scoped.last_detection == base + timedelta(days=1)

    windowed = await tracker.detection_stats(start=base + timedelta(hours=12))
    assert windowed.total_detections == 2


@pytest.mark.asyncio
async def test_analytics_summaries(tracker) -> None:
    found = await _open_search(tracker)
    await _open_search(tracker, plate="NOTSEEN")
    await tracker.create_detection(_sighting(found, confidence=0.8))
    await tracker.create_detection(_sighting(found, camera_id="CAM_002", confidence=0.9))
    await tracker.create_detection(_sighting(found, confidence=1.0))

    dashboard = await tracker.dashboard()
    assert dashboard.total_searches == 2
    assert dashboard.active_searches == 2
    assert dashboard.total_detections == 3
    assert dashboard.today_detections == 3
    assert dashboard.active_cameras == 5
    assert dashboard.avg_confidence == pytest.approx(0.9)

    rate = await tracker.search_success_rate()
    assert (rate.total_searches, rate.successful_searches, rate.failed_searches) == (2, 1, 1)
    assert rate.success_rate == 50.0

    trends = await tracker.detection_trends("24h")
    assert sum(point.count for point in trends) == 3
    assert await tracker.detection_trends("bogus") == await tracker.detection_trends("7d")

    top = await tracker.top_cameras(limit=2)
    assert [(camera.id, camera.detection_count) for camera in top] == [
        ("CAM_001", 2),
        ("CAM_002", 1),
    ]

    heatmap = await tracker.heatmap()
    assert sum(point.intensity for point in heatmap) == 3

    activity = await tracker.recent_activity(limit=2)
    assert len(activity) == 2
    assert all(item.license_plate == "ABC123" for item in activity)
    assert activity[0].timestamp >= activity[1].timestamp


@pytest.mark.asyncio
async def test_success_rate_without_searches(tracker) -> None:
    rate = await tracker.search_success_rate()

    assert rate.total_searches == 0
    assert rate.success_rate == 0.0
