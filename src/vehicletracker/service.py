"""Case and detection service coordinating storage with live broadcasts."""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Mapping, Protocol, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy.exc import NoResultFound, SQLAlchemyError

from .db import Alert, Camera, Detection, Search
from .exceptions import (
    AlertNotFoundError,
    CameraNotFoundError,
    DetectionNotFoundError,
    NoFieldsToUpdateError,
    SearchNotFoundError,
)
from .schemas import (
    ActivityItem,
    AlertCreate,
    AlertRecord,
    CameraCreate,
    CameraRead,
    CameraStats,
    CameraUpdate,
    DashboardStats,
    DetectionCreate,
    DetectionDetail,
    DetectionRecord,
    DetectionStats,
    HeatmapPoint,
    SearchCreate,
    SearchRead,
    SearchSuccessRate,
    SearchUpdate,
    TopCamera,
    TrendPoint,
)
from .storage import AlertCreate as StorageAlertCreate
from .storage import CameraCreate as StorageCameraCreate
from .storage import CameraUpdate as StorageCameraUpdate
from .storage import DetectionCreate as StorageDetectionCreate
from .storage import SearchCreate as StorageSearchCreate
from .storage import SearchUpdate as StorageSearchUpdate
from .storage import TrackerStorage

logger = logging.getLogger(__name__)

TREND_WINDOWS: dict[str, timedelta] = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "1y": timedelta(days=365),
}

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class BroadcastSink(Protocol):
    """Consumer of events the service publishes after a successful write."""

    def on_detection_persisted(self, record: DetectionRecord) -> None:
        """Called once per committed and enriched detection."""

    def on_alert_raised(self, record: AlertRecord) -> None:
        """Called once per committed alert."""


class TrackerService:
    """Coordinate durable storage with live event publication."""

    def __init__(
        self,
        *,
        storage: TrackerStorage | None = None,
        events: BroadcastSink | None = None,
        now: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._storage = storage or TrackerStorage()
        self._events = events
        self._now = now or (lambda: datetime.now(UTC))
        self._rng = rng or random.Random()
        self._lock = asyncio.Lock()
        self._initialized = False

    @property
    def storage(self) -> TrackerStorage:
        """Expose the underlying :class:`TrackerStorage` for inspection/tests."""

        return self._storage

    def bind_events(self, events: BroadcastSink | None) -> None:
        """Attach the sink that receives detection and alert events."""

        self._events = events

    async def __aenter__(self) -> "TrackerService":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()

    async def initialize(self) -> None:
        """Ensure the backing storage is ready for use."""

        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return
            await self._storage.initialize()
            self._initialized = True

    async def close(self) -> None:
        """Dispose of the storage engine and reset internal state."""

        if not self._initialized:
            return

        async with self._lock:
            if not self._initialized:
                return
            await self._storage.close()
            self._initialized = False

    # Cameras

    async def list_cameras(self) -> list[CameraRead]:
        await self.initialize()
        return [self._camera_to_schema(camera) for camera in await self._storage.list_cameras()]

    async def get_camera(self, camera_id: str) -> CameraRead:
        return self._camera_to_schema(await self._get_camera(camera_id))

    async def create_camera(self, payload: CameraCreate) -> CameraRead:
        await self.initialize()
        camera = await self._storage.create_camera(
            StorageCameraCreate(**payload.model_dump())
        )
        logger.info("Registered camera %s (%s)", camera.id, camera.name)
        return self._camera_to_schema(camera)

    async def update_camera(self, camera_id: str, payload: CameraUpdate) -> CameraRead:
        changes = payload.model_dump(exclude_none=True)
        if not changes:
            raise NoFieldsToUpdateError("No fields to update")
        await self._get_camera(camera_id)
        camera = await self._storage.update_camera(
            camera_id, StorageCameraUpdate(**changes)
        )
        return self._camera_to_schema(camera)

    async def delete_camera(self, camera_id: str) -> None:
        await self.initialize()
        if not await self._storage.delete_camera(camera_id):
            raise CameraNotFoundError(camera_id)
        logger.info("Deleted camera %s", camera_id)

    async def camera_stats(self, camera_id: str) -> CameraStats:
        await self._get_camera(camera_id)
        row = await self._storage.camera_stats(camera_id)
        return CameraStats(
            camera_id=camera_id,
            total_detections=int(row.total_detections or 0),
            avg_confidence=row.avg_confidence,
            first_detection=self._normalize_datetime(
                row.first_detection, field="first_detection", required=False
            ),
            last_detection=self._normalize_datetime(
                row.last_detection, field="last_detection", required=False
            ),
        )

    # Searches

    async def list_searches(
        self, *, status: str | None = None, priority: str | None = None
    ) -> list[SearchRead]:
        await self.initialize()
        searches = await self._storage.list_searches(status=status, priority=priority)
        return [self._search_to_schema(search) for search in searches]

    async def get_search(self, search_id: str) -> SearchRead:
        return self._search_to_schema(await self._get_search(search_id))

    async def create_search(self, payload: SearchCreate) -> SearchRead:
        await self.initialize()
        search = await self._storage.create_search(
            StorageSearchCreate(**payload.model_dump())
        )
        logger.info("Opened search %s for plate %s", search.id, search.license_plate)
        return self._search_to_schema(search)

    async def update_search(self, search_id: str, payload: SearchUpdate) -> SearchRead:
        changes = payload.model_dump(exclude_none=True)
        if not changes:
            raise NoFieldsToUpdateError("No fields to update")
        await self._get_search(search_id)
        search = await self._storage.update_search(
            search_id, StorageSearchUpdate(**changes)
        )
        return self._search_to_schema(search)

    async def delete_search(self, search_id: str) -> None:
        await self.initialize()
        if not await self._storage.delete_search(search_id):
            raise SearchNotFoundError(search_id)
        logger.info("Deleted search %s", search_id)

    # Detections

    async def create_detection(self, payload: DetectionCreate) -> DetectionRecord:
        """Persist a detection and publish it once it is committed and enriched."""

        await self._get_search(payload.search_id)
        await self._get_camera(payload.camera_id)
        timestamp = self._normalize_datetime(
            payload.timestamp or self._now(), field="timestamp", required=True
        )
        detection = await self._storage.create_detection(
            StorageDetectionCreate(
                search_id=payload.search_id,
                camera_id=payload.camera_id,
                confidence=payload.confidence,
                location_lat=payload.location_lat,
                location_lng=payload.location_lng,
                timestamp=timestamp,
                image_url=payload.image_url,
                metadata=payload.metadata,
            )
        )
        return self._publish_detection(detection, await self._enrich(detection))

    async def simulate_detection(self, search_id: str) -> DetectionRecord:
        """Record a synthetic sighting of ``search_id`` at a random camera."""

        await self._get_search(search_id)
        camera = await self._storage.random_camera()
        if camera is None:
            raise CameraNotFoundError("no cameras available")

        return await self.create_detection(
            DetectionCreate(
                search_id=search_id,
                camera_id=camera.id,
                confidence=0.75 + self._rng.random() * 0.24,
                location_lat=camera.location_lat,
                location_lng=camera.location_lng,
            )
        )

    async def get_detection(self, detection_id: str) -> DetectionDetail:
        await self.initialize()
        try:
            detection = await self._storage.get_detection(detection_id)
        except NoResultFound as exc:
            raise DetectionNotFoundError(detection_id) from exc

        payload = self._detection_payload(detection, detection.camera)
        search = detection.search
        payload.update(
            license_plate=search.license_plate,
            make=search.make,
            model=search.model,
            color=search.color,
        )
        return self._validate_schema(DetectionDetail, payload)

    async def list_search_detections(self, search_id: str) -> list[DetectionRecord]:
        await self.initialize()
        detections = await self._storage.list_search_detections(search_id)
        return [
            self._validate_schema(
                DetectionRecord, self._detection_payload(detection, detection.camera)
            )
            for detection in detections
        ]

    async def detection_stats(
        self,
        *,
        search_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> DetectionStats:
        await self.initialize()
        row = await self._storage.detection_stats(
            search_id=search_id,
            start=self._normalize_datetime(start, field="start_date", required=False),
            end=self._normalize_datetime(end, field="end_date", required=False),
        )
        return DetectionStats(
            total_detections=int(row.total_detections or 0),
            avg_confidence=row.avg_confidence,
            cameras_used=int(row.cameras_used or 0),
            searches_detected=int(row.searches_detected or 0),
            first_detection=self._normalize_datetime(
                row.first_detection, field="first_detection", required=False
            ),
            last_detection=self._normalize_datetime(
                row.last_detection, field="last_detection", required=False
            ),
        )

    # Alerts

    async def create_alert(self, payload: AlertCreate) -> AlertRecord:
        """Persist an alert for an existing detection and publish it."""

        await self.initialize()
        try:
            await self._storage.get_detection(payload.detection_id)
        except NoResultFound as exc:
            raise DetectionNotFoundError(payload.detection_id) from exc

        alert = await self._storage.create_alert(
            StorageAlertCreate(**payload.model_dump())
        )
        record = self._alert_to_schema(alert)
        if self._events is not None:
            self._events.on_alert_raised(record)
        return record

    async def list_alerts(self, *, unacknowledged_only: bool = False) -> list[AlertRecord]:
        await self.initialize()
        alerts = await self._storage.list_alerts(unacknowledged_only=unacknowledged_only)
        return [self._alert_to_schema(alert) for alert in alerts]

    async def acknowledge_alert(self, alert_id: int) -> AlertRecord:
        await self.initialize()
        try:
            alert = await self._storage.acknowledge_alert(alert_id)
        except NoResultFound as exc:
            raise AlertNotFoundError(alert_id) from exc
        return self._alert_to_schema(alert)

    # Analytics

    async def dashboard(self) -> DashboardStats:
        await self.initialize()
        now = self._now().astimezone(UTC)
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        counts = await self._storage.dashboard_counts(day_start=day_start)
        return DashboardStats(**counts)

    async def detection_trends(self, period: str = "7d") -> list[TrendPoint]:
        """Bucket recent detections; unknown periods fall back to ``7d``."""

        await self.initialize()
        if period not in TREND_WINDOWS:
            period = "7d"
        since = self._now().astimezone(UTC) - TREND_WINDOWS[period]
        rows = await self._storage.detection_trends(period=period, since=since)
        return [
            TrendPoint(
                period=str(row.period),
                count=int(row.count),
                avg_confidence=row.avg_confidence,
            )
            for row in rows
        ]

    async def top_cameras(self, *, limit: int = 10) -> list[TopCamera]:
        await self.initialize()
        rows = await self._storage.top_cameras(limit=limit)
        return [
            TopCamera(
                id=row.id,
                name=row.name,
                location_lat=row.location_lat,
                location_lng=row.location_lng,
                detection_count=int(row.detection_count),
                avg_confidence=row.avg_confidence,
            )
            for row in rows
        ]

    async def heatmap(
        self, *, start: datetime | None = None, end: datetime | None = None
    ) -> list[HeatmapPoint]:
        await self.initialize()
        rows = await self._storage.heatmap(
            start=self._normalize_datetime(start, field="start_date", required=False),
            end=self._normalize_datetime(end, field="end_date", required=False),
        )
        return [
            HeatmapPoint(
                location_lat=row.location_lat,
                location_lng=row.location_lng,
                intensity=int(row.intensity),
            )
            for row in rows
        ]

    async def search_success_rate(self) -> SearchSuccessRate:
        await self.initialize()
        rows = await self._storage.search_detection_counts()
        total = len(rows)
        successful = sum(1 for row in rows if row.detection_count > 0)
        rate = (successful / total) * 100 if total else 0.0
        return SearchSuccessRate(
            total_searches=total,
            successful_searches=successful,
            failed_searches=total - successful,
            success_rate=round(rate, 2),
        )

    async def recent_activity(self, *, limit: int = 50) -> list[ActivityItem]:
        await self.initialize()
        rows = await self._storage.recent_activity(limit=limit)
        return [
            ActivityItem(
                id=row.id,
                timestamp=self._normalize_datetime(
                    row.timestamp, field="timestamp", required=True
                ),
                camera_id=row.camera_id,
                camera_name=row.camera_name,
                license_plate=row.license_plate,
                confidence=row.confidence,
            )
            for row in rows
        ]

    # Internals

    async def _get_search(self, search_id: str) -> Search:
        await self.initialize()
        try:
            return await self._storage.get_search(search_id)
        except NoResultFound as exc:
            raise SearchNotFoundError(search_id) from exc

    async def _get_camera(self, camera_id: str) -> Camera:
        await self.initialize()
        try:
            return await self._storage.get_camera(camera_id)
        except NoResultFound as exc:
            raise CameraNotFoundError(camera_id) from exc

    async def _enrich(self, detection: Detection) -> Detection | None:
        """Re-read a committed detection with its camera joined in."""

        try:
            return await self._storage.get_detection(detection.id)
        except (NoResultFound, SQLAlchemyError):
            logger.exception(
                "Could not load detection %s after insert; not broadcasting",
                detection.id,
            )
            return None

    def _publish_detection(
        self, detection: Detection, enriched: Detection | None
    ) -> DetectionRecord:
        if enriched is None:
            return self._validate_schema(
                DetectionRecord, self._detection_payload(detection, None)
            )

        record = self._validate_schema(
            DetectionRecord, self._detection_payload(enriched, enriched.camera)
        )
        if self._events is not None:
            self._events.on_detection_persisted(record)
        return record

    def _detection_payload(
        self, detection: Detection, camera: Camera | None
    ) -> dict[str, Any]:
        return {
            "id": detection.id,
            "search_id": detection.search_id,
            "camera_id": detection.camera_id,
            "timestamp": self._normalize_datetime(
                detection.timestamp, field="timestamp", required=True
            ),
            "confidence": detection.confidence,
            "location_lat": detection.location_lat,
            "location_lng": detection.location_lng,
            "image_url": detection.image_url,
            "metadata": self._coerce_optional_mapping(detection.metadata_),
            "camera_name": camera.name if camera is not None else None,
            "camera_address": camera.address if camera is not None else None,
        }

    def _camera_to_schema(self, camera: Camera) -> CameraRead:
        return self._validate_schema(
            CameraRead,
            {
                "id": camera.id,
                "name": camera.name,
                "location_lat": camera.location_lat,
                "location_lng": camera.location_lng,
                "status": camera.status,
                "address": camera.address,
                "description": camera.description,
                "created_at": self._normalize_datetime(
                    camera.created_at, field="created_at", required=True
                ),
                "updated_at": self._normalize_datetime(
                    camera.updated_at, field="updated_at", required=True
                ),
            },
        )

    def _search_to_schema(self, search: Search) -> SearchRead:
        return self._validate_schema(
            SearchRead,
            {
                "id": search.id,
                "license_plate": search.license_plate,
                "make": search.make,
                "model": search.model,
                "color": search.color,
                "year": search.year,
                "status": search.status,
                "priority": search.priority,
                "notes": search.notes,
                "created_at": self._normalize_datetime(
                    search.created_at, field="created_at", required=True
                ),
                "updated_at": self._normalize_datetime(
                    search.updated_at, field="updated_at", required=True
                ),
            },
        )

    def _alert_to_schema(self, alert: Alert) -> AlertRecord:
        return self._validate_schema(
            AlertRecord,
            {
                "id": alert.id,
                "detection_id": alert.detection_id,
                "type": alert.type,
                "message": alert.message,
                "severity": alert.severity,
                "acknowledged": bool(alert.acknowledged),
                "created_at": self._normalize_datetime(
                    alert.created_at, field="created_at", required=True
                ),
            },
        )

    @staticmethod
    def _coerce_optional_mapping(value: Any) -> dict[str, Any] | None:
        if value is None:
            return None
        if isinstance(value, Mapping):
            return dict(value.items())
        raise TypeError(f"Unsupported metadata value: {value!r}")

    @staticmethod
    def _normalize_datetime(
        value: Any, *, field: str, required: bool
    ) -> datetime | None:
        """
        Return a timezone-aware datetime converted to UTC.

        SQLite stores timestamps without timezone information, so naive values
        read back through SQLAlchemy are UTC and get the zone attached here.
        Aggregates such as ``MIN(timestamp)`` come back as strings.
        """

        if value is None:
            if required:
                raise ValueError(f"{field} cannot be None")
            return None

        dt: datetime
        if isinstance(value, datetime):
            dt = value
        elif isinstance(value, str):
            try:
                dt = datetime.fromisoformat(value)
            except ValueError as exc:
                raise ValueError(
                    f"Invalid datetime string for {field}: {value}"
                ) from exc
        else:
            raise TypeError(f"Unsupported {field} value: {value!r}")

        if dt.tzinfo is None:
            return dt.replace(tzinfo=UTC)
        return dt.astimezone(UTC)

    @staticmethod
    def _validate_schema(model: Type[SchemaT], payload: dict[str, Any]) -> SchemaT:
        return model.model_validate(payload)
