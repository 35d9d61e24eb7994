"""High-level API for interacting with the durable tracker store."""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any

from sqlalchemy import case, delete, func, select
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import joinedload

from ..db import Alert, Camera, Detection, Search, create_engine, get_sessionmaker
from ..db.session import init_db, session_scope

TREND_BUCKETS: dict[str, str] = {
    "24h": "%Y-%m-%d %H:00",
    "7d": "%Y-%m-%d",
    "30d": "%Y-%m-%d",
    "1y": "%Y-%m",
}


@dataclass(slots=True)
class CameraCreate:
    """Payload required to register a camera."""

    name: str
    location_lat: float
    location_lng: float
    address: str | None = None
    description: str | None = None
    status: str = "active"


@dataclass(slots=True)
class CameraUpdate:
    """Partial camera update; ``None`` leaves a column untouched."""

    name: str | None = None
    location_lat: float | None = None
    location_lng: float | None = None
    status: str | None = None
    address: str | None = None
    description: str | None = None


@dataclass(slots=True)
class SearchCreate:
    """Payload required to open a search case."""

    license_plate: str
    make: str | None = None
    model: str | None = None
    color: str | None = None
    year: str | None = None
    priority: str = "normal"
    notes: str | None = None


@dataclass(slots=True)
class SearchUpdate:
    """Partial search update; ``None`` leaves a column untouched."""

    license_plate: str | None = None
    make: str | None = None
    model: str | None = None
    color: str | None = None
    year: str | None = None
    status: str | None = None
    priority: str | None = None
    notes: str | None = None


@dataclass(slots=True)
class DetectionCreate:
    """Payload for persisting a detection event."""

    search_id: str
    camera_id: str
    confidence: float
    location_lat: float
    location_lng: float
    timestamp: datetime | None = None
    image_url: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass(slots=True)
class AlertCreate:
    """Payload for raising an alert on a detection."""

    detection_id: str
    type: str
    message: str
    severity: str = "info"


def _changed_values(payload: Any) -> dict[str, Any]:
    return {
        item.name: getattr(payload, item.name)
        for item in fields(payload)
        if getattr(payload, item.name) is not None
    }


class TrackerStorage:
    """Facade responsible for durable tracker persistence."""

    def __init__(
        self, *, engine: AsyncEngine | None = None, db_url: str | None = None
    ) -> None:
        if engine is None:
            self.engine = create_engine(db_url)
        else:
            self.engine = engine
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        if self._sessionmaker is None:
            self._sessionmaker = get_sessionmaker(self.engine)
        return self._sessionmaker

    async def initialize(self) -> None:
        """Apply database migrations on first launch."""

        await init_db(self.engine)

    async def close(self) -> None:
        """Dispose of the underlying connection pool."""

        await self.engine.dispose()

    async def __aenter__(self) -> "TrackerStorage":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()

    # Cameras

    async def list_cameras(self) -> list[Camera]:
        async with self.sessionmaker() as session:
            result = await session.execute(
                select(Camera).order_by(Camera.created_at.desc(), Camera.id)
            )
            return list(result.scalars().all())

    async def get_camera(self, camera_id: str) -> Camera:
        """Retrieve a camera by identifier."""

        async with self.sessionmaker() as session:
            result = await session.execute(select(Camera).where(Camera.id == camera_id))
            return result.scalar_one()

    async def random_camera(self) -> Camera | None:
        """Return an arbitrary camera, used by the detection simulator."""

        async with self.sessionmaker() as session:
            result = await session.execute(
                select(Camera).order_by(func.random()).limit(1)
            )
            return result.scalar_one_or_none()

    async def create_camera(self, payload: CameraCreate) -> Camera:
        async with session_scope(self.sessionmaker) as session:
            camera = Camera(
                name=payload.name,
                location_lat=payload.location_lat,
                location_lng=payload.location_lng,
                status=payload.status,
                address=payload.address,
                description=payload.description,
            )
            session.add(camera)
            await session.flush()
            await session.refresh(camera)
            return camera

    async def update_camera(self, camera_id: str, payload: CameraUpdate) -> Camera:
        """Apply a partial update and return the refreshed camera."""

        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(select(Camera).where(Camera.id == camera_id))
            camera = result.scalar_one()
            for name, value in _changed_values(payload).items():
                setattr(camera, name, value)
            await session.flush()
            await session.refresh(camera)
            return camera

    async def delete_camera(self, camera_id: str) -> bool:
        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(delete(Camera).where(Camera.id == camera_id))
            return result.rowcount > 0

    async def camera_stats(self, camera_id: str) -> Row[Any]:
        """Return detection aggregates for one camera."""

        async with self.sessionmaker() as session:
            result = await session.execute(
                select(
                    func.count(Detection.id).label("total_detections"),
                    func.avg(Detection.confidence).label("avg_confidence"),
                    func.min(Detection.timestamp).label("first_detection"),
                    func.max(Detection.timestamp).label("last_detection"),
                ).where(Detection.camera_id == camera_id)
            )
            return result.one()

    # Searches

    async def list_searches(
        self, *, status: str | None = None, priority: str | None = None
    ) -> list[Search]:
        """Return searches newest first, optionally filtered."""

        stmt = select(Search)
        if status:
            stmt = stmt.where(Search.status == status)
        if priority:
            stmt = stmt.where(Search.priority == priority)
        async with self.sessionmaker() as session:
            result = await session.execute(
                stmt.order_by(Search.created_at.desc(), Search.id)
            )
            return list(result.scalars().all())

    async def get_search(self, search_id: str) -> Search:
        async with self.sessionmaker() as session:
            result = await session.execute(select(Search).where(Search.id == search_id))
            return result.scalar_one()

    async def create_search(self, payload: SearchCreate) -> Search:
        async with session_scope(self.sessionmaker) as session:
            search = Search(
                license_plate=payload.license_plate,
                make=payload.make,
                model=payload.model,
                color=payload.color,
                year=payload.year,
                priority=payload.priority,
                notes=payload.notes,
            )
            session.add(search)
            await session.flush()
            await session.refresh(search)
            return search

    async def update_search(self, search_id: str, payload: SearchUpdate) -> Search:
        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(select(Search).where(Search.id == search_id))
            search = result.scalar_one()
            for name, value in _changed_values(payload).items():
                setattr(search, name, value)
            await session.flush()
            await session.refresh(search)
            return search

    async def delete_search(self, search_id: str) -> bool:
        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(delete(Search).where(Search.id == search_id))
            return result.rowcount > 0

    # Detections

    async def create_detection(self, payload: DetectionCreate) -> Detection:
        """Persist a new detection; the transaction is committed on return."""

        async with session_scope(self.sessionmaker) as session:
            detection = Detection(
                search_id=payload.search_id,
                camera_id=payload.camera_id,
                confidence=payload.confidence,
                location_lat=payload.location_lat,
                location_lng=payload.location_lng,
                image_url=payload.image_url,
                metadata_=payload.metadata,
            )
            if payload.timestamp is not None:
                detection.timestamp = payload.timestamp
            session.add(detection)
            await session.flush()
            await session.refresh(detection)
            return detection

    async def get_detection(self, detection_id: str) -> Detection:
        """Retrieve a detection joined with its camera and search."""

        async with self.sessionmaker() as session:
            result = await session.execute(
                select(Detection)
                .options(joinedload(Detection.camera), joinedload(Detection.search))
                .where(Detection.id == detection_id)
            )
            return result.scalar_one()

    async def list_search_detections(self, search_id: str) -> list[Detection]:
        """Return a search's detections newest first, joined with cameras."""

        async with self.sessionmaker() as session:
            result = await session.execute(
                select(Detection)
                .options(joinedload(Detection.camera))
                .where(Detection.search_id == search_id)
                .order_by(Detection.timestamp.desc())
            )
            return list(result.scalars().all())

    async def detection_stats(
        self,
        *,
        search_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Row[Any]:
        """Return aggregate detection statistics with optional filters."""

        stmt = select(
            func.count(Detection.id).label("total_detections"),
            func.avg(Detection.confidence).label("avg_confidence"),
            func.count(func.distinct(Detection.camera_id)).label("cameras_used"),
            func.count(func.distinct(Detection.search_id)).label("searches_detected"),
            func.min(Detection.timestamp).label("first_detection"),
            func.max(Detection.timestamp).label("last_detection"),
        )
        if search_id:
            stmt = stmt.where(Detection.search_id == search_id)
        if start is not None:
            stmt = stmt.where(Detection.timestamp >= start)
        if end is not None:
            stmt = stmt.where(Detection.timestamp <= end)
        async with self.sessionmaker() as session:
            result = await session.execute(stmt)
            return result.one()

    # Alerts

    async def create_alert(self, payload: AlertCreate) -> Alert:
        async with session_scope(self.sessionmaker) as session:
            alert = Alert(
                detection_id=payload.detection_id,
                type=payload.type,
                message=payload.message,
                severity=payload.severity,
            )
            session.add(alert)
            await session.flush()
            await session.refresh(alert)
            return alert

    async def list_alerts(self, *, unacknowledged_only: bool = False) -> list[Alert]:
        stmt = select(Alert)
        if unacknowledged_only:
            stmt = stmt.where(Alert.acknowledged.is_(False))
        async with self.sessionmaker() as session:
            result = await session.execute(
                stmt.order_by(Alert.created_at.desc(), Alert.id.desc())
            )
            return list(result.scalars().all())

    async def acknowledge_alert(self, alert_id: int) -> Alert:
        async with session_scope(self.sessionmaker) as session:
            result = await session.execute(select(Alert).where(Alert.id == alert_id))
            alert = result.scalar_one()
            alert.acknowledged = True
            await session.flush()
            await session.refresh(alert)
            return alert

    # Analytics

    async def dashboard_counts(self, *, day_start: datetime) -> dict[str, Any]:
        """Return the headline counters shown on the dashboard."""

        async with self.sessionmaker() as session:
            searches = (
                await session.execute(
                    select(
                        func.count(Search.id),
                        func.count(case((Search.status == "active", Search.id))),
                    )
                )
            ).one()
            detections = (
                await session.execute(
                    select(
                        func.count(Detection.id),
                        func.count(case((Detection.timestamp >= day_start, Detection.id))),
                        func.avg(Detection.confidence),
                    )
                )
            ).one()
            active_cameras = (
                await session.execute(
                    select(func.count(Camera.id)).where(Camera.status == "active")
                )
            ).scalar_one()

        return {
            "total_searches": int(searches[0]),
            "active_searches": int(searches[1]),
            "total_detections": int(detections[0]),
            "today_detections": int(detections[1]),
            "avg_confidence": float(detections[2] or 0.0),
            "active_cameras": int(active_cameras),
        }

    async def detection_trends(self, *, period: str, since: datetime) -> list[Row[Any]]:
        """Group detections newer than ``since`` into time buckets.

        Bucket labels are produced with SQLite's ``strftime``.
        """

        bucket = func.strftime(TREND_BUCKETS.get(period, TREND_BUCKETS["7d"]), Detection.timestamp)
        stmt = (
            select(
                bucket.label("period"),
                func.count(Detection.id).label("count"),
                func.avg(Detection.confidence).label("avg_confidence"),
            )
            .where(Detection.timestamp >= since)
            .group_by(bucket)
            .order_by(bucket.asc())
        )
        async with self.sessionmaker() as session:
            result = await session.execute(stmt)
            return list(result.all())

    async def top_cameras(self, *, limit: int = 10) -> list[Row[Any]]:
        detection_count = func.count(Detection.id).label("detection_count")
        stmt = (
            select(
                Camera.id,
                Camera.name,
                Camera.location_lat,
                Camera.location_lng,
                detection_count,
                func.avg(Detection.confidence).label("avg_confidence"),
            )
            .outerjoin(Detection, Detection.camera_id == Camera.id)
            .group_by(Camera.id)
            .order_by(detection_count.desc(), Camera.id)
            .limit(limit)
        )
        async with self.sessionmaker() as session:
            result = await session.execute(stmt)
            return list(result.all())

    async def heatmap(
        self, *, start: datetime | None = None, end: datetime | None = None
    ) -> list[Row[Any]]:
        stmt = select(
            Detection.location_lat,
            Detection.location_lng,
            func.count(Detection.id).label("intensity"),
        )
        if start is not None:
            stmt = stmt.where(Detection.timestamp >= start)
        if end is not None:
            stmt = stmt.where(Detection.timestamp <= end)
        stmt = stmt.group_by(Detection.location_lat, Detection.location_lng)
        async with self.sessionmaker() as session:
            result = await session.execute(stmt)
            return list(result.all())

    async def search_detection_counts(self) -> list[Row[Any]]:
        """Return every search with the number of detections it has."""

        stmt = (
            select(
                Search.id,
                Search.license_plate,
                Search.status,
                func.count(Detection.id).label("detection_count"),
            )
            .outerjoin(Detection, Detection.search_id == Search.id)
            .group_by(Search.id)
        )
        async with self.sessionmaker() as session:
            result = await session.execute(stmt)
            return list(result.all())

    async def recent_activity(self, *, limit: int = 50) -> list[Row[Any]]:
        stmt = (
            select(
                Detection.id,
                Detection.timestamp,
                Detection.camera_id,
                Camera.name.label("camera_name"),
                Search.license_plate,
                Detection.confidence,
            )
            .join(Camera, Detection.camera_id == Camera.id)
            .join(Search, Detection.search_id == Search.id)
            .order_by(Detection.timestamp.desc())
            .limit(limit)
        )
        async with self.sessionmaker() as session:
            result = await session.execute(stmt)
            return list(result.all())
