"""Database models for cameras, searches, detections and alerts."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    func,
)
from sqlalchemy.ext.mutable import MutableDict
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


def new_camera_id() -> str:
    return f"CAM_{uuid4().hex[:8].upper()}"


def new_search_id() -> str:
    return f"SEARCH_{uuid4()}"


def new_detection_id() -> str:
    return f"DET_{uuid4()}"


class Camera(Base):
    """A fixed camera in the network that can sight searched vehicles."""

    __tablename__ = "cameras"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_camera_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    location_lat: Mapped[float] = mapped_column(Float, nullable=False)
    location_lng: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="active", server_default="active"
    )
    address: Mapped[str | None] = mapped_column(String(256))
    description: Mapped[str | None] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    detections: Mapped[list["Detection"]] = relationship(
        back_populates="camera",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Search(Base):
    """A tracked case for one license plate."""

    __tablename__ = "searches"
    __table_args__ = (Index("idx_searches_status", "status"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_search_id)
    license_plate: Mapped[str] = mapped_column(String(32), nullable=False)
    make: Mapped[str | None] = mapped_column(String(64))
    model: Mapped[str | None] = mapped_column(String(64))
    color: Mapped[str | None] = mapped_column(String(32))
    year: Mapped[str | None] = mapped_column(String(8))
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="active", server_default="active"
    )
    priority: Mapped[str] = mapped_column(
        String(32), nullable=False, default="normal", server_default="normal"
    )
    notes: Mapped[str | None] = mapped_column(String(1000))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    detections: Mapped[list["Detection"]] = relationship(
        back_populates="search",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Detection.timestamp.desc()",
    )


class Detection(Base):
    """A sighting of a searched vehicle at a camera."""

    __tablename__ = "detections"
    __table_args__ = (
        Index("idx_detections_search", "search_id"),
        Index("idx_detections_camera", "camera_id"),
        Index("idx_detections_timestamp", "timestamp"),
    )

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=new_detection_id
    )
    search_id: Mapped[str] = mapped_column(
        ForeignKey("searches.id", ondelete="CASCADE"), nullable=False
    )
    camera_id: Mapped[str] = mapped_column(
        ForeignKey("cameras.id", ondelete="CASCADE"), nullable=False
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    location_lat: Mapped[float] = mapped_column(Float, nullable=False)
    location_lng: Mapped[float] = mapped_column(Float, nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(512))
    # ``metadata`` is reserved on declarative classes.
    metadata_: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", MutableDict.as_mutable(JSON)
    )

    search: Mapped["Search"] = relationship(back_populates="detections")
    camera: Mapped["Camera"] = relationship(back_populates="detections")
    alerts: Mapped[list["Alert"]] = relationship(
        back_populates="detection",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Alert(Base):
    """An operator-facing alert raised for a detection."""

    __tablename__ = "alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    detection_id: Mapped[str] = mapped_column(
        ForeignKey("detections.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    message: Mapped[str] = mapped_column(String(500), nullable=False)
    severity: Mapped[str] = mapped_column(
        String(16), nullable=False, default="info", server_default="info"
    )
    acknowledged: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="0"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    detection: Mapped["Detection"] = relationship(back_populates="alerts")
