from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CameraBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    location_lat: float = Field(..., ge=-90.0, le=90.0)
    location_lng: float = Field(..., ge=-180.0, le=180.0)
    address: Optional[str] = Field(default=None, max_length=256)
    description: Optional[str] = Field(default=None, max_length=500)


class CameraCreate(CameraBase):
    status: str = "active"


class CameraUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    location_lat: Optional[float] = Field(default=None, ge=-90.0, le=90.0)
    location_lng: Optional[float] = Field(default=None, ge=-180.0, le=180.0)
    status: Optional[str] = None
    address: Optional[str] = Field(default=None, max_length=256)
    description: Optional[str] = Field(default=None, max_length=500)


class CameraRead(CameraBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: str
    created_at: datetime
    updated_at: datetime


class CameraStats(BaseModel):
    camera_id: str
    total_detections: int = 0
    avg_confidence: Optional[float] = None
    first_detection: Optional[datetime] = None
    last_detection: Optional[datetime] = None


class SearchBase(BaseModel):
    make: Optional[str] = Field(default=None, max_length=64)
    model: Optional[str] = Field(default=None, max_length=64)
    color: Optional[str] = Field(default=None, max_length=32)
    year: Optional[str] = Field(default=None, max_length=8)
    notes: Optional[str] = Field(default=None, max_length=1000)


class SearchCreate(SearchBase):
    license_plate: str = Field(..., max_length=32)
    priority: str = "normal"

    @field_validator("license_plate")
    @classmethod
    def validate_license_plate(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("license_plate is required")
        return trimmed


class SearchUpdate(SearchBase):
    license_plate: Optional[str] = Field(default=None, max_length=32)
    status: Optional[str] = None
    priority: Optional[str] = None

    @field_validator("license_plate")
    @classmethod
    def validate_license_plate(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        trimmed = value.strip()
        return trimmed or None


class SearchRead(SearchBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    license_plate: str
    status: str
    priority: str
    created_at: datetime
    updated_at: datetime


class DetectionCreate(BaseModel):
    search_id: str = Field(..., min_length=1)
    camera_id: str = Field(..., min_length=1)
    confidence: float = Field(..., ge=0.0, le=1.0)
    location_lat: float = Field(..., ge=-90.0, le=90.0)
    location_lng: float = Field(..., ge=-180.0, le=180.0)
    timestamp: Optional[datetime] = None
    image_url: Optional[str] = Field(default=None, max_length=512)
    metadata: Optional[Dict[str, Any]] = None


class DetectionRecord(BaseModel):
    """Detection joined with the camera fields shown on the dashboard.

    This is the single shape returned by the insert and read endpoints and
    pushed to websocket subscribers.
    """

    id: str
    search_id: str
    camera_id: str
    timestamp: datetime
    confidence: float
    location_lat: float
    location_lng: float
    image_url: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    camera_name: Optional[str] = None
    camera_address: Optional[str] = None


class DetectionDetail(DetectionRecord):
    license_plate: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    color: Optional[str] = None


class DetectionStats(BaseModel):
    total_detections: int = 0
    avg_confidence: Optional[float] = None
    cameras_used: int = 0
    searches_detected: int = 0
    first_detection: Optional[datetime] = None
    last_detection: Optional[datetime] = None


class AlertCreate(BaseModel):
    detection_id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1, max_length=64)
    message: str = Field(..., min_length=1, max_length=500)
    severity: str = "info"


class AlertRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    detection_id: str
    type: str
    message: str
    severity: str
    acknowledged: bool
    created_at: datetime


class DashboardStats(BaseModel):
    total_searches: int
    active_searches: int
    total_detections: int
    active_cameras: int
    today_detections: int
    avg_confidence: float


class TrendPoint(BaseModel):
    period: str
    count: int
    avg_confidence: Optional[float] = None


class TopCamera(BaseModel):
    id: str
    name: str
    location_lat: float
    location_lng: float
    detection_count: int
    avg_confidence: Optional[float] = None


class HeatmapPoint(BaseModel):
    location_lat: float
    location_lng: float
    intensity: int


class SearchSuccessRate(BaseModel):
    total_searches: int
    successful_searches: int
    failed_searches: int
    success_rate: float


class ActivityItem(BaseModel):
    type: str = "detection"
    id: str
    timestamp: datetime
    camera_id: str
    camera_name: str
    license_plate: str
    confidence: float


class SimulationStatus(BaseModel):
    search_id: str
    running: bool


class HealthStatus(BaseModel):
    status: str
    timestamp: datetime
    uptime: float
    connected_clients: int
    running_simulations: List[str] = Field(default_factory=list)
