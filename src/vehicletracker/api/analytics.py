"""Dashboard analytics routes."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..schemas import (
    ActivityItem,
    DashboardStats,
    HeatmapPoint,
    SearchSuccessRate,
    TopCamera,
    TrendPoint,
)
from ..service import TrackerService
from .dependencies import get_tracker

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/dashboard", response_model=DashboardStats)
async def dashboard(tracker: TrackerService = Depends(get_tracker)) -> DashboardStats:
    return await tracker.dashboard()


@router.get("/trends/detections", response_model=List[TrendPoint])
async def detection_trends(
    period: str = Query(default="7d"),
    tracker: TrackerService = Depends(get_tracker),
) -> List[TrendPoint]:
    """Detection counts bucketed hourly (24h), daily (7d, 30d) or monthly (1y)."""

    return await tracker.detection_trends(period)


@router.get("/top-cameras", response_model=List[TopCamera])
async def top_cameras(
    limit: int = Query(default=10, ge=1, le=100),
    tracker: TrackerService = Depends(get_tracker),
) -> List[TopCamera]:
    return await tracker.top_cameras(limit=limit)


@router.get("/heatmap", response_model=List[HeatmapPoint])
async def heatmap(
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    tracker: TrackerService = Depends(get_tracker),
) -> List[HeatmapPoint]:
    return await tracker.heatmap(start=start_date, end=end_date)


@router.get("/search-success-rate", response_model=SearchSuccessRate)
async def search_success_rate(
    tracker: TrackerService = Depends(get_tracker),
) -> SearchSuccessRate:
    return await tracker.search_success_rate()


@router.get("/activity", response_model=List[ActivityItem])
async def recent_activity(
    limit: int = Query(default=50, ge=1, le=500),
    tracker: TrackerService = Depends(get_tracker),
) -> List[ActivityItem]:
    return await tracker.recent_activity(limit=limit)


__all__ = ["router"]
