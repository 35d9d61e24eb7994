"""Detection routes.

Static prefixes (``/stats``, ``/search``, ``/simulate``) are registered ahead of
``/{detection_id}`` so they are not swallowed by the identifier route.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..exceptions import (
    CameraNotFoundError,
    DetectionNotFoundError,
    SearchNotFoundError,
)
from ..schemas import DetectionCreate, DetectionDetail, DetectionRecord, DetectionStats
from ..service import TrackerService
from .dependencies import get_tracker

router = APIRouter(prefix="/detections", tags=["detections"])


@router.post("", response_model=DetectionRecord, status_code=status.HTTP_201_CREATED)
async def create_detection(
    payload: DetectionCreate, tracker: TrackerService = Depends(get_tracker)
) -> DetectionRecord:
    """Record a sighting and push it to subscribed live clients."""

    try:
        return await tracker.create_detection(payload)
    except SearchNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Search not found"
        ) from exc
    except CameraNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Camera not found"
        ) from exc


@router.get("/stats/summary", response_model=DetectionStats)
async def detection_stats(
    search_id: Optional[str] = Query(default=None),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    tracker: TrackerService = Depends(get_tracker),
) -> DetectionStats:
    return await tracker.detection_stats(
        search_id=search_id, start=start_date, end=end_date
    )


@router.get("/search/{search_id}", response_model=List[DetectionRecord])
async def list_search_detections(
    search_id: str, tracker: TrackerService = Depends(get_tracker)
) -> List[DetectionRecord]:
    return await tracker.list_search_detections(search_id)


@router.post(
    "/simulate/{search_id}",
    response_model=DetectionRecord,
    status_code=status.HTTP_201_CREATED,
)
async def simulate_detection(
    search_id: str, tracker: TrackerService = Depends(get_tracker)
) -> DetectionRecord:
    """Record one synthetic sighting of the search at a random camera."""

    try:
        return await tracker.simulate_detection(search_id)
    except SearchNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Search not found"
        ) from exc
    except CameraNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No cameras available"
        ) from exc


@router.get("/{detection_id}", response_model=DetectionDetail)
async def get_detection(
    detection_id: str, tracker: TrackerService = Depends(get_tracker)
) -> DetectionDetail:
    try:
        return await tracker.get_detection(detection_id)
    except DetectionNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Detection not found"
        ) from exc


__all__ = ["router"]
