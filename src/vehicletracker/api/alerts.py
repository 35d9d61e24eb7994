"""Alert routes."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..exceptions import AlertNotFoundError, DetectionNotFoundError
from ..schemas import AlertCreate, AlertRecord
from ..service import TrackerService
from .dependencies import get_tracker

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("", response_model=List[AlertRecord])
async def list_alerts(
    unacknowledged: bool = Query(default=False),
    tracker: TrackerService = Depends(get_tracker),
) -> List[AlertRecord]:
    return await tracker.list_alerts(unacknowledged_only=unacknowledged)


@router.post("", response_model=AlertRecord, status_code=status.HTTP_201_CREATED)
async def create_alert(
    payload: AlertCreate, tracker: TrackerService = Depends(get_tracker)
) -> AlertRecord:
    """Raise an alert for a detection; every live client receives it."""

    try:
        return await tracker.create_alert(payload)
    except DetectionNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Detection not found"
        ) from exc


@router.post("/{alert_id}/acknowledge", response_model=AlertRecord)
async def acknowledge_alert(
    alert_id: int, tracker: TrackerService = Depends(get_tracker)
) -> AlertRecord:
    try:
        return await tracker.acknowledge_alert(alert_id)
    except AlertNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Alert not found"
        ) from exc


__all__ = ["router"]
