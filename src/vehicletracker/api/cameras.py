"""Camera network routes."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..exceptions import CameraNotFoundError, NoFieldsToUpdateError
from ..schemas import CameraCreate, CameraRead, CameraStats, CameraUpdate
from ..service import TrackerService
from .dependencies import get_tracker

router = APIRouter(prefix="/cameras", tags=["cameras"])


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Camera not found")


@router.get("", response_model=List[CameraRead])
async def list_cameras(tracker: TrackerService = Depends(get_tracker)) -> List[CameraRead]:
    return await tracker.list_cameras()


@router.post("", response_model=CameraRead, status_code=status.HTTP_201_CREATED)
async def create_camera(
    payload: CameraCreate, tracker: TrackerService = Depends(get_tracker)
) -> CameraRead:
    """Register a new camera."""

    return await tracker.create_camera(payload)


@router.get("/{camera_id}", response_model=CameraRead)
async def get_camera(
    camera_id: str, tracker: TrackerService = Depends(get_tracker)
) -> CameraRead:
    try:
        return await tracker.get_camera(camera_id)
    except CameraNotFoundError as exc:
        raise _not_found() from exc


@router.put("/{camera_id}", response_model=CameraRead)
async def update_camera(
    camera_id: str,
    payload: CameraUpdate,
    tracker: TrackerService = Depends(get_tracker),
) -> CameraRead:
    try:
        return await tracker.update_camera(camera_id, payload)
    except CameraNotFoundError as exc:
        raise _not_found() from exc
    except NoFieldsToUpdateError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
        ) from exc


@router.delete("/{camera_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_camera(
    camera_id: str, tracker: TrackerService = Depends(get_tracker)
) -> Response:
    """Remove a camera together with its detections."""

    try:
        await tracker.delete_camera(camera_id)
    except CameraNotFoundError as exc:
        raise _not_found() from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{camera_id}/stats", response_model=CameraStats)
async def camera_stats(
    camera_id: str, tracker: TrackerService = Depends(get_tracker)
) -> CameraStats:
    try:
        return await tracker.camera_stats(camera_id)
    except CameraNotFoundError as exc:
        raise _not_found() from exc


__all__ = ["router"]
