"""Search case routes, including per-search detection simulation."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..exceptions import (
    NoFieldsToUpdateError,
    SearchNotFoundError,
    SimulationAlreadyRunningError,
    SimulationNotRunningError,
)
from ..runtime import DetectionSimulator
from ..schemas import SearchCreate, SearchRead, SearchUpdate, SimulationStatus
from ..service import TrackerService
from .dependencies import get_simulator, get_tracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/searches", tags=["searches"])

SEARCH_NOT_FOUND = "Search not found"


@router.get("", response_model=List[SearchRead])
async def list_searches(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    priority: Optional[str] = Query(default=None),
    tracker: TrackerService = Depends(get_tracker),
) -> List[SearchRead]:
    """Return searches newest first, optionally filtered by status or priority."""

    return await tracker.list_searches(status=status_filter, priority=priority)


@router.post("", response_model=SearchRead, status_code=status.HTTP_201_CREATED)
async def create_search(
    payload: SearchCreate, tracker: TrackerService = Depends(get_tracker)
) -> SearchRead:
    return await tracker.create_search(payload)


@router.get("/{search_id}", response_model=SearchRead)
async def get_search(
    search_id: str, tracker: TrackerService = Depends(get_tracker)
) -> SearchRead:
    try:
        return await tracker.get_search(search_id)
    except SearchNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=SEARCH_NOT_FOUND
        ) from exc


@router.put("/{search_id}", response_model=SearchRead)
async def update_search(
    search_id: str,
    payload: SearchUpdate,
    tracker: TrackerService = Depends(get_tracker),
) -> SearchRead:
    try:
        return await tracker.update_search(search_id, payload)
    except SearchNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=SEARCH_NOT_FOUND
        ) from exc
    except NoFieldsToUpdateError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
        ) from exc


@router.delete("/{search_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_search(
    search_id: str,
    tracker: TrackerService = Depends(get_tracker),
    simulator: DetectionSimulator = Depends(get_simulator),
) -> Response:
    """Delete a search and its detections, stopping any running simulation."""

    if simulator.is_running(search_id):
        try:
            await simulator.stop(search_id)
        except SimulationNotRunningError:
            logger.info("Simulation for search %s ended before delete", search_id)
    try:
        await tracker.delete_search(search_id)
    except SearchNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=SEARCH_NOT_FOUND
        ) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{search_id}/simulation",
    response_model=SimulationStatus,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_simulation(
    search_id: str, simulator: DetectionSimulator = Depends(get_simulator)
) -> SimulationStatus:
    """Begin emitting simulated detections for the search."""

    try:
        await simulator.start(search_id)
    except SearchNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=SEARCH_NOT_FOUND
        ) from exc
    except SimulationAlreadyRunningError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Simulation already running",
        ) from exc
    return SimulationStatus(search_id=search_id, running=True)


@router.delete("/{search_id}/simulation", response_model=SimulationStatus)
async def stop_simulation(
    search_id: str, simulator: DetectionSimulator = Depends(get_simulator)
) -> SimulationStatus:
    try:
        await simulator.stop(search_id)
    except SimulationNotRunningError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Simulation not running",
        ) from exc
    return SimulationStatus(search_id=search_id, running=False)


__all__ = ["router"]
