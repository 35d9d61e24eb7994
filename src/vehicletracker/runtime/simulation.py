"""Background generation of simulated detections for open searches."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict

from ..exceptions import (
    CameraNotFoundError,
    SearchNotFoundError,
    SimulationAlreadyRunningError,
    SimulationNotRunningError,
)
from ..service import TrackerService

logger = logging.getLogger(__name__)


class DetectionSimulator:
    """Periodically record simulated sightings for searches until stopped."""

    def __init__(self, tracker: TrackerService, *, interval: float = 5.0) -> None:
        if interval <= 0:
            raise ValueError("interval must be greater than zero")
        self._tracker = tracker
        self._interval = interval
        self._tasks: Dict[str, asyncio.Task[None]] = {}
        self._stop_events: Dict[str, asyncio.Event] = {}
        self._lock = asyncio.Lock()

    @property
    def interval(self) -> float:
        return self._interval

    def running(self) -> list[str]:
        """Return the searches with a live simulation loop."""

        return sorted(
            search_id for search_id, task in self._tasks.items() if not task.done()
        )

    def is_running(self, search_id: str) -> bool:
        task = self._tasks.get(search_id)
        return task is not None and not task.done()

    async def start(self, search_id: str) -> None:
        """Launch the simulation loop for an existing search."""

        await self._tracker.get_search(search_id)

        async with self._lock:
            if self.is_running(search_id):
                raise SimulationAlreadyRunningError(search_id)
            stop_event = asyncio.Event()
            self._stop_events[search_id] = stop_event
            self._tasks[search_id] = asyncio.create_task(
                self._run(search_id, stop_event),
                name=f"detection-simulation-{search_id}",
            )
        logger.info(
            "Started detection simulation for search %s every %.2fs",
            search_id,
            self._interval,
        )

    async def stop(self, search_id: str) -> None:
        """Signal the loop for ``search_id`` to finish and wait for it."""

        async with self._lock:
            stop_event = self._stop_events.pop(search_id, None)
            task = self._tasks.pop(search_id, None)
            if stop_event is None or task is None or task.done():
                raise SimulationNotRunningError(search_id)
            stop_event.set()

        try:
            await task
        except Exception:
            logger.warning(
                "Detection simulation for search %s ended with an error",
                search_id,
                exc_info=True,
            )
            return
        logger.info("Stopped detection simulation for search %s", search_id)

    async def shutdown(self) -> None:
        """Stop every running loop."""

        async with self._lock:
            events = list(self._stop_events.values())
            tasks = list(self._tasks.values())
            for event in events:
                event.set()
            self._stop_events.clear()
            self._tasks.clear()

        for task in tasks:
            try:
                await task
            except Exception:
                logger.exception("Detection simulation task terminated with an error")

    async def _run(self, search_id: str, stop_event: asyncio.Event) -> None:
        try:
            while True:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
                except asyncio.TimeoutError:
                    if not await self._emit(search_id):
                        break
                else:
                    break
        except asyncio.CancelledError:
            logger.info("Detection simulation for search %s cancelled", search_id)
            raise
        except Exception:
            logger.exception("Detection simulation for search %s failed", search_id)
            raise
        finally:
            # A loop ending by itself must not linger as "running".
            if self._stop_events.get(search_id) is stop_event:
                self._stop_events.pop(search_id, None)
                self._tasks.pop(search_id, None)

    async def _emit(self, search_id: str) -> bool:
        """Record one simulated detection; ``False`` ends the loop."""

        try:
            record = await self._tracker.simulate_detection(search_id)
        except SearchNotFoundError:
            logger.info("Search %s no longer exists; ending simulation", search_id)
            return False
        except CameraNotFoundError:
            logger.warning("No cameras available to simulate search %s", search_id)
            return True

        logger.debug(
            "Simulated detection %s for search %s at %s",
            record.id,
            search_id,
            record.camera_id,
        )
        return True


__all__ = ["DetectionSimulator"]
