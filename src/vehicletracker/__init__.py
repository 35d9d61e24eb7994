"""Vehicle Tracker: license plate searches with live detection feeds."""
from __future__ import annotations

import logging
from typing import Any

import uvicorn

from .config import get_settings


def main(**uvicorn_kwargs: Any) -> None:
    """Run the Vehicle Tracker service using ``uvicorn``.

    Parameters
    ----------
    **uvicorn_kwargs: Any
        Optional keyword arguments forwarded to :func:`uvicorn.run`.
    """

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config: dict[str, Any] = {
        "app": "vehicletracker.api.app:create_app",
        "factory": True,
        "host": settings.host,
        "port": settings.port,
        "reload": settings.reload,
        "log_level": settings.log_level,
    }
    config.update(uvicorn_kwargs)

    uvicorn.run(**config)


__all__ = ["main"]
