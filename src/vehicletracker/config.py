"""Environment-driven configuration for the Vehicle Tracker service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache

DEFAULT_DB_URL = "sqlite+aiosqlite:///./vehicle_tracker.db"
ENV_PREFIX = "VEHICLE_TRACKER_"


def _env(name: str, default: str) -> str:
    return os.environ.get(f"{ENV_PREFIX}{name}", default)


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(f"{ENV_PREFIX}{name}")
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class Settings:
    """Runtime settings resolved from ``VEHICLE_TRACKER_*`` variables."""

    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False
    log_level: str = "info"
    db_url: str = DEFAULT_DB_URL
    cors_origins: tuple[str, ...] = field(default_factory=lambda: ("*",))
    ws_max_pending: int = 256
    simulation_interval: float = 5.0

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""

        origins = tuple(
            origin.strip()
            for origin in _env("CORS_ORIGINS", "*").split(",")
            if origin.strip()
        )
        settings = cls(
            host=_env("HOST", "0.0.0.0"),
            port=int(_env("PORT", "8000")),
            reload=_env_flag("RELOAD"),
            log_level=_env("LOG_LEVEL", "info").lower(),
            db_url=_env("DB_URL", DEFAULT_DB_URL),
            cors_origins=origins or ("*",),
            ws_max_pending=int(_env("WS_MAX_PENDING", "256")),
            simulation_interval=float(_env("SIMULATION_INTERVAL_SEC", "5.0")),
        )
        if settings.ws_max_pending <= 0:
            raise ValueError("ws_max_pending must be greater than zero")
        if settings.simulation_interval <= 0:
            raise ValueError("simulation_interval must be greater than zero")
        return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached process-wide settings."""

    return Settings.from_env()


__all__ = ["DEFAULT_DB_URL", "Settings", "get_settings"]
