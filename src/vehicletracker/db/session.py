"""Engine, session and migration helpers for the tracker database."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from alembic import command
from alembic.config import Config
from sqlalchemy import event
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..config import get_settings

PROJECT_ROOT = Path(__file__).resolve().parents[3]
ALEMBIC_INI = PROJECT_ROOT / "alembic.ini"
MIGRATIONS_DIR = PROJECT_ROOT / "alembic"

# Applied to every new SQLite connection. Cascading deletes of detections and
# alerts rely on foreign_keys being on.
SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA foreign_keys=ON",
)


def _apply_sqlite_pragmas(dbapi_connection: Any, _connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    try:
        for pragma in SQLITE_PRAGMAS:
            cursor.execute(pragma)
    finally:
        cursor.close()


def create_engine(db_url: str | None = None, *, echo: bool = False) -> AsyncEngine:
    """Create the async engine for ``db_url`` or the configured database."""

    engine = create_async_engine(db_url or get_settings().db_url, echo=echo)
    if engine.url.get_backend_name() == "sqlite":
        event.listen(engine.sync_engine, "connect", _apply_sqlite_pragmas)
    return engine


def get_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


def sync_url(url: str | URL) -> str:
    """Swap an async driver for the backend's default one.

    Alembic migrates over a blocking connection, so ``sqlite+aiosqlite://``
    becomes ``sqlite://`` and ``postgresql+asyncpg://`` becomes
    ``postgresql://``. Credentials are kept.
    """

    parsed = make_url(url) if isinstance(url, str) else url
    backend = parsed.get_backend_name()
    if parsed.drivername != backend:
        parsed = parsed.set(drivername=backend)
    return parsed.render_as_string(hide_password=False)


def migration_config(db_url: str | URL) -> Config:
    """Build the Alembic config that migrates ``db_url`` from inside the app."""

    if not ALEMBIC_INI.exists():
        raise FileNotFoundError(f"Alembic configuration missing at {ALEMBIC_INI}")

    config = Config(str(ALEMBIC_INI))
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", sync_url(db_url))
    # Read by alembic/env.py: keep this URL and leave logging to the app.
    config.attributes["url_from_engine"] = True
    config.attributes["configure_logger"] = False
    return config


async def init_db(engine: AsyncEngine, revision: str = "head") -> None:
    """Upgrade the database behind ``engine`` to ``revision``."""

    config = migration_config(engine.url)
    await asyncio.to_thread(command.upgrade, config, revision)


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Yield a session that commits on success and rolls back on error."""

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
