"""Alembic migration environment for the tracker database.

Run from the CLI, the target database comes from ``VEHICLE_TRACKER_DB_URL``
or ``alembic.ini``. Run from :func:`vehicletracker.db.session.init_db`, the
application's engine URL is used as given and logging is left alone.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from vehicletracker.config import ENV_PREFIX
from vehicletracker.db import models  # noqa: F401  (registers tables)
from vehicletracker.db.base import Base
from vehicletracker.db.session import sync_url

config = context.config
target_metadata = Base.metadata

if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name, disable_existing_loggers=False)


def _database_url() -> str:
    configured = config.get_main_option("sqlalchemy.url")
    if not config.attributes.get("url_from_engine"):
        configured = os.getenv(f"{ENV_PREFIX}DB_URL") or configured
    if not configured:
        raise RuntimeError("No database URL configured for Alembic migrations.")
    return sync_url(configured)


def _run_migrations(**options) -> None:
    # Batch mode lets SQLite alter tables by copying them.
    context.configure(target_metadata=target_metadata, render_as_batch=True, **options)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    _run_migrations(url=_database_url(), literal_binds=True)


def run_migrations_online() -> None:
    config.set_main_option("sqlalchemy.url", _database_url())
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        _run_migrations(connection=connection)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
