"""Command-line helper to migrate the tracker database and seed sample cameras."""

import asyncio
from pathlib import Path

from vehicletracker.db import create_engine, init_db


async def main() -> None:
    """Apply migrations against the configured ``VEHICLE_TRACKER_DB_URL``."""

    engine = create_engine()
    await init_db(engine)
    db_path = Path(engine.url.database or "vehicle_tracker.db")
    print(f"Initialized tracker database at {db_path.resolve()}")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
