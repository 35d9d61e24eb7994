"""Seed the camera network with the sample downtown cameras."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20241019_0002"
down_revision = "20241019_0001"
branch_labels = None
depends_on = None

SAMPLE_CAMERAS = [
    ("CAM_001", "Market St & 5th", 37.7749, -122.4194, "5th St & Market St, San Francisco, CA"),
    ("CAM_002", "Mission St & 6th", 37.7750, -122.4180, "6th St & Mission St, San Francisco, CA"),
    ("CAM_003", "Howard St & 4th", 37.7760, -122.4190, "4th St & Howard St, San Francisco, CA"),
    ("CAM_004", "Folsom St & 7th", 37.7740, -122.4200, "7th St & Folsom St, San Francisco, CA"),
    ("CAM_005", "Bryant St & 3rd", 37.7770, -122.4170, "3rd St & Bryant St, San Francisco, CA"),
]

_cameras = sa.table(
    "cameras",
    sa.column("id", sa.String),
    sa.column("name", sa.String),
    sa.column("location_lat", sa.Float),
    sa.column("location_lng", sa.Float),
    sa.column("status", sa.String),
    sa.column("address", sa.String),
)


def upgrade() -> None:
    """Insert the sample cameras."""

    op.bulk_insert(
        _cameras,
        [
            {
                "id": camera_id,
                "name": name,
                "location_lat": lat,
                "location_lng": lng,
                "status": "active",
                "address": address,
            }
            for camera_id, name, lat, lng, address in SAMPLE_CAMERAS
        ],
    )


def downgrade() -> None:
    """Remove the sample cameras."""

    op.execute(
        _cameras.delete().where(
            _cameras.c.id.in_([camera[0] for camera in SAMPLE_CAMERAS])
        )
    )
