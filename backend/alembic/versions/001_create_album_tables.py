"""Create users, photos and settings tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Initial schema: accounts, photos with their EXIF columns, and the
       key-value site settings.
How:   Portable types only (sa.Uuid, timezone-aware DateTime) so the same
       revision runs on SQLite and PostgreSQL. No foreign keys.

The default admin account is not seeded here; the first POST /api/admin/db
(or the app's setup page) creates it when the users table is empty.

Rollback: downgrade() drops all three tables (destructive).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("display_name", sa.String(100), nullable=True, server_default=""),
        sa.Column("must_change_password", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )

    op.create_table(
        "photos",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=True, server_default=""),

        # Renditions, as public URLs from the storage adapter
        sa.Column("image_url", sa.Text(), nullable=False),
        sa.Column("thumbnail_url", sa.Text(), nullable=False),
        sa.Column("blur_data_url", sa.Text(), nullable=True),
        sa.Column("width", sa.Integer(), nullable=False),
        sa.Column("height", sa.Integer(), nullable=False),

        sa.Column("is_live_photo", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("live_photo_video_url", sa.Text(), nullable=True),

        # EXIF: camera
        sa.Column("camera_make", sa.String(100), nullable=True),
        sa.Column("camera_model", sa.String(100), nullable=True),
        sa.Column("lens_model", sa.String(200), nullable=True),
        sa.Column("lens_make", sa.String(100), nullable=True),
        sa.Column("software", sa.String(200), nullable=True),

        # EXIF: shooting parameters
        sa.Column("focal_length", sa.Float(), nullable=True),
        sa.Column("focal_length_35mm", sa.Float(), nullable=True),
        sa.Column("aperture", sa.Float(), nullable=True),
        sa.Column("shutter_speed", sa.String(50), nullable=True),
        sa.Column("exposure_time", sa.Float(), nullable=True),
        sa.Column("iso", sa.Integer(), nullable=True),
        sa.Column("exposure_bias", sa.Float(), nullable=True),
        sa.Column("exposure_program", sa.String(50), nullable=True),
        sa.Column("exposure_mode", sa.String(50), nullable=True),
        sa.Column("metering_mode", sa.String(50), nullable=True),
        sa.Column("flash", sa.String(100), nullable=True),
        sa.Column("white_balance", sa.String(50), nullable=True),

        # EXIF: image info
        sa.Column("color_space", sa.String(50), nullable=True),
        sa.Column("orientation", sa.Integer(), nullable=True),
        sa.Column("taken_at", sa.DateTime(timezone=True), nullable=True),

        # GPS
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("altitude", sa.Float(), nullable=True),

        # Upload metadata
        sa.Column("original_filename", sa.String(255), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("mime_type", sa.String(100), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_visible", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    # Public gallery: WHERE is_visible ORDER BY sort_order DESC, created_at DESC
    op.create_index("idx_photos_visible_sort", "photos", ["is_visible", "sort_order", "created_at"])
    op.create_index("idx_photos_created_at", "photos", ["created_at"])

    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade() -> None:
    """WARNING: destructive; every photo row, account and setting is lost."""
    op.drop_table("settings")
    op.drop_index("idx_photos_created_at", table_name="photos")
    op.drop_index("idx_photos_visible_sort", table_name="photos")
    op.drop_table("photos")
    op.drop_table("users")
