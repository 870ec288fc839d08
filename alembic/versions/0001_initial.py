"""Events, layouts and sessions.

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("package_id", sa.Integer(), autoincrement=False, primary_key=True),
        sa.Column("approved", sa.String(5), nullable=False),
        sa.Column("user_email", sa.String(255), nullable=False),
        sa.Column("contact_email", sa.String(255), nullable=False),
        sa.Column("coph_email", sa.String(255), nullable=False),
        sa.Column("event_name", sa.String(75), nullable=False),
        sa.Column("comments", sa.Text(), nullable=False),
        sa.Column("date", sa.String(10), nullable=False),
        sa.Column("start_time", sa.String(8), nullable=False),
        sa.Column("end_time", sa.String(8), nullable=False),
        sa.Column("room_number", sa.String(10), nullable=False),
        sa.Column("num_people", sa.Integer(), nullable=False),
        sa.Column("references_course", sa.Boolean(), nullable=False),
        sa.Column("referenced_course", sa.String(255), nullable=False),
        sa.Column("food_drink_required", sa.Boolean(), nullable=False),
        sa.Column("food_provider", sa.String(255), nullable=False),
        sa.Column("alcohol_provider", sa.String(255), nullable=False),
        sa.Column("setup_required", sa.Boolean(), nullable=False),
        sa.Column("setup_mfk", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("EventUserIndex", "events", ["user_email", "package_id"])
    op.create_index("EventRoomIndex", "events", ["room_number", "package_id"])
    op.create_index("EventApprovedIndex", "events", ["approved", "package_id"])
    op.create_index("EventDateIndex", "events", ["date", "package_id"])

    op.create_table(
        "layouts",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column("package_id", sa.Integer(), nullable=True),
        sa.Column("user_email", sa.String(255), nullable=True),
        sa.Column("chairs_per_table", sa.Integer(), nullable=False),
        sa.Column("items", sa.JSON(), nullable=False),
    )
    op.create_index("LayoutUserIndex", "layouts", ["user_email", "id"])
    op.create_index("LayoutTypeIndex", "layouts", ["type", "id"])

    op.create_table(
        "sessions",
        sa.Column("session_id", sa.String(64), primary_key=True),
        sa.Column("user_access_token", sa.Text(), nullable=True),
        sa.Column("user_refresh_token", sa.Text(), nullable=True),
        sa.Column("token_expiry", sa.DateTime(timezone=True), nullable=True),
        sa.Column("hawk_id", sa.String(100), nullable=True),
        sa.Column("university_id", sa.String(50), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("sessions")
    op.drop_index("LayoutTypeIndex", table_name="layouts")
    op.drop_index("LayoutUserIndex", table_name="layouts")
    op.drop_table("layouts")
    for name in ("EventDateIndex", "EventApprovedIndex", "EventRoomIndex", "EventUserIndex"):
        op.drop_index(name, table_name="events")
    op.drop_table("events")
