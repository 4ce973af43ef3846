"""Initial schema: users, rooms, beds, allocations, maintenance requests.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Users table (owns the cached room number)
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'student'")),
        sa.Column("room_number", sa.String(50), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("role IN ('student', 'staff')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Rooms table
    op.create_table(
        "rooms",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("room_number", sa.String(50), nullable=False, unique=True),
        sa.Column("floor", sa.Integer(), nullable=False),
        sa.Column("building", sa.String(100), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("amenities", sa.JSON(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("occupied_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'available'")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("capacity > 0", name="check_room_capacity_positive"),
        sa.CheckConstraint("occupied_count >= 0", name="check_room_occupied_non_negative"),
        sa.CheckConstraint("occupied_count <= capacity", name="check_room_occupied_lte_capacity"),
        sa.CheckConstraint(
            "status IN ('available', 'occupied', 'maintenance', 'full')",
            name="check_room_status",
        ),
    )
    op.create_index("ix_rooms_id", "rooms", ["id"])
    op.create_index("ix_rooms_status", "rooms", ["status"])

    # Beds table
    op.create_table(
        "beds",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("room_id", sa.Integer(), sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("bed_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'available'")),
        sa.Column("occupied_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.UniqueConstraint("room_id", "bed_number", name="uq_room_bed_number"),
        sa.CheckConstraint("bed_number > 0", name="check_bed_number_positive"),
        sa.CheckConstraint(
            "status IN ('available', 'occupied', 'maintenance', 'full')",
            name="check_bed_status",
        ),
    )
    op.create_index("ix_beds_id", "beds", ["id"])
    op.create_index("ix_beds_room_id", "beds", ["room_id"])
    # Availability counts and the conditional claim both filter on (room_id, status)
    op.create_index("ix_beds_room_status", "beds", ["room_id", "status"])

    # Allocations table (history, never deleted)
    op.create_table(
        "allocations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("room_id", sa.Integer(), sa.ForeignKey("rooms.id", ondelete="SET NULL"), nullable=True),
        sa.Column("bed_id", sa.Integer(), sa.ForeignKey("beds.id", ondelete="SET NULL"), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'paid', 'overdue', 'refunded')",
            name="check_allocation_payment_status",
        ),
        sa.CheckConstraint("active OR end_date IS NOT NULL", name="check_inactive_has_end_date"),
    )
    op.create_index("ix_allocations_id", "allocations", ["id"])
    op.create_index("ix_allocations_student_id", "allocations", ["student_id"])
    op.create_index("ix_allocations_room_id", "allocations", ["room_id"])
    op.create_index("ix_allocations_bed_id", "allocations", ["bed_id"])
    op.create_index("ix_allocations_created_at", "allocations", ["created_at"])
    # ONE ACTIVE ALLOCATION PER BED: backstop for the conditional bed claim.
    # Ended allocations stay in the table as history and are excluded.
    op.create_index(
        "uq_active_allocation_per_bed",
        "allocations",
        ["bed_id"],
        unique=True,
        postgresql_where=sa.text("active"),
    )

    # Maintenance requests
    op.create_table(
        "maintenance_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("room_id", sa.Integer(), sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reported_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("assigned_to", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("issue", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("priority", sa.String(20), nullable=False, server_default=sa.text("'medium'")),
        sa.Column("estimated_completion_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("completed_on", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'in-progress', 'completed', 'cancelled')",
            name="check_maintenance_status",
        ),
        sa.CheckConstraint(
            "priority IN ('low', 'medium', 'high', 'urgent')",
            name="check_maintenance_priority",
        ),
    )
    op.create_index("ix_maintenance_requests_id", "maintenance_requests", ["id"])
    op.create_index("ix_maintenance_requests_room_id", "maintenance_requests", ["room_id"])


def downgrade() -> None:
    op.drop_table("maintenance_requests")
    op.drop_table("allocations")
    op.drop_table("beds")
    op.drop_table("rooms")
    op.drop_table("users")
