"""Class lifecycle schema: classes, trainers, members, schedules, bookings.

Revision ID: 001
Revises:
Create Date: 2026-03-01

Creates the schedule/booking tables the auto-cancel jobs work on, their
status enums, and the in-app notifications inbox.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

schedule_status = postgresql.ENUM(
    "SCHEDULED",
    "IN_PROGRESS",
    "COMPLETED",
    "CANCELLED",
    "POSTPONED",
    name="schedule_status",
    create_type=False,
)
booking_status = postgresql.ENUM(
    "CONFIRMED",
    "WAITLIST",
    "CANCELLED",
    "NO_SHOW",
    "COMPLETED",
    name="booking_status",
    create_type=False,
)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        postgresql.TIMESTAMP(timezone=True),
        server_default=sa.text("now()"),
        nullable=True,
    )


def upgrade() -> None:
    schedule_status.create(op.get_bind(), checkfirst=True)
    booking_status.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "gym_classes",
        sa.Column("class_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("class_id", name=op.f("pk_gym_classes")),
    )

    for table, key in (("trainers", "trainer_id"), ("members", "member_id")):
        op.create_table(
            table,
            sa.Column(key, sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("full_name", sa.Text(), nullable=False),
            _created_at(),
            sa.PrimaryKeyConstraint(key, name=op.f(f"pk_{table}")),
        )
        op.create_index(f"idx_{table}_user_id", table, ["user_id"], unique=False)

    op.create_table(
        "schedules",
        sa.Column("schedule_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("class_id", sa.Integer(), nullable=False),
        sa.Column("trainer_id", sa.Integer(), nullable=True),
        sa.Column(
            "status",
            schedule_status,
            server_default="SCHEDULED",
            nullable=False,
        ),
        sa.Column("start_time", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_time", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("minimum_participants", sa.Integer(), nullable=True),
        sa.Column("max_capacity", sa.Integer(), nullable=True),
        sa.Column(
            "current_bookings", sa.Integer(), server_default="0", nullable=False
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(
            ["class_id"],
            ["gym_classes.class_id"],
            name=op.f("fk_schedules_class_id_gym_classes"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["trainer_id"],
            ["trainers.trainer_id"],
            name=op.f("fk_schedules_trainer_id_trainers"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("schedule_id", name=op.f("pk_schedules")),
    )
    op.create_index(
        "idx_schedules_status_start_time",
        "schedules",
        ["status", "start_time"],
        unique=False,
    )
    op.create_index(
        "idx_schedules_trainer_id", "schedules", ["trainer_id"], unique=False
    )

    op.create_table(
        "bookings",
        sa.Column("booking_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("schedule_id", sa.Integer(), nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            booking_status,
            server_default="CONFIRMED",
            nullable=False,
        ),
        sa.Column(
            "booked_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.Column("cancelled_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "status != 'CANCELLED' OR "
            "(cancelled_at IS NOT NULL AND cancellation_reason IS NOT NULL)",
            name=op.f("ck_bookings_cancelled_has_reason"),
        ),
        sa.ForeignKeyConstraint(
            ["schedule_id"],
            ["schedules.schedule_id"],
            name=op.f("fk_bookings_schedule_id_schedules"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["member_id"],
            ["members.member_id"],
            name=op.f("fk_bookings_member_id_members"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("booking_id", name=op.f("pk_bookings")),
    )
    op.create_index(
        "idx_bookings_schedule_id_status",
        "bookings",
        ["schedule_id", "status"],
        unique=False,
    )
    op.create_index("idx_bookings_member_id", "bookings", ["member_id"], unique=False)

    op.create_table(
        "notifications",
        sa.Column(
            "notification_id", sa.Integer(), autoincrement=True, nullable=False
        ),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column(
            "is_read", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        _created_at(),
        sa.PrimaryKeyConstraint("notification_id", name=op.f("pk_notifications")),
    )
    op.create_index(
        "idx_notifications_user_id", "notifications", ["user_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index("idx_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("idx_bookings_member_id", table_name="bookings")
    op.drop_index("idx_bookings_schedule_id_status", table_name="bookings")
    op.drop_table("bookings")
    op.drop_index("idx_schedules_trainer_id", table_name="schedules")
    op.drop_index("idx_schedules_status_start_time", table_name="schedules")
    op.drop_table("schedules")
    op.drop_index("idx_members_user_id", table_name="members")
    op.drop_table("members")
    op.drop_index("idx_trainers_user_id", table_name="trainers")
    op.drop_table("trainers")
    op.drop_table("gym_classes")
    booking_status.drop(op.get_bind(), checkfirst=True)
    schedule_status.drop(op.get_bind(), checkfirst=True)
