"""SQLAlchemy Core table definitions for the database schema."""

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    false,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB

from .enums import booking_status_enum, schedule_status_enum

# Naming convention for constraints (helps Alembic generate better names)
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}
metadata = MetaData(naming_convention=convention)

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# =====================================================
# 1. GYM CLASSES
# =====================================================
gym_classes = Table(
    "gym_classes",
    metadata,
    Column("class_id", Integer, primary_key=True, autoincrement=True),
    Column("name", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)


# =====================================================
# 2. TRAINERS
# =====================================================
trainers = Table(
    "trainers",
    metadata,
    Column("trainer_id", Integer, primary_key=True, autoincrement=True),
    # Identity-service user; trainers without one cannot receive notifications
    Column("user_id", Integer),
    Column("full_name", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Index("idx_trainers_user_id", "user_id"),
)


# =====================================================
# 3. MEMBERS
# =====================================================
members = Table(
    "members",
    metadata,
    Column("member_id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer),
    Column("full_name", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Index("idx_members_user_id", "user_id"),
)


# =====================================================
# 4. SCHEDULES
# =====================================================
schedules = Table(
    "schedules",
    metadata,
    Column("schedule_id", Integer, primary_key=True, autoincrement=True),
    Column(
        "class_id",
        Integer,
        ForeignKey("gym_classes.class_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "trainer_id",
        Integer,
        ForeignKey("trainers.trainer_id", ondelete="SET NULL"),
    ),
    Column(
        "status",
        schedule_status_enum,
        nullable=False,
        server_default="SCHEDULED",
    ),
    Column("start_time", DateTime(timezone=True), nullable=False),
    Column("end_time", DateTime(timezone=True), nullable=False),
    # NULL or <= 0 means the class has no enrollment floor
    Column("minimum_participants", Integer),
    Column("max_capacity", Integer),
    Column("current_bookings", Integer, nullable=False, server_default="0"),
    # Append-only log of system annotations, one entry per paragraph
    Column("notes", Text),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now()),
    Index("idx_schedules_status_start_time", "status", "start_time"),
    Index("idx_schedules_trainer_id", "trainer_id"),
)


# =====================================================
# 5. BOOKINGS
# =====================================================
bookings = Table(
    "bookings",
    metadata,
    Column("booking_id", Integer, primary_key=True, autoincrement=True),
    Column(
        "schedule_id",
        Integer,
        ForeignKey("schedules.schedule_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "member_id",
        Integer,
        ForeignKey("members.member_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "status",
        booking_status_enum,
        nullable=False,
        server_default="CONFIRMED",
    ),
    Column("booked_at", DateTime(timezone=True), server_default=func.now()),
    Column("cancelled_at", DateTime(timezone=True)),
    Column("cancellation_reason", Text),
    CheckConstraint(
        "status != 'CANCELLED' OR "
        "(cancelled_at IS NOT NULL AND cancellation_reason IS NOT NULL)",
        name="cancelled_has_reason",
    ),
    Index("idx_bookings_schedule_id_status", "schedule_id", "status"),
    Index("idx_bookings_member_id", "member_id"),
)


# =====================================================
# 6. NOTIFICATIONS (in-app inbox)
# =====================================================
notifications = Table(
    "notifications",
    metadata,
    Column("notification_id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False),
    Column("type", Text, nullable=False),
    Column("title", Text, nullable=False),
    Column("message", Text, nullable=False),
    Column("data", JSONType),
    Column("is_read", Boolean, nullable=False, server_default=false()),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Index("idx_notifications_user_id", "user_id"),
)
