"""SQLAlchemy enum definitions for the database schema."""

import enum

from sqlalchemy import Enum as SQLEnum


# =====================================================
# Python Enum Classes
# =====================================================


class ScheduleStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    POSTPONED = "POSTPONED"


class BookingStatus(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    WAITLIST = "WAITLIST"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"
    COMPLETED = "COMPLETED"


class NotificationType(str, enum.Enum):
    SCHEDULE_CANCELLED = "SCHEDULE_CANCELLED"
    CLASS_WARNING = "CLASS_WARNING"


class RecipientRole(str, enum.Enum):
    TRAINER = "TRAINER"
    MEMBER = "MEMBER"


# =====================================================
# SQLAlchemy Enum Types
# =====================================================

schedule_status_enum = SQLEnum(
    ScheduleStatus, name="schedule_status", native_enum=True
)
booking_status_enum = SQLEnum(
    BookingStatus, name="booking_status", native_enum=True
)
