"""Query layer for database operations using SQLAlchemy Core."""

from .bookings import (
    bulk_update_booking_status,
    count_bookings_by_status,
    create_booking,
    get_bookings_by_status,
    get_bookings_for_schedule,
)
from .notifications import create_notification, get_notifications_for_user
from .schedules import (
    create_schedule,
    find_schedules_in_window,
    get_schedule,
    get_schedule_for_update,
    update_schedule_status,
)

__all__ = [
    # Schedules
    "find_schedules_in_window",
    "get_schedule",
    "get_schedule_for_update",
    "update_schedule_status",
    "create_schedule",
    # Bookings
    "count_bookings_by_status",
    "get_bookings_by_status",
    "get_bookings_for_schedule",
    "bulk_update_booking_status",
    "create_booking",
    # Notifications
    "create_notification",
    "get_notifications_for_user",
]
