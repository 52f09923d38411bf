"""Database queries for bookings."""

from datetime import datetime

from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from ..enums import BookingStatus
from ..tables import bookings, members, schedules
from ..timezone import as_utc


async def count_bookings_by_status(
    conn: AsyncConnection,
    schedule_id: int,
    status: BookingStatus,
) -> int:
    """Count a schedule's bookings in the given status."""
    result = await conn.execute(
        select(func.count())
        .select_from(bookings)
        .where(bookings.c.schedule_id == schedule_id)
        .where(bookings.c.status == status)
    )
    return result.scalar_one()


async def get_bookings_by_status(
    conn: AsyncConnection,
    schedule_id: int,
    status: BookingStatus,
) -> list[dict]:
    """
    Get a schedule's bookings in the given status.

    Returns:
        List of dicts with booking_id, member_id and the member's user_id
        (None when the member has no linked account), ordered by booking_id
    """
    result = await conn.execute(
        select(
            bookings.c.booking_id,
            bookings.c.member_id,
            members.c.user_id,
        )
        .select_from(bookings.join(members, bookings.c.member_id == members.c.member_id))
        .where(bookings.c.schedule_id == schedule_id)
        .where(bookings.c.status == status)
        .order_by(bookings.c.booking_id)
    )
    return [dict(row) for row in result.mappings()]


async def bulk_update_booking_status(
    conn: AsyncConnection,
    schedule_id: int,
    from_status: BookingStatus,
    to_status: BookingStatus,
    cancelled_at: datetime | None = None,
    cancellation_reason: str | None = None,
) -> int:
    """
    Move every booking of a schedule from one status to another.

    Cancelling requires cancelled_at and cancellation_reason; they are
    stamped identically on every affected booking.

    Returns:
        Number of bookings updated
    """
    values = {"status": to_status}
    if to_status == BookingStatus.CANCELLED:
        if cancelled_at is None or not cancellation_reason:
            raise ValueError("Cancelling bookings requires cancelled_at and a reason")
        values["cancelled_at"] = as_utc(cancelled_at)
        values["cancellation_reason"] = cancellation_reason

    result = await conn.execute(
        update(bookings)
        .where(bookings.c.schedule_id == schedule_id)
        .where(bookings.c.status == from_status)
        .values(**values)
    )
    return result.rowcount


async def get_bookings_for_schedule(
    conn: AsyncConnection,
    schedule_id: int,
) -> list[dict]:
    """Get all bookings of a schedule regardless of status."""
    result = await conn.execute(
        select(bookings)
        .where(bookings.c.schedule_id == schedule_id)
        .order_by(bookings.c.booking_id)
    )
    return [dict(row._mapping) for row in result]


async def create_booking(
    conn: AsyncConnection,
    schedule_id: int,
    member_id: int,
    status: BookingStatus = BookingStatus.CONFIRMED,
) -> int:
    """
    Create a booking, keeping the schedule's booking counter in step.

    Returns:
        The new booking_id
    """
    result = await conn.execute(
        insert(bookings)
        .values(schedule_id=schedule_id, member_id=member_id, status=status)
        .returning(bookings.c.booking_id)
    )
    booking_id = result.scalar_one()

    if status == BookingStatus.CONFIRMED:
        await conn.execute(
            update(schedules)
            .where(schedules.c.schedule_id == schedule_id)
            .values(current_bookings=schedules.c.current_bookings + 1)
        )

    return booking_id
