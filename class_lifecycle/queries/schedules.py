"""Database queries for schedules."""

from datetime import datetime

from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from ..enums import BookingStatus, ScheduleStatus
from ..tables import bookings, gym_classes, members, schedules, trainers
from ..timezone import as_utc


def _schedule_row_to_dict(row) -> dict:
    return {
        "schedule_id": row["schedule_id"],
        "status": row["status"],
        "start_time": as_utc(row["start_time"]),
        "end_time": as_utc(row["end_time"]),
        "minimum_participants": row["minimum_participants"],
        "current_bookings": row["current_bookings"],
        "gym_class": {
            "class_id": row["class_id"],
            "name": row["class_name"],
        },
        "trainer": (
            {
                "trainer_id": row["trainer_id"],
                "user_id": row["trainer_user_id"],
                "full_name": row["trainer_full_name"],
            }
            if row["trainer_id"] is not None
            else None
        ),
        "confirmed_bookings": [],
    }


async def find_schedules_in_window(
    conn: AsyncConnection,
    start: datetime,
    end: datetime,
    status: ScheduleStatus = ScheduleStatus.SCHEDULED,
    require_minimum: bool = True,
    end_inclusive: bool = True,
) -> list[dict]:
    """
    Find schedules starting inside a time window.

    Eagerly loads class identity, trainer identity and the CONFIRMED
    bookings (with the member's user_id) for every schedule found.

    Args:
        start: Window start (inclusive)
        end: Window end
        status: Only schedules in this status
        require_minimum: Only schedules with minimum_participants set and > 0
        end_inclusive: Whether start_time == end is inside the window

    Returns:
        List of schedule dicts ordered by start_time, each with
        "gym_class", "trainer" (None if unassigned) and "confirmed_bookings"
    """
    start = as_utc(start)
    end = as_utc(end)

    query = (
        select(
            schedules.c.schedule_id,
            schedules.c.status,
            schedules.c.start_time,
            schedules.c.end_time,
            schedules.c.minimum_participants,
            schedules.c.current_bookings,
            gym_classes.c.class_id,
            gym_classes.c.name.label("class_name"),
            trainers.c.trainer_id,
            trainers.c.user_id.label("trainer_user_id"),
            trainers.c.full_name.label("trainer_full_name"),
        )
        .select_from(
            schedules.join(
                gym_classes, schedules.c.class_id == gym_classes.c.class_id
            ).outerjoin(trainers, schedules.c.trainer_id == trainers.c.trainer_id)
        )
        .where(schedules.c.status == status)
        .where(schedules.c.start_time >= start)
        .order_by(schedules.c.start_time, schedules.c.schedule_id)
    )
    if end_inclusive:
        query = query.where(schedules.c.start_time <= end)
    else:
        query = query.where(schedules.c.start_time < end)
    if require_minimum:
        query = query.where(
            schedules.c.minimum_participants.is_not(None),
            schedules.c.minimum_participants > 0,
        )

    result = await conn.execute(query)
    found = {row["schedule_id"]: _schedule_row_to_dict(row) for row in result.mappings()}
    if not found:
        return []

    bookings_result = await conn.execute(
        select(
            bookings.c.booking_id,
            bookings.c.schedule_id,
            bookings.c.member_id,
            members.c.user_id,
        )
        .select_from(bookings.join(members, bookings.c.member_id == members.c.member_id))
        .where(bookings.c.schedule_id.in_(list(found)))
        .where(bookings.c.status == BookingStatus.CONFIRMED)
        .order_by(bookings.c.booking_id)
    )
    for row in bookings_result.mappings():
        found[row["schedule_id"]]["confirmed_bookings"].append(
            {
                "booking_id": row["booking_id"],
                "member_id": row["member_id"],
                "user_id": row["user_id"],
            }
        )

    return list(found.values())


async def get_schedule_for_update(
    conn: AsyncConnection,
    schedule_id: int,
) -> dict | None:
    """
    Re-read a schedule's mutable state, locking the row where supported.

    Meant to be called inside a transaction; FOR UPDATE is dropped by
    dialects that don't support it (SQLite).
    """
    result = await conn.execute(
        select(
            schedules.c.schedule_id,
            schedules.c.status,
            schedules.c.minimum_participants,
            schedules.c.current_bookings,
            schedules.c.notes,
        )
        .where(schedules.c.schedule_id == schedule_id)
        .with_for_update()
    )
    row = result.mappings().first()
    return dict(row) if row else None


async def get_schedule(
    conn: AsyncConnection,
    schedule_id: int,
) -> dict | None:
    """Get a single schedule by ID."""
    result = await conn.execute(
        select(schedules).where(schedules.c.schedule_id == schedule_id)
    )
    row = result.first()
    return dict(row._mapping) if row else None


async def update_schedule_status(
    conn: AsyncConnection,
    schedule_id: int,
    status: ScheduleStatus,
    expected_status: ScheduleStatus | None = None,
    current_bookings: int | None = None,
    notes: str | None = None,
) -> bool:
    """
    Update a schedule's status (and optionally its counter and notes).

    Args:
        expected_status: Only update if the row is still in this status
        current_bookings: New value for the booking counter
        notes: New value for the notes column

    Returns:
        True if the row was updated, False if it was missing or its
        status no longer matched expected_status
    """
    values = {"status": status, "updated_at": func.now()}
    if current_bookings is not None:
        values["current_bookings"] = current_bookings
    if notes is not None:
        values["notes"] = notes

    query = update(schedules).where(schedules.c.schedule_id == schedule_id)
    if expected_status is not None:
        query = query.where(schedules.c.status == expected_status)

    result = await conn.execute(query.values(**values))
    return result.rowcount == 1


async def create_schedule(
    conn: AsyncConnection,
    class_id: int,
    start_time: datetime,
    end_time: datetime,
    trainer_id: int | None = None,
    minimum_participants: int | None = None,
    max_capacity: int | None = None,
    status: ScheduleStatus = ScheduleStatus.SCHEDULED,
    notes: str | None = None,
) -> int:
    """
    Create a schedule record.

    Returns:
        The new schedule_id
    """
    result = await conn.execute(
        insert(schedules)
        .values(
            class_id=class_id,
            trainer_id=trainer_id,
            status=status,
            start_time=as_utc(start_time),
            end_time=as_utc(end_time),
            minimum_participants=minimum_participants,
            max_capacity=max_capacity,
            current_bookings=0,
            notes=notes,
        )
        .returning(schedules.c.schedule_id)
    )
    return result.scalar_one()
