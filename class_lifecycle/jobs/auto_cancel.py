"""
Automatic cancellation of classes that miss their minimum enrollment.

A sweep looks at SCHEDULED classes starting tomorrow (at least
now + 1 day + buffer), and for each one below its minimum_participants:

1. cancels it inside a SERIALIZABLE transaction, after re-reading the
   schedule and re-counting CONFIRMED bookings (a booking that arrived
   since the sweep started can save the class);
2. cancels its CONFIRMED bookings with the same reason and timestamp;
3. after commit, notifies the trainer, the members whose bookings were
   cancelled and the waitlisted members.

Sweeps are idempotent: a cancelled schedule is no longer SCHEDULED, so a
second sweep never selects it, and the in-transaction re-check stops a
sweep that raced with another one.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from functools import partial

import sentry_sdk
from sqlalchemy.ext.asyncio import AsyncConnection

from class_lifecycle.config import (
    get_auto_cancel_buffer_hours,
    get_class_timezone,
    get_notification_budget_seconds,
    get_notification_max_attempts,
    get_transaction_timeout_seconds,
)
from class_lifecycle.database import SERIALIZABLE, get_connection, run_in_transaction
from class_lifecycle.enums import (
    BookingStatus,
    NotificationType,
    RecipientRole,
    ScheduleStatus,
)
from class_lifecycle.errors import TransientStoreError
from class_lifecycle.notifications.dispatcher import (
    Delivery,
    NotificationSink,
    fan_out,
)
from class_lifecycle.queries.bookings import (
    bulk_update_booking_status,
    count_bookings_by_status,
    get_bookings_by_status,
)
from class_lifecycle.queries.schedules import (
    find_schedules_in_window,
    get_schedule_for_update,
    update_schedule_status,
)
from class_lifecycle.retry import retry_with_backoff
from class_lifecycle.timezone import as_utc, cancellation_window, to_civil_time, utc_now

logger = logging.getLogger(__name__)

JOB_NAME = "auto_cancel_low_participants"

CANCELLATION_REASON = (
    "Class was automatically cancelled because it did not reach the minimum "
    "number of participants one day before it starts"
)
NOTES_TAG = "[Auto-cancelled]"
DEFAULT_TRAINER_NAME = "Trainer"

# Attempts for a cancellation transaction that hits a serialization conflict
TRANSACTION_MAX_ATTEMPTS = 3


@dataclass
class SweepResult:
    success: bool = True
    total_checked: int = 0
    total_cancelled: int = 0
    total_notifications_sent: int = 0
    total_notifications_failed: int = 0
    duration_ms: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CancellationOutcome:
    """Result of the cancellation transaction for one schedule."""

    cancelled: bool
    reason: str | None = None
    cancelled_bookings: list[dict] = field(default_factory=list)


def append_note(existing: str | None, note: str) -> str:
    """Append a paragraph to a schedule's notes, keeping what is there."""
    if existing:
        return f"{existing}\n\n{note}"
    return note


async def cancel_schedule_if_still_under_minimum(
    conn: AsyncConnection,
    schedule_id: int,
    cancelled_at: datetime,
    reason: str = CANCELLATION_REASON,
) -> CancellationOutcome:
    """
    Transaction body: re-validate a schedule and cancel it.

    Must run inside a SERIALIZABLE transaction. Reads the schedule's
    current status and minimum and re-counts CONFIRMED bookings; only if
    the class is still SCHEDULED and still below its minimum does it cancel
    the schedule and its CONFIRMED bookings.

    Returns:
        CancellationOutcome; when not cancelled, reason is one of
        "already_processed", "no_minimum" or "sufficient_participants"
    """
    locked = await get_schedule_for_update(conn, schedule_id)
    if not locked or locked["status"] != ScheduleStatus.SCHEDULED:
        status = locked["status"].value if locked else "NOT_FOUND"
        logger.info(
            f"Schedule {schedule_id} is no longer SCHEDULED (status: {status}), skipping"
        )
        return CancellationOutcome(cancelled=False, reason="already_processed")

    minimum_required = locked["minimum_participants"]
    if not minimum_required or minimum_required <= 0:
        logger.info(f"Schedule {schedule_id} no longer has a minimum, skipping")
        return CancellationOutcome(cancelled=False, reason="no_minimum")

    confirmed_count = await count_bookings_by_status(
        conn, schedule_id, BookingStatus.CONFIRMED
    )
    if confirmed_count >= minimum_required:
        logger.info(
            f"Schedule {schedule_id} now has {confirmed_count} bookings "
            f"(required: {minimum_required}), not cancelling"
        )
        return CancellationOutcome(cancelled=False, reason="sufficient_participants")

    to_cancel = await get_bookings_by_status(conn, schedule_id, BookingStatus.CONFIRMED)

    updated = await update_schedule_status(
        conn,
        schedule_id,
        ScheduleStatus.CANCELLED,
        expected_status=ScheduleStatus.SCHEDULED,
        current_bookings=max((locked["current_bookings"] or 0) - len(to_cancel), 0),
        notes=append_note(locked["notes"], f"{NOTES_TAG} {reason}"),
    )
    if not updated:
        return CancellationOutcome(cancelled=False, reason="already_processed")

    await bulk_update_booking_status(
        conn,
        schedule_id,
        from_status=BookingStatus.CONFIRMED,
        to_status=BookingStatus.CANCELLED,
        cancelled_at=cancelled_at,
        cancellation_reason=reason,
    )

    return CancellationOutcome(cancelled=True, cancelled_bookings=to_cancel)


def build_cancellation_deliveries(
    schedule: dict,
    cancelled_bookings: list[dict],
    waitlist_bookings: list[dict],
    reason: str = CANCELLATION_REASON,
) -> tuple[list[Delivery], int]:
    """
    Build the notifications for a cancelled schedule.

    A trainer without a linked user account is skipped with a warning.
    Members without one cannot be told their booking was cancelled; they
    are logged as undeliverable and counted.

    Returns:
        (deliveries, number of members that could not be notified)
    """
    gym_class = schedule["gym_class"]
    trainer = schedule["trainer"]
    schedule_id = schedule["schedule_id"]

    base_payload = {
        "schedule_id": schedule_id,
        "class_id": gym_class["class_id"],
        "class_name": gym_class["name"],
        "start_time": as_utc(schedule["start_time"]).isoformat(),
        "trainer_id": trainer["trainer_id"] if trainer else None,
        "trainer_name": (trainer and trainer["full_name"]) or DEFAULT_TRAINER_NAME,
        "cancellation_reason": reason,
    }

    deliveries = []
    unreachable = 0

    if trainer and trainer["user_id"]:
        deliveries.append(
            Delivery(
                recipient_id=trainer["user_id"],
                notification_type=NotificationType.SCHEDULE_CANCELLED,
                payload={
                    **base_payload,
                    "current_bookings": len(cancelled_bookings),
                    "minimum_participants": schedule["minimum_participants"],
                    "role": RecipientRole.TRAINER.value,
                },
                label=f"trainer {trainer['trainer_id']}",
            )
        )
    else:
        trainer_id = trainer["trainer_id"] if trainer else "unknown"
        logger.warning(
            f"Trainer {trainer_id} of schedule {schedule_id} has no user_id, "
            f"skipping notification"
        )

    for bookings, is_waitlist in ((cancelled_bookings, False), (waitlist_bookings, True)):
        kind = "waitlist member" if is_waitlist else "member"
        for booking in bookings:
            if not booking["user_id"]:
                unreachable += 1
                logger.error(
                    f"{kind.capitalize()} {booking['member_id']} of schedule {schedule_id} "
                    f"has no user_id, cancellation notice undeliverable"
                )
                sentry_sdk.capture_message(
                    f"Notification undeliverable: SCHEDULE_CANCELLED to member "
                    f"{booking['member_id']} without user account"
                )
                continue
            deliveries.append(
                Delivery(
                    recipient_id=booking["user_id"],
                    notification_type=NotificationType.SCHEDULE_CANCELLED,
                    payload={
                        **base_payload,
                        "booking_id": booking["booking_id"],
                        "role": RecipientRole.MEMBER.value,
                        "is_waitlist": is_waitlist,
                    },
                    label=f"{kind} {booking['member_id']}",
                )
            )

    return deliveries, unreachable


async def _process_schedule(
    schedule: dict,
    now: datetime,
    result: SweepResult,
    sink: NotificationSink | None,
) -> None:
    """Cancel one under-enrolled schedule and notify everyone affected."""
    schedule_id = schedule["schedule_id"]

    outcome = await retry_with_backoff(
        lambda: run_in_transaction(
            partial(
                cancel_schedule_if_still_under_minimum,
                schedule_id=schedule_id,
                cancelled_at=now,
            ),
            isolation_level=SERIALIZABLE,
            timeout=get_transaction_timeout_seconds(),
        ),
        max_attempts=TRANSACTION_MAX_ATTEMPTS,
        retry_on=(TransientStoreError,),
        description=f"Cancellation transaction for schedule {schedule_id}",
    )

    if not outcome.cancelled:
        logger.info(f"Schedule {schedule_id} was not cancelled: {outcome.reason}")
        return

    result.total_cancelled += 1

    async with get_connection() as conn:
        waitlist = await get_bookings_by_status(conn, schedule_id, BookingStatus.WAITLIST)

    logger.info(
        f"Schedule {schedule_id} cancelled: {len(outcome.cancelled_bookings)} "
        f"booking(s) cancelled, {len(waitlist)} waitlist member(s) found"
    )

    deliveries, unreachable = build_cancellation_deliveries(
        schedule, outcome.cancelled_bookings, waitlist
    )
    fan_out_result = await fan_out(
        deliveries,
        budget_seconds=get_notification_budget_seconds(),
        max_attempts=get_notification_max_attempts(),
        sink=sink,
    )
    result.total_notifications_sent += fan_out_result.sent
    result.total_notifications_failed += fan_out_result.failed + unreachable

    logger.info(
        f"Schedule {schedule_id} processed: {fan_out_result.sent} notification(s) "
        f"sent, {fan_out_result.failed + unreachable} failed"
    )


async def check_and_cancel_low_participant_schedules(
    now: datetime | None = None,
    sink: NotificationSink | None = None,
) -> SweepResult:
    """
    Run one cancellation sweep.

    Never raises: per-schedule errors are logged and skipped, and a failure
    of the sweep itself (e.g. database unreachable) is returned as
    success=False with whatever counters were accumulated.

    Args:
        now: Reference time (defaults to the current time)
        sink: Notification delivery function (defaults to the in-app inbox)
    """
    started = time.monotonic()
    result = SweepResult()

    try:
        now = as_utc(now) if now else utc_now()
        tz_name = get_class_timezone()
        buffer_hours = get_auto_cancel_buffer_hours()
        window_start, window_end = cancellation_window(now, buffer_hours, tz_name)

        logger.info(
            f"Starting auto-cancel check at "
            f"{to_civil_time(now, tz_name):%Y-%m-%d %H:%M:%S} ({tz_name}), "
            f"window {window_start.isoformat()} - {window_end.isoformat()}, "
            f"buffer {buffer_hours}h"
        )

        if window_start > window_end:
            logger.info("Cancellation window is empty at this time of day, nothing to check")
            return result

        async with get_connection() as conn:
            candidates = await find_schedules_in_window(
                conn,
                window_start,
                window_end,
                status=ScheduleStatus.SCHEDULED,
                require_minimum=True,
            )

        result.total_checked = len(candidates)
        logger.info(
            f"Found {result.total_checked} schedule(s) with a minimum_participants "
            f"requirement to check"
        )

        for schedule in candidates:
            schedule_id = schedule["schedule_id"]
            confirmed = len(schedule["confirmed_bookings"])
            minimum_required = schedule["minimum_participants"]

            if confirmed >= minimum_required:
                logger.info(
                    f"Schedule {schedule_id} ({schedule['gym_class']['name']}) has "
                    f"{confirmed}/{minimum_required} participants, no action needed"
                )
                continue

            logger.info(
                f"Schedule {schedule_id} ({schedule['gym_class']['name']}) has "
                f"{confirmed}/{minimum_required} participants, cancelling"
            )
            try:
                await _process_schedule(schedule, now, result, sink)
            except Exception as e:
                logger.exception(f"Error cancelling schedule {schedule_id}: {e}")

    except Exception as e:
        logger.exception(f"Auto-cancel sweep failed: {e}")
        sentry_sdk.capture_exception(e)
        result.success = False
        result.error = str(e)

    finally:
        result.duration_ms = int((time.monotonic() - started) * 1000)

    logger.info(
        f"Auto-cancel summary: checked={result.total_checked} "
        f"cancelled={result.total_cancelled} "
        f"notifications_sent={result.total_notifications_sent} "
        f"notifications_failed={result.total_notifications_failed} "
        f"duration={result.duration_ms}ms success={result.success}"
    )
    return result
