"""
Advance warning for classes at risk of automatic cancellation.

Runs ahead of the cancellation sweep: classes starting in roughly 24 hours
that are below their minimum get a CLASS_WARNING sent to the trainer and to
every CONFIRMED member. Waitlisted members are not warned. Nothing in the
store is modified.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime

import sentry_sdk

from class_lifecycle.config import (
    get_notification_budget_seconds,
    get_notification_max_attempts,
)
from class_lifecycle.database import get_connection
from class_lifecycle.enums import NotificationType, RecipientRole, ScheduleStatus
from class_lifecycle.notifications.dispatcher import Delivery, NotificationSink, fan_out
from class_lifecycle.queries.schedules import find_schedules_in_window
from class_lifecycle.timezone import as_utc, utc_now, warning_window

logger = logging.getLogger(__name__)

JOB_NAME = "auto_cancel_warning"

WARNING_TYPE = "AUTO_CANCEL_24H"


@dataclass
class WarningResult:
    success: bool = True
    total_checked: int = 0
    total_warned_schedules: int = 0
    warnings_sent: int = 0
    warnings_failed: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def build_warning_deliveries(schedule: dict) -> tuple[list[Delivery], int]:
    """
    Build the warning notifications for one at-risk schedule.

    Returns the deliveries and the number of confirmed members without a
    user account, who cannot be warned.
    """
    gym_class = schedule["gym_class"]
    trainer = schedule["trainer"]
    confirmed = schedule["confirmed_bookings"]

    base_payload = {
        "schedule_id": schedule["schedule_id"],
        "class_id": gym_class["class_id"],
        "class_name": gym_class["name"],
        "start_time": as_utc(schedule["start_time"]).isoformat(),
        "current_bookings": len(confirmed),
        "minimum_participants": schedule["minimum_participants"],
        "warning_type": WARNING_TYPE,
    }

    deliveries = []
    unreachable = 0
    if trainer and trainer["user_id"]:
        deliveries.append(
            Delivery(
                recipient_id=trainer["user_id"],
                notification_type=NotificationType.CLASS_WARNING,
                payload={**base_payload, "role": RecipientRole.TRAINER.value},
                label=f"trainer {trainer['trainer_id']}",
            )
        )
    else:
        logger.warning(
            f"Schedule {schedule['schedule_id']} has no trainer with a user_id, "
            f"skipping trainer warning"
        )

    for booking in confirmed:
        if not booking["user_id"]:
            unreachable += 1
            logger.error(
                f"Member {booking['member_id']} of schedule {schedule['schedule_id']} "
                f"has no user_id, warning undeliverable"
            )
            continue
        deliveries.append(
            Delivery(
                recipient_id=booking["user_id"],
                notification_type=NotificationType.CLASS_WARNING,
                payload={
                    **base_payload,
                    "booking_id": booking["booking_id"],
                    "role": RecipientRole.MEMBER.value,
                },
                label=f"member {booking['member_id']}",
            )
        )

    return deliveries, unreachable


async def send_warning_notifications(
    now: datetime | None = None,
    sink: NotificationSink | None = None,
) -> WarningResult:
    """
    Run one warning sweep.

    Never raises; a failure of the whole sweep comes back as success=False.

    Args:
        now: Reference time (defaults to the current time)
        sink: Notification delivery function (defaults to the in-app inbox)
    """
    result = WarningResult()

    try:
        now = as_utc(now) if now else utc_now()
        window_start, window_end = warning_window(now)
        logger.info(
            f"Starting auto-cancel warning check, window "
            f"{window_start.isoformat()} - {window_end.isoformat()}"
        )

        async with get_connection() as conn:
            candidates = await find_schedules_in_window(
                conn,
                window_start,
                window_end,
                status=ScheduleStatus.SCHEDULED,
                require_minimum=True,
                end_inclusive=False,
            )
        result.total_checked = len(candidates)

        for schedule in candidates:
            schedule_id = schedule["schedule_id"]
            confirmed = len(schedule["confirmed_bookings"])
            minimum_required = schedule["minimum_participants"]
            if confirmed >= minimum_required:
                continue

            logger.info(
                f"Schedule {schedule_id} ({schedule['gym_class']['name']}) has "
                f"{confirmed}/{minimum_required} participants, sending warnings"
            )
            try:
                deliveries, unreachable = build_warning_deliveries(schedule)
                fan_out_result = await fan_out(
                    deliveries,
                    budget_seconds=get_notification_budget_seconds(),
                    max_attempts=get_notification_max_attempts(),
                    sink=sink,
                )
            except Exception as e:
                logger.exception(f"Error warning schedule {schedule_id}: {e}")
                continue

            result.total_warned_schedules += 1
            result.warnings_sent += fan_out_result.sent
            result.warnings_failed += fan_out_result.failed + unreachable

    except Exception as e:
        logger.exception(f"Auto-cancel warning sweep failed: {e}")
        sentry_sdk.capture_exception(e)
        result.success = False
        result.error = str(e)

    logger.info(
        f"Auto-cancel warning summary: checked={result.total_checked} "
        f"warned={result.total_warned_schedules} sent={result.warnings_sent} "
        f"failed={result.warnings_failed} success={result.success}"
    )
    return result
