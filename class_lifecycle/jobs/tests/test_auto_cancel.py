"""Tests for the low-participant auto-cancel sweep."""

from datetime import timedelta
from functools import partial

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from class_lifecycle.database import get_connection, get_transaction, run_in_transaction
from class_lifecycle.enums import BookingStatus, NotificationType, ScheduleStatus
from class_lifecycle.errors import TransientStoreError
from class_lifecycle.jobs import auto_cancel
from class_lifecycle.jobs.auto_cancel import (
    CANCELLATION_REASON,
    append_note,
    cancel_schedule_if_still_under_minimum,
    check_and_cancel_low_participant_schedules,
)
from class_lifecycle.queries.bookings import create_booking, get_bookings_for_schedule
from class_lifecycle.queries.notifications import get_notifications_for_user
from class_lifecycle.queries.schedules import get_schedule, update_schedule_status


def sent_to(sink: AsyncMock) -> list[tuple[int, dict]]:
    """(recipient_id, payload) for every send the sink received."""
    return [(c.args[0], c.args[2]) for c in sink.await_args_list]


async def load(schedule_id: int) -> tuple[dict, list[dict]]:
    async with get_connection() as conn:
        schedule = await get_schedule(conn, schedule_id)
        bookings = await get_bookings_for_schedule(conn, schedule_id)
    return schedule, bookings


class TestAppendNote:
    def test_first_note(self):
        assert append_note(None, "cancelled") == "cancelled"

    def test_preserves_existing_notes(self):
        assert append_note("Bring mats", "cancelled") == "Bring mats\n\ncancelled"


class TestScenarioA:
    """3 confirmed + 2 waitlisted against a minimum of 5, starting in 25h."""

    @pytest.mark.asyncio
    async def test_cancels_schedule_and_confirmed_bookings(self, make_schedule, now):
        schedule_id = await make_schedule(
            now + timedelta(hours=25), minimum_participants=5, confirmed=3, waitlist=2
        )

        result = await check_and_cancel_low_participant_schedules(
            now=now, sink=AsyncMock()
        )

        schedule, bookings = await load(schedule_id)
        assert result.success is True
        assert result.total_checked == 1
        assert result.total_cancelled == 1
        assert schedule["status"] == ScheduleStatus.CANCELLED
        assert schedule["current_bookings"] == 0
        assert schedule["notes"] == f"[Auto-cancelled] {CANCELLATION_REASON}"

        cancelled = [b for b in bookings if b["status"] == BookingStatus.CANCELLED]
        waitlisted = [b for b in bookings if b["status"] == BookingStatus.WAITLIST]
        assert len(cancelled) == 3
        assert len(waitlisted) == 2
        assert {b["cancellation_reason"] for b in cancelled} == {CANCELLATION_REASON}
        assert len({b["cancelled_at"] for b in cancelled}) == 1
        assert all(b["cancelled_at"] is not None for b in cancelled)

    @pytest.mark.asyncio
    async def test_notifies_trainer_members_and_waitlist_once_each(
        self, gym, make_schedule, now
    ):
        await make_schedule(
            now + timedelta(hours=25), minimum_participants=5, confirmed=3, waitlist=2
        )
        sink = AsyncMock()

        result = await check_and_cancel_low_participant_schedules(now=now, sink=sink)

        sends = sent_to(sink)
        assert result.total_notifications_sent == 6
        assert result.total_notifications_failed == 0
        assert sorted(recipient for recipient, _ in sends) == sorted(
            [gym["trainer_user_id"], 100, 101, 102, 103, 104]
        )
        assert all(
            c.args[1] == NotificationType.SCHEDULE_CANCELLED
            for c in sink.await_args_list
        )

        payloads = {recipient: payload for recipient, payload in sends}
        trainer_payload = payloads[gym["trainer_user_id"]]
        assert trainer_payload["role"] == "TRAINER"
        assert trainer_payload["current_bookings"] == 3
        assert trainer_payload["minimum_participants"] == 5
        assert payloads[100]["is_waitlist"] is False
        assert payloads[103]["is_waitlist"] is True
        assert payloads[104]["is_waitlist"] is True
        assert payloads[100]["cancellation_reason"] == CANCELLATION_REASON
        assert payloads[100]["trainer_name"] == "Linh Tran"

    @pytest.mark.asyncio
    async def test_default_sink_writes_in_app_notifications(
        self, gym, make_schedule, now
    ):
        await make_schedule(
            now + timedelta(hours=25), minimum_participants=5, confirmed=3, waitlist=2
        )

        result = await check_and_cancel_low_participant_schedules(now=now)

        async with get_connection() as conn:
            trainer_inbox = await get_notifications_for_user(conn, gym["trainer_user_id"])
            waitlist_inbox = await get_notifications_for_user(conn, 104)

        assert result.total_notifications_sent == 6
        assert trainer_inbox[0]["title"] == "Class cancelled: Morning Yoga"
        assert "3 of the 5" in trainer_inbox[0]["message"]
        assert "Wednesday, 11 Mar 2026 at 09:00" in trainer_inbox[0]["message"]
        assert "waitlist" in waitlist_inbox[0]["message"]

    @pytest.mark.asyncio
    async def test_preserves_existing_notes(self, make_schedule, now):
        schedule_id = await make_schedule(
            now + timedelta(hours=25), confirmed=1, notes="Bring your own mat"
        )

        await check_and_cancel_low_participant_schedules(now=now, sink=AsyncMock())

        schedule, _ = await load(schedule_id)
        assert schedule["notes"] == (
            f"Bring your own mat\n\n[Auto-cancelled] {CANCELLATION_REASON}"
        )


class TestScenarioB:
    """Bookings arriving between the scan and the in-transaction re-check."""

    def _bookings_arrive_before_transaction(self, schedule_id, member_ids):
        real_run_in_transaction = auto_cancel.run_in_transaction

        async def wrapper(fn, **kwargs):
            async with get_transaction() as conn:
                for member_id in member_ids:
                    await create_booking(conn, schedule_id, member_id)
            return await real_run_in_transaction(fn, **kwargs)

        return wrapper

    @pytest.mark.asyncio
    async def test_still_under_minimum_cancels_including_late_booking(
        self, gym, make_schedule, now
    ):
        schedule_id = await make_schedule(
            now + timedelta(hours=25), minimum_participants=5, confirmed=3
        )
        sink = AsyncMock()

        with patch(
            "class_lifecycle.jobs.auto_cancel.run_in_transaction",
            self._bookings_arrive_before_transaction(
                schedule_id, gym["member_ids"][3:4]
            ),
        ):
            result = await check_and_cancel_low_participant_schedules(
                now=now, sink=sink
            )

        schedule, bookings = await load(schedule_id)
        assert result.total_cancelled == 1
        assert schedule["status"] == ScheduleStatus.CANCELLED
        assert schedule["current_bookings"] == 0
        assert [b["status"] for b in bookings] == [BookingStatus.CANCELLED] * 4
        # The late booker is told too
        assert 103 in [recipient for recipient, _ in sent_to(sink)]

    @pytest.mark.asyncio
    async def test_reaching_minimum_aborts_cancellation(self, gym, make_schedule, now):
        schedule_id = await make_schedule(
            now + timedelta(hours=25), minimum_participants=5, confirmed=3
        )
        sink = AsyncMock()

        with patch(
            "class_lifecycle.jobs.auto_cancel.run_in_transaction",
            self._bookings_arrive_before_transaction(
                schedule_id, gym["member_ids"][3:5]
            ),
        ):
            result = await check_and_cancel_low_participant_schedules(
                now=now, sink=sink
            )

        schedule, bookings = await load(schedule_id)
        assert result.success is True
        assert result.total_checked == 1
        assert result.total_cancelled == 0
        assert schedule["status"] == ScheduleStatus.SCHEDULED
        assert schedule["current_bookings"] == 5
        assert schedule["notes"] is None
        assert [b["status"] for b in bookings] == [BookingStatus.CONFIRMED] * 5
        sink.assert_not_awaited()


class TestScenarioC:
    """Schedules without a minimum are never touched."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("minimum", [None, 0, -1])
    async def test_no_minimum_is_ignored(self, make_schedule, now, minimum):
        schedule_id = await make_schedule(
            now + timedelta(hours=25), minimum_participants=minimum, confirmed=0
        )
        sink = AsyncMock()

        result = await check_and_cancel_low_participant_schedules(now=now, sink=sink)

        schedule, _ = await load(schedule_id)
        assert result.total_checked == 0
        assert schedule["status"] == ScheduleStatus.SCHEDULED
        sink.assert_not_awaited()


class TestSelection:
    @pytest.mark.asyncio
    async def test_enough_participants_is_left_alone(self, make_schedule, now):
        schedule_id = await make_schedule(
            now + timedelta(hours=25), minimum_participants=3, confirmed=3
        )

        result = await check_and_cancel_low_participant_schedules(
            now=now, sink=AsyncMock()
        )

        schedule, _ = await load(schedule_id)
        assert result.total_checked == 1
        assert result.total_cancelled == 0
        assert schedule["status"] == ScheduleStatus.SCHEDULED

    @pytest.mark.asyncio
    async def test_classes_inside_buffer_or_after_tomorrow_are_not_checked(
        self, make_schedule, now
    ):
        """Window is tomorrow 09:00 to midnight (civil time) at 08:00 today."""
        too_soon = await make_schedule(now + timedelta(hours=24, minutes=30))
        day_after = await make_schedule(now + timedelta(hours=40))

        result = await check_and_cancel_low_participant_schedules(
            now=now, sink=AsyncMock()
        )

        assert result.total_checked == 0
        for schedule_id in (too_soon, day_after):
            schedule, _ = await load(schedule_id)
            assert schedule["status"] == ScheduleStatus.SCHEDULED

    @pytest.mark.asyncio
    async def test_empty_window_late_in_the_evening(self, make_schedule, now):
        late_evening = now + timedelta(hours=15, minutes=30)  # 23:30 local
        await make_schedule(late_evening + timedelta(hours=25))

        result = await check_and_cancel_low_participant_schedules(
            now=late_evening, sink=AsyncMock()
        )

        assert result.success is True
        assert result.total_checked == 0


class TestIdempotence:
    @pytest.mark.asyncio
    async def test_second_sweep_is_a_noop(self, make_schedule, now):
        schedule_id = await make_schedule(
            now + timedelta(hours=25), minimum_participants=5, confirmed=3, waitlist=2
        )
        sink = AsyncMock()

        first = await check_and_cancel_low_participant_schedules(now=now, sink=sink)
        second = await check_and_cancel_low_participant_schedules(now=now, sink=sink)

        schedule, _ = await load(schedule_id)
        assert first.total_cancelled == 1
        assert second.total_checked == 0
        assert second.total_cancelled == 0
        assert sink.await_count == 6
        assert schedule["notes"].count("[Auto-cancelled]") == 1

    @pytest.mark.asyncio
    async def test_recheck_skips_schedule_cancelled_by_another_sweep(
        self, make_schedule, now
    ):
        schedule_id = await make_schedule(now + timedelta(hours=25), confirmed=1)
        async with get_transaction() as conn:
            await update_schedule_status(conn, schedule_id, ScheduleStatus.CANCELLED)

        outcome = await run_in_transaction(
            partial(
                cancel_schedule_if_still_under_minimum,
                schedule_id=schedule_id,
                cancelled_at=now,
            )
        )

        _, bookings = await load(schedule_id)
        assert outcome.cancelled is False
        assert outcome.reason == "already_processed"
        assert bookings[0]["status"] == BookingStatus.CONFIRMED


class TestRecipients:
    @pytest.mark.asyncio
    async def test_trainer_without_user_account_is_skipped(self, db, gym, make_schedule, now):
        from sqlalchemy import insert

        from class_lifecycle.tables import trainers

        async with get_transaction() as conn:
            trainer_id = (
                await conn.execute(
                    insert(trainers)
                    .values(user_id=None, full_name="Contract Trainer")
                    .returning(trainers.c.trainer_id)
                )
            ).scalar_one()
        schedule_id = await make_schedule(
            now + timedelta(hours=25), confirmed=2, waitlist=1, trainer_id=trainer_id
        )
        sink = AsyncMock()

        result = await check_and_cancel_low_participant_schedules(now=now, sink=sink)

        schedule, _ = await load(schedule_id)
        assert result.success is True
        assert schedule["status"] == ScheduleStatus.CANCELLED
        assert sorted(recipient for recipient, _ in sent_to(sink)) == [100, 101, 102]

    @pytest.mark.asyncio
    async def test_member_without_user_account_is_counted_as_failed(
        self, gym, make_schedule, now
    ):
        from sqlalchemy import update

        from class_lifecycle.tables import members

        async with get_transaction() as conn:
            await conn.execute(
                update(members)
                .where(members.c.member_id == gym["member_ids"][0])
                .values(user_id=None)
            )
        schedule_id = await make_schedule(
            now + timedelta(hours=25), minimum_participants=5, confirmed=3
        )
        sink = AsyncMock()

        with patch("class_lifecycle.jobs.auto_cancel.sentry_sdk") as mock_sentry:
            result = await check_and_cancel_low_participant_schedules(
                now=now, sink=sink
            )

        schedule, bookings = await load(schedule_id)
        assert schedule["status"] == ScheduleStatus.CANCELLED
        assert all(b["status"] == BookingStatus.CANCELLED for b in bookings)
        assert sorted(recipient for recipient, _ in sent_to(sink)) == sorted(
            [gym["trainer_user_id"], 101, 102]
        )
        assert result.total_notifications_sent == 3
        assert result.total_notifications_failed == 1
        mock_sentry.capture_message.assert_called_once()

    @pytest.mark.asyncio
    async def test_unassigned_trainer_uses_default_name(self, make_schedule, now):
        await make_schedule(now + timedelta(hours=25), confirmed=1, trainer_id=None)
        sink = AsyncMock()

        await check_and_cancel_low_participant_schedules(now=now, sink=sink)

        [(recipient, payload)] = sent_to(sink)
        assert recipient == 100
        assert payload["trainer_name"] == "Trainer"
        assert payload["trainer_id"] is None

    @pytest.mark.asyncio
    async def test_failed_notifications_are_counted_not_rolled_back(
        self, make_schedule, now
    ):
        schedule_id = await make_schedule(now + timedelta(hours=25), confirmed=2)

        async def sink(recipient_id, notification_type, payload):
            if recipient_id == 101:
                raise ConnectionError("push service down")

        with (
            patch("class_lifecycle.retry.asyncio.sleep", AsyncMock()),
            patch("class_lifecycle.notifications.dispatcher.sentry_sdk"),
        ):
            result = await check_and_cancel_low_participant_schedules(
                now=now, sink=sink
            )

        schedule, _ = await load(schedule_id)
        assert schedule["status"] == ScheduleStatus.CANCELLED
        assert result.total_notifications_sent == 2
        assert result.total_notifications_failed == 1


class TestErrorHandling:
    @pytest.mark.asyncio
    async def test_one_failing_schedule_does_not_stop_the_sweep(
        self, make_schedule, now
    ):
        broken = await make_schedule(now + timedelta(hours=25), confirmed=1)
        healthy = await make_schedule(now + timedelta(hours=26), confirmed=1)
        real_cancel = auto_cancel.cancel_schedule_if_still_under_minimum

        async def flaky_cancel(conn, schedule_id, cancelled_at):
            if schedule_id == broken:
                raise RuntimeError("unexpected")
            return await real_cancel(
                conn, schedule_id=schedule_id, cancelled_at=cancelled_at
            )

        with patch(
            "class_lifecycle.jobs.auto_cancel.cancel_schedule_if_still_under_minimum",
            flaky_cancel,
        ):
            result = await check_and_cancel_low_participant_schedules(
                now=now, sink=AsyncMock()
            )

        broken_schedule, _ = await load(broken)
        healthy_schedule, _ = await load(healthy)
        assert result.success is True
        assert result.total_checked == 2
        assert result.total_cancelled == 1
        assert broken_schedule["status"] == ScheduleStatus.SCHEDULED
        assert healthy_schedule["status"] == ScheduleStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_serialization_conflict_is_retried(self, make_schedule, now):
        schedule_id = await make_schedule(now + timedelta(hours=25), confirmed=1)
        real_cancel = auto_cancel.cancel_schedule_if_still_under_minimum
        attempts = []

        async def conflicting_once(conn, schedule_id, cancelled_at):
            attempts.append(schedule_id)
            if len(attempts) == 1:
                raise TransientStoreError("could not serialize access")
            return await real_cancel(
                conn, schedule_id=schedule_id, cancelled_at=cancelled_at
            )

        with (
            patch(
                "class_lifecycle.jobs.auto_cancel.cancel_schedule_if_still_under_minimum",
                conflicting_once,
            ),
            patch("class_lifecycle.retry.asyncio.sleep", AsyncMock()) as mock_sleep,
        ):
            result = await check_and_cancel_low_participant_schedules(
                now=now, sink=AsyncMock()
            )

        schedule, _ = await load(schedule_id)
        assert len(attempts) == 2
        mock_sleep.assert_awaited_once_with(1.0)
        assert result.total_cancelled == 1
        assert schedule["status"] == ScheduleStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_store_unreachable_returns_failure_result(self, now):
        with (
            patch(
                "class_lifecycle.jobs.auto_cancel.get_connection",
                MagicMock(side_effect=ConnectionRefusedError("db down")),
            ),
            patch("class_lifecycle.jobs.auto_cancel.sentry_sdk") as mock_sentry,
        ):
            result = await check_and_cancel_low_participant_schedules(now=now)

        assert result.success is False
        assert result.error == "db down"
        assert result.total_checked == 0
        assert result.duration_ms >= 0
        mock_sentry.capture_exception.assert_called_once()
        assert result.to_dict()["success"] is False
