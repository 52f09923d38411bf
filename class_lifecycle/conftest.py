"""Pytest fixtures shared by the class lifecycle tests."""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
import pytz
from sqlalchemy import insert

from class_lifecycle.database import close_engine, get_engine, get_transaction
from class_lifecycle.enums import BookingStatus
from class_lifecycle.queries.bookings import create_booking
from class_lifecycle.queries.schedules import create_schedule
from class_lifecycle.tables import gym_classes, members, metadata, trainers

# Tuesday 2026-03-10 08:00 in Ho Chi Minh City (01:00 UTC)
REFERENCE_NOW = pytz.timezone("Asia/Ho_Chi_Minh").localize(
    datetime(2026, 3, 10, 8, 0)
).astimezone(pytz.UTC)

TRAINER_USER_ID = 900
MEMBER_COUNT = 8


@pytest.fixture
def now():
    return REFERENCE_NOW


@pytest_asyncio.fixture
async def db(tmp_path, monkeypatch):
    """
    Point the engine at a throwaway SQLite file with the full schema.

    Each test gets a fresh database; the engine singleton is disposed
    afterwards so the next test starts clean.
    """
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await close_engine()

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield engine

    await close_engine()


@pytest_asyncio.fixture
async def gym(db):
    """
    Seed one class, a trainer with a user account and eight members.

    Member i has user_id 100 + i.
    """
    async with get_transaction() as conn:
        class_id = (
            await conn.execute(
                insert(gym_classes)
                .values(name="Morning Yoga")
                .returning(gym_classes.c.class_id)
            )
        ).scalar_one()
        trainer_id = (
            await conn.execute(
                insert(trainers)
                .values(user_id=TRAINER_USER_ID, full_name="Linh Tran")
                .returning(trainers.c.trainer_id)
            )
        ).scalar_one()
        member_ids = []
        for i in range(MEMBER_COUNT):
            member_ids.append(
                (
                    await conn.execute(
                        insert(members)
                        .values(user_id=100 + i, full_name=f"Member {i}")
                        .returning(members.c.member_id)
                    )
                ).scalar_one()
            )

    return {
        "class_id": class_id,
        "trainer_id": trainer_id,
        "trainer_user_id": TRAINER_USER_ID,
        "member_ids": member_ids,
        "member_user_ids": [100 + i for i in range(MEMBER_COUNT)],
    }


@pytest.fixture
def make_schedule(gym):
    """
    Factory for a schedule with bookings.

    The first `confirmed` members get CONFIRMED bookings, the next
    `waitlist` members get WAITLIST bookings.
    """

    async def _make(
        start_time,
        minimum_participants=5,
        confirmed=0,
        waitlist=0,
        trainer_id="default",
        notes=None,
    ) -> int:
        if trainer_id == "default":
            trainer_id = gym["trainer_id"]
        async with get_transaction() as conn:
            schedule_id = await create_schedule(
                conn,
                class_id=gym["class_id"],
                start_time=start_time,
                end_time=start_time + timedelta(hours=1),
                trainer_id=trainer_id,
                minimum_participants=minimum_participants,
                max_capacity=20,
                notes=notes,
            )
            member_ids = gym["member_ids"]
            for member_id in member_ids[:confirmed]:
                await create_booking(conn, schedule_id, member_id)
            for member_id in member_ids[confirmed : confirmed + waitlist]:
                await create_booking(
                    conn, schedule_id, member_id, status=BookingStatus.WAITLIST
                )
        return schedule_id

    return _make
