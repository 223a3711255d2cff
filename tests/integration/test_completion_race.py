"""
Integration tests for habit completion against PostgreSQL

Exercises the row locks, the UTC day derivation in insert_completion and
the ux_completion_logs_habit_day index on a real database. Skipped when
DATABASE_URL is not reachable.
"""
import asyncio
import pytest
import pytest_asyncio
from datetime import datetime, timezone
from importlib import resources
from uuid import uuid4
from zoneinfo import ZoneInfo

import psycopg
from psycopg import errors as pg_errors

from habitrpg.config import DATABASE_URL
from habitrpg.db import queries
from habitrpg.db.connection import Database
from habitrpg.models import CompletionOutcome, HabitCreate
from habitrpg.services.completion_service import CompletionService

pytestmark = pytest.mark.integration


@pytest_asyncio.fixture
async def database():
    """Pool on DATABASE_URL with the schema applied"""
    try:
        probe = await psycopg.AsyncConnection.connect(DATABASE_URL, connect_timeout=3)
    except psycopg.OperationalError as e:
        pytest.skip(f"PostgreSQL not available: {e}")
    await probe.close()

    database = Database(DATABASE_URL)
    await database.init_pool()
    schema = resources.files("habitrpg.db").joinpath("schema.sql").read_text(encoding="utf-8")
    async with database.transaction() as conn:
        await conn.execute(schema)

    yield database
    await database.close_pool()


@pytest_asyncio.fixture
async def habit(database):
    """A fresh user with one Medium daily habit; removed (with its logs) afterwards"""
    suffix = uuid4().hex[:8]
    async with database.transaction() as conn:
        user = await queries.users.create_user(
            conn, f"race_{suffix}", f"race_{suffix}@habitrpg.test", "not-a-real-hash"
        )
        habit = await queries.habits.insert_habit(conn, user.id, HabitCreate(title="Race"))

    yield habit

    async with database.transaction() as conn:
        await conn.execute("DELETE FROM users WHERE id = %s", (user.id,))


async def _log_count(database, habit_id):
    async with database.connection() as conn:
        cur = await conn.execute(
            "SELECT count(*) AS n FROM completion_logs WHERE habit_id = %s", (habit_id,)
        )
        return (await cur.fetchone())["n"]


async def _user(database, user_id):
    async with database.connection() as conn:
        return await queries.users.get_user_by_id(conn, user_id)


@pytest.mark.asyncio
async def test_simultaneous_completions_award_once(database, habit):
    service = CompletionService(database)
    now = datetime.now(timezone.utc)

    rewards = await asyncio.gather(
        service.complete_habit(habit.user_id, habit.id, now=now),
        service.complete_habit(habit.user_id, habit.id, now=now),
    )

    assert {r.outcome for r in rewards} == {CompletionOutcome.COMPLETED, CompletionOutcome.ALREADY_COMPLETED}
    assert await _log_count(database, habit.id) == 1

    user = await _user(database, habit.user_id)
    assert user.total_xp == 10
    assert user.xp == 10


@pytest.mark.asyncio
async def test_many_simultaneous_completions_award_once(database, habit):
    service = CompletionService(database)
    now = datetime.now(timezone.utc)

    rewards = await asyncio.gather(*[
        service.complete_habit(habit.user_id, habit.id, now=now) for _ in range(5)
    ])

    assert sum(1 for r in rewards if r.success) == 1
    assert await _log_count(database, habit.id) == 1
    assert (await _user(database, habit.user_id)).total_xp == 10


@pytest.mark.asyncio
async def test_completions_either_side_of_utc_midnight(database, habit):
    service = CompletionService(database)

    before = await service.complete_habit(
        habit.user_id, habit.id, now=datetime(2024, 3, 10, 23, 59, tzinfo=timezone.utc)
    )
    after = await service.complete_habit(
        habit.user_id, habit.id, now=datetime(2024, 3, 11, 0, 0, tzinfo=timezone.utc)
    )

    assert before.outcome == CompletionOutcome.COMPLETED
    assert after.outcome == CompletionOutcome.COMPLETED
    assert after.new_streak == 2
    assert after.new_total_xp == 20
    assert await _log_count(database, habit.id) == 2


@pytest.mark.asyncio
async def test_unique_index_uses_utc_day_not_local_day(database, habit):
    morning = datetime(2024, 3, 10, 1, 0, tzinfo=timezone.utc)
    # 08:00 on 11 March in Tokyo is still 10 March in UTC
    evening = datetime(2024, 3, 10, 23, 0, tzinfo=timezone.utc).astimezone(ZoneInfo("Asia/Tokyo"))

    async with database.transaction() as conn:
        await queries.completions.insert_completion(conn, habit.id, morning)

    with pytest.raises(pg_errors.UniqueViolation):
        async with database.transaction() as conn:
            await queries.completions.insert_completion(conn, habit.id, evening)

    assert await _log_count(database, habit.id) == 1
