"""Unit tests for habit completion (habitrpg/services/completion_service.py)"""
import asyncio
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import psycopg
from prometheus_client import REGISTRY
from psycopg import errors as pg_errors

from habitrpg.gamification.progression import MAX_TOTAL_XP
from habitrpg.models import CompletionOutcome
from habitrpg.services.completion_service import CompletionService


@pytest.fixture
def service(store):
    return CompletionService(store.db)


@pytest.fixture
def no_backoff():
    with patch("habitrpg.resilience.retry.calculate_backoff", return_value=0):
        yield


# ============================================================================
# Successful Completion
# ============================================================================

@pytest.mark.asyncio
async def test_complete_habit_awards_xp_and_starts_streak(service, store, user_id, habit_id, now):
    reward = await service.complete_habit(user_id, habit_id, now=now)

    assert reward.success is True
    assert reward.outcome == CompletionOutcome.COMPLETED
    assert reward.xp_gained == 10
    assert reward.leveled_up is False
    assert reward.new_level == 1
    assert reward.new_xp == 10
    assert reward.new_total_xp == 10
    assert reward.new_streak == 1
    assert reward.message == "Well done! You gained 10 XP!"
    assert reward.updated_habit.can_complete_today is False
    assert reward.updated_habit.current_streak == 1

    assert store.users[user_id]["total_xp"] == 10
    assert store.users[user_id]["xp"] == 10
    assert store.habits[habit_id]["last_completed_at"] == now
    assert len(store.logs_for(habit_id)) == 1


@pytest.mark.asyncio
async def test_complete_habit_levels_up(service, store, now):
    user_id = store.add_user("climber", level=1, xp=95, total_xp=95)
    habit_id = store.add_habit(user_id, "Run 5k", difficulty=3)

    reward = await service.complete_habit(user_id, habit_id, now=now)

    assert reward.xp_gained == 20
    assert reward.leveled_up is True
    assert reward.new_level == 2
    assert reward.new_xp == 15
    assert reward.new_total_xp == 115
    assert reward.message == "Great job! You gained 20 XP and leveled up!"
    assert store.users[user_id]["level"] == 2


@pytest.mark.asyncio
async def test_level_derived_from_total_not_stored_level(service, store, now):
    """A drifted stored level is overwritten with the level of the new total"""
    user_id = store.add_user("drifted", level=5, xp=0, total_xp=1050)
    habit_id = store.add_habit(user_id, "Stretch", difficulty=1)

    reward = await service.complete_habit(user_id, habit_id, now=now)

    assert reward.new_total_xp == 1055
    assert reward.new_level == 11
    assert reward.new_xp == 55
    assert store.users[user_id]["level"] == 11


@pytest.mark.asyncio
async def test_naive_datetime_is_treated_as_utc(service, store, user_id, habit_id):
    await service.complete_habit(user_id, habit_id, now=datetime(2024, 3, 10, 8, 0))

    log = store.logs_for(habit_id)[0]
    assert log["completed_at"].tzinfo is not None
    assert log["completed_on"].isoformat() == "2024-03-10"


# ============================================================================
# At Most Once per UTC Day
# ============================================================================

@pytest.mark.asyncio
async def test_second_completion_same_day_is_rejected(service, store, user_id, habit_id, now):
    first = await service.complete_habit(user_id, habit_id, now=now)
    user_after_first = dict(store.users[user_id])
    habit_after_first = dict(store.habits[habit_id])

    second = await service.complete_habit(user_id, habit_id, now=now + timedelta(hours=3))

    assert first.success is True
    assert second.success is False
    assert second.outcome == CompletionOutcome.ALREADY_COMPLETED
    assert second.xp_gained == 0
    assert second.updated_habit is None
    assert store.users[user_id] == user_after_first
    assert store.habits[habit_id] == habit_after_first
    assert len(store.logs_for(habit_id)) == 1


@pytest.mark.asyncio
async def test_utc_midnight_opens_a_new_window(service, store, user_id, habit_id):
    late = datetime(2024, 3, 10, 23, 59, 59, tzinfo=timezone.utc)
    early = datetime(2024, 3, 11, 0, 0, 1, tzinfo=timezone.utc)

    first = await service.complete_habit(user_id, habit_id, now=late)
    second = await service.complete_habit(user_id, habit_id, now=early)

    assert first.success and second.success
    assert second.new_streak == 2


@pytest.mark.asyncio
async def test_window_is_utc_not_local_time(service, store, user_id, habit_id):
    """23:30 in UTC-5 is already the next UTC day"""
    eastern = timezone(timedelta(hours=-5))

    first = await service.complete_habit(user_id, habit_id, now=datetime(2024, 3, 10, 12, 0, tzinfo=eastern))
    second = await service.complete_habit(user_id, habit_id, now=datetime(2024, 3, 10, 23, 30, tzinfo=eastern))

    assert first.success is True
    assert second.success is True


# ============================================================================
# Streak Scenario
# ============================================================================

@pytest.mark.asyncio
async def test_streak_continues_then_resets_after_gap(service, store, user_id, habit_id, now):
    day_n = await service.complete_habit(user_id, habit_id, now=now)
    day_n1 = await service.complete_habit(user_id, habit_id, now=now + timedelta(days=1))
    # N+2 skipped
    day_n3 = await service.complete_habit(user_id, habit_id, now=now + timedelta(days=3))

    assert day_n.new_streak == 1
    assert day_n1.new_streak == 2
    assert day_n3.new_streak == 1
    assert store.habits[habit_id]["current_streak"] == 1
    assert store.habits[habit_id]["best_streak"] == 2
    assert store.users[user_id]["total_xp"] == 30


@pytest.mark.asyncio
async def test_streak_uses_completion_log_not_stored_timestamp(service, store, user_id, now):
    """Yesterday's log continues the streak even if last_completed_at is stale"""
    habit_id = store.add_habit(
        user_id,
        "Meditate",
        current_streak=4,
        best_streak=4,
        last_completed_at=now - timedelta(days=30),
    )
    store.add_log(habit_id, now - timedelta(days=1))

    reward = await service.complete_habit(user_id, habit_id, now=now)

    assert reward.new_streak == 5
    assert store.habits[habit_id]["best_streak"] == 5


# ============================================================================
# Failure Outcomes
# ============================================================================

@pytest.mark.asyncio
async def test_unknown_habit_is_not_found(service, store, user_id, now):
    reward = await service.complete_habit(user_id, 999, now=now)

    assert reward.outcome == CompletionOutcome.NOT_FOUND
    assert reward.message == "Habit not found"
    assert store.logs == {}


@pytest.mark.asyncio
async def test_other_users_habit_is_not_found(service, store, habit_id, now):
    intruder = store.add_user("intruder")

    reward = await service.complete_habit(intruder, habit_id, now=now)

    assert reward.outcome == CompletionOutcome.NOT_FOUND
    assert store.logs == {}


@pytest.mark.asyncio
async def test_soft_deleted_habit_is_not_found(service, store, user_id, now):
    habit_id = store.add_habit(user_id, "Old habit", is_active=False)

    reward = await service.complete_habit(user_id, habit_id, now=now)

    assert reward.outcome == CompletionOutcome.NOT_FOUND


@pytest.mark.asyncio
async def test_xp_ceiling_blocks_completion(service, store, now):
    user_id = store.add_user("maxed", level=999, xp=95, total_xp=MAX_TOTAL_XP - 5)
    habit_id = store.add_habit(user_id, "Hard thing", difficulty=3)

    reward = await service.complete_habit(user_id, habit_id, now=now)

    assert reward.outcome == CompletionOutcome.LIMIT_REACHED
    assert store.users[user_id]["total_xp"] == MAX_TOTAL_XP - 5
    assert store.logs_for(habit_id) == []
    assert store.habits[habit_id]["current_streak"] == 0


@pytest.mark.asyncio
async def test_xp_ceiling_can_be_reached_exactly(service, store, now):
    user_id = store.add_user("almost", level=999, xp=90, total_xp=MAX_TOTAL_XP - 10)
    habit_id = store.add_habit(user_id, "Medium thing", difficulty=2)

    reward = await service.complete_habit(user_id, habit_id, now=now)

    assert reward.success is True
    assert reward.new_total_xp == MAX_TOTAL_XP


@pytest.mark.asyncio
async def test_failure_mid_transaction_leaves_no_trace(service, store, user_id, habit_id, now):
    store.fail("update_habit_progress", RuntimeError("disk on fire"))

    with pytest.raises(RuntimeError):
        await service.complete_habit(user_id, habit_id, now=now)

    assert store.logs_for(habit_id) == []
    assert store.users[user_id]["total_xp"] == 0
    assert store.habits[habit_id]["current_streak"] == 0
    assert store.rollbacks == 1


# ============================================================================
# Transient Failures
# ============================================================================

@pytest.mark.asyncio
async def test_serialization_failure_is_retried(service, store, user_id, habit_id, now, no_backoff):
    store.fail("insert_completion", pg_errors.SerializationFailure("could not serialize access"))

    reward = await service.complete_habit(user_id, habit_id, now=now)

    assert reward.success is True
    assert store.transactions_started == 2
    assert len(store.logs_for(habit_id)) == 1
    assert store.users[user_id]["total_xp"] == 10


@pytest.mark.asyncio
async def test_exhausted_retries_are_transient(service, store, user_id, habit_id, now, no_backoff):
    store.fail("get_active_habit_for_update", pg_errors.DeadlockDetected("deadlock detected"), times=10)

    reward = await service.complete_habit(user_id, habit_id, now=now)

    assert reward.outcome == CompletionOutcome.TRANSIENT
    assert reward.success is False
    assert store.logs == {}
    assert store.users[user_id]["total_xp"] == 0


@pytest.mark.asyncio
async def test_lost_connection_is_transient(service, store, user_id, habit_id, now):
    labels = {"error_type": "ConnectionError", "component": "database"}
    before = REGISTRY.get_sample_value("errors_total", labels) or 0
    store.unavailable = True

    reward = await service.complete_habit(user_id, habit_id, now=now)

    assert reward.outcome == CompletionOutcome.TRANSIENT
    assert REGISTRY.get_sample_value("errors_total", labels) == before + 1


# ============================================================================
# Concurrency
# ============================================================================

@pytest.mark.asyncio
async def test_concurrent_completions_with_row_locks(service, store, user_id, habit_id, now):
    rewards = await asyncio.gather(
        service.complete_habit(user_id, habit_id, now=now),
        service.complete_habit(user_id, habit_id, now=now),
    )

    outcomes = sorted(r.outcome.value for r in rewards)
    assert outcomes == ["already_completed", "completed"]
    assert len(store.logs_for(habit_id)) == 1
    assert store.users[user_id]["total_xp"] == 10
    assert store.habits[habit_id]["current_streak"] == 1


@pytest.mark.asyncio
async def test_concurrent_completions_unique_constraint_decides(unlocked_store, now):
    """Without row locks both pass the check; the unique index rejects the loser"""
    store = unlocked_store
    service = CompletionService(store.db)
    user_id = store.add_user("racer")
    habit_id = store.add_habit(user_id, "Sprint")

    rewards = await asyncio.gather(*[
        service.complete_habit(user_id, habit_id, now=now) for _ in range(3)
    ])

    completed = [r for r in rewards if r.success]
    assert len(completed) == 1
    assert all(r.outcome == CompletionOutcome.ALREADY_COMPLETED for r in rewards if not r.success)
    assert len(store.logs_for(habit_id)) == 1
    assert store.users[user_id]["total_xp"] == 10
    assert store.rollbacks >= 1


@pytest.mark.asyncio
async def test_concurrent_completions_of_different_habits_both_count(service, store, user_id, now):
    first = store.add_habit(user_id, "Read")
    second = store.add_habit(user_id, "Write", difficulty=3)

    rewards = await asyncio.gather(
        service.complete_habit(user_id, first, now=now),
        service.complete_habit(user_id, second, now=now),
    )

    assert all(r.success for r in rewards)
    assert store.users[user_id]["total_xp"] == 30
    assert store.users[user_id]["xp"] == 30


# ============================================================================
# Eligibility
# ============================================================================

@pytest.mark.asyncio
async def test_can_complete_today(service, store, user_id, habit_id, now):
    assert await service.can_complete_today(habit_id, now=now) is True

    await service.complete_habit(user_id, habit_id, now=now)

    assert await service.can_complete_today(habit_id, now=now) is False
    assert await service.can_complete_today(habit_id, now=now + timedelta(days=1)) is True


@pytest.mark.asyncio
async def test_can_complete_today_fails_closed(service, store, habit_id, now):
    store.fail("completion_exists_between", RuntimeError("query failed"))

    assert await service.can_complete_today(habit_id, now=now) is False


@pytest.mark.asyncio
async def test_can_complete_today_fails_closed_without_connection(service, store, habit_id, now):
    store.unavailable = True

    assert await service.can_complete_today(habit_id, now=now) is False


@pytest.mark.asyncio
async def test_can_complete_today_failure_leaves_shared_connection_usable(service, store, habit_id, now):
    store.fail("completion_exists_between", RuntimeError("query failed"))

    async with store.db.connection() as conn:
        assert await service.can_complete_today(habit_id, now=now, conn=conn) is False
        assert conn.aborted is False
        assert await service.can_complete_today(habit_id, now=now, conn=conn) is True
