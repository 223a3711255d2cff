"""
CompletionService - Habit Completion Business Logic

Marks a habit done for the current UTC day and applies the reward:
XP, level, streak and the completion log, all in one transaction.

Concurrency:
- The habit row and its owner's row are locked (SELECT ... FOR UPDATE), so
  concurrent completions of the same habit run one after the other
- The UNIQUE (habit_id, completed_on) constraint is the final arbiter; a
  violation means another request completed the habit first
- Serialization failures and deadlocks re-run the whole transaction
"""

import logging
from datetime import datetime
from typing import Optional

import psycopg
from psycopg import errors as pg_errors

from habitrpg.db import queries
from habitrpg.exceptions import wrap_external_exception
from habitrpg.gamification.progression import (
    MAX_TOTAL_XP,
    level_from_total_xp,
    xp_for_difficulty,
    xp_in_level,
)
from habitrpg.gamification.streaks import next_streak
from habitrpg.models import CompletionOutcome, GameReward, HabitView
from habitrpg.observability.metrics import (
    errors_total,
    habit_completions_total,
    level_ups_total,
    xp_awarded_total,
)
from habitrpg.resilience.retry import retry_on_transient
from habitrpg.utils.datetime_helpers import now_utc, to_utc, utc_date, utc_day_window

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Habit not found"
ALREADY_COMPLETED_MESSAGE = "Habit already completed today"
LIMIT_REACHED_MESSAGE = "Maximum XP reached. No more XP can be earned."
TRANSIENT_MESSAGE = "The server is busy. Please try again."


class CompletionService:
    """
    Service for completing habits.

    Responsibilities:
    - Enforce at most one completion per habit per UTC day
    - Award XP and recompute level from total XP
    - Continue or reset the habit streak
    """

    def __init__(self, db_connection):
        self.db = db_connection

    async def complete_habit(
        self,
        user_id: int,
        habit_id: int,
        now: Optional[datetime] = None
    ) -> GameReward:
        """
        Complete a habit for today.

        Args:
            user_id: Authenticated user
            habit_id: Habit to complete (must be active and owned by user_id)
            now: Completion time, defaults to the current UTC time

        Returns:
            GameReward. On any failure outcome nothing was persisted.
        """
        now = to_utc(now) if now is not None else now_utc()

        try:
            reward = await retry_on_transient(self._complete_once, user_id, habit_id, now)

        except pg_errors.UniqueViolation:
            # Another request logged a completion between our check and insert
            logger.warning(
                f"Lost completion race for habit {habit_id} (user {user_id}), "
                f"transaction rolled back"
            )
            reward = GameReward.failure(CompletionOutcome.ALREADY_COMPLETED, ALREADY_COMPLETED_MESSAGE)

        except psycopg.OperationalError as e:
            error = wrap_external_exception(
                e,
                operation="complete_habit",
                user_id=user_id,
                context={"habit_id": habit_id}
            )
            errors_total.labels(error_type=type(error).__name__, component="database").inc()
            reward = GameReward.failure(CompletionOutcome.TRANSIENT, TRANSIENT_MESSAGE)

        habit_completions_total.labels(outcome=reward.outcome.value).inc()
        return reward

    async def _complete_once(self, user_id: int, habit_id: int, now: datetime) -> GameReward:
        """One attempt, in its own transaction"""
        day_start, day_end = utc_day_window(now)

        async with self.db.transaction() as conn:
            habit = await queries.habits.get_active_habit_for_update(conn, habit_id, user_id)
            if habit is None:
                logger.info(f"Habit {habit_id} not found for user {user_id}")
                return GameReward.failure(CompletionOutcome.NOT_FOUND, NOT_FOUND_MESSAGE)

            user = await queries.users.get_user_for_update(conn, user_id)
            if user is None:
                logger.warning(f"Habit {habit_id} belongs to missing user {user_id}")
                return GameReward.failure(CompletionOutcome.NOT_FOUND, NOT_FOUND_MESSAGE)

            if await queries.completions.completion_exists_between(conn, habit_id, day_start, day_end):
                logger.info(f"Habit {habit_id} already completed on {day_start.date()}")
                return GameReward.failure(CompletionOutcome.ALREADY_COMPLETED, ALREADY_COMPLETED_MESSAGE)

            xp_gained = xp_for_difficulty(habit.difficulty)
            old_total = max(0, user.total_xp)
            new_total = old_total + xp_gained
            if new_total > MAX_TOTAL_XP:
                logger.info(f"User {user_id} at {old_total} XP cannot earn {xp_gained} more")
                return GameReward.failure(CompletionOutcome.LIMIT_REACHED, LIMIT_REACHED_MESSAGE)

            # Claim today's slot first; a concurrent winner makes this raise
            await queries.completions.insert_completion(conn, habit_id, now)

            # Derived fresh from the new total, never incrementally
            old_level = level_from_total_xp(old_total)
            new_level = level_from_total_xp(new_total)
            new_xp = xp_in_level(new_total, new_level)
            leveled_up = new_level > old_level

            previous = await queries.completions.get_last_completion_before(conn, habit_id, day_start)
            streak = next_streak(
                habit.current_streak,
                habit.best_streak,
                utc_date(previous) if previous is not None else None,
                utc_date(now),
                habit_id=habit_id,
            )

            await queries.users.update_user_progress(conn, user_id, new_level, new_xp, new_total)
            updated = await queries.habits.update_habit_progress(
                conn,
                habit_id,
                streak.current_streak,
                streak.best_streak,
                now
            )

        xp_awarded_total.labels(difficulty=habit.difficulty.name.lower()).inc(xp_gained)
        if leveled_up:
            level_ups_total.inc()
            logger.info(f"User {user_id} leveled up: {old_level} -> {new_level}")

        logger.info(
            f"User {user_id} completed habit {habit_id}: +{xp_gained} XP "
            f"(total {new_total}), streak {streak.current_streak}"
        )

        if leveled_up:
            message = f"Great job! You gained {xp_gained} XP and leveled up!"
        else:
            message = f"Well done! You gained {xp_gained} XP!"

        return GameReward(
            success=True,
            outcome=CompletionOutcome.COMPLETED,
            message=message,
            xp_gained=xp_gained,
            leveled_up=leveled_up,
            new_level=new_level,
            new_xp=new_xp,
            new_total_xp=new_total,
            new_streak=streak.current_streak,
            updated_habit=HabitView.from_habit(updated, can_complete_today=False),
        )

    async def can_complete_today(
        self,
        habit_id: int,
        now: Optional[datetime] = None,
        conn: Optional[psycopg.AsyncConnection] = None
    ) -> bool:
        """
        True when the habit has no completion in today's UTC window.

        Fails closed: any query error is logged and reported as False.

        Args:
            habit_id: Habit to check
            now: Reference time, defaults to the current UTC time
            conn: Reuse an open connection instead of borrowing one from the pool
        """
        day_start, day_end = utc_day_window(now)

        try:
            if conn is not None:
                # Savepoint: a failure here must not abort the caller's transaction
                async with conn.transaction():
                    exists = await queries.completions.completion_exists_between(
                        conn, habit_id, day_start, day_end
                    )
            else:
                async with self.db.connection() as own_conn:
                    exists = await queries.completions.completion_exists_between(
                        own_conn, habit_id, day_start, day_end
                    )
        except Exception as e:
            logger.error(f"Eligibility check failed for habit {habit_id}: {e}", exc_info=True)
            return False

        return not exists

