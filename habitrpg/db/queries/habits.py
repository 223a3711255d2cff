"""Habit database queries"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional
import psycopg
from habitrpg.models.habit import Habit, HabitCreate

logger = logging.getLogger(__name__)

_HABIT_COLUMNS = (
    "id, user_id, title, description, frequency, difficulty, current_streak, "
    "best_streak, last_completed_at, is_active, created_at"
)

# Columns a habit edit may touch; streaks and timestamps belong to completions
_EDITABLE_COLUMNS = ("title", "description", "frequency", "difficulty")


async def insert_habit(conn: psycopg.AsyncConnection, user_id: int, data: HabitCreate) -> Habit:
    """Create an active habit with zeroed streaks"""
    async with conn.cursor() as cur:
        await cur.execute(
            f"""
            INSERT INTO habits (user_id, title, description, frequency, difficulty)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {_HABIT_COLUMNS}
            """,
            (user_id, data.title, data.description, int(data.frequency), int(data.difficulty))
        )
        row = await cur.fetchone()
        return Habit(**row)


async def get_habit(conn: psycopg.AsyncConnection, habit_id: int, user_id: int) -> Optional[Habit]:
    """Habit owned by user_id, active or soft-deleted; None otherwise"""
    async with conn.cursor() as cur:
        await cur.execute(
            f"SELECT {_HABIT_COLUMNS} FROM habits WHERE id = %s AND user_id = %s",
            (habit_id, user_id)
        )
        row = await cur.fetchone()
        return Habit(**row) if row else None


async def get_active_habit_for_update(
    conn: psycopg.AsyncConnection,
    habit_id: int,
    user_id: int
) -> Optional[Habit]:
    """
    Active habit owned by user_id, row-locked until the transaction ends

    Concurrent completions of the same habit queue here instead of both
    reading the same pre-completion state.
    """
    async with conn.cursor() as cur:
        await cur.execute(
            f"""
            SELECT {_HABIT_COLUMNS} FROM habits
            WHERE id = %s AND user_id = %s AND is_active
            FOR UPDATE
            """,
            (habit_id, user_id)
        )
        row = await cur.fetchone()
        return Habit(**row) if row else None


async def list_habits(conn: psycopg.AsyncConnection, user_id: int, active: bool = True) -> list[Habit]:
    """User's active (or soft-deleted) habits, newest first"""
    async with conn.cursor() as cur:
        await cur.execute(
            f"""
            SELECT {_HABIT_COLUMNS} FROM habits
            WHERE user_id = %s AND is_active = %s
            ORDER BY created_at DESC, id DESC
            """,
            (user_id, active)
        )
        rows = await cur.fetchall()
        return [Habit(**row) for row in rows]


async def count_active_habits(conn: psycopg.AsyncConnection, user_id: int) -> int:
    async with conn.cursor() as cur:
        await cur.execute(
            "SELECT count(*) AS count FROM habits WHERE user_id = %s AND is_active",
            (user_id,)
        )
        row = await cur.fetchone()
        return row["count"] if row else 0


async def update_habit_fields(
    conn: psycopg.AsyncConnection,
    habit_id: int,
    changes: Dict[str, Any]
) -> None:
    """
    Apply a partial edit

    Args:
        changes: Subset of title/description/frequency/difficulty

    Raises:
        ValueError: If changes names any other column
    """
    unknown = set(changes) - set(_EDITABLE_COLUMNS)
    if unknown:
        raise ValueError(f"Cannot edit habit columns: {sorted(unknown)}")
    if not changes:
        return

    columns = [c for c in _EDITABLE_COLUMNS if c in changes]
    assignments = ", ".join(f"{c} = %s" for c in columns)
    values = [int(changes[c]) if c in ("frequency", "difficulty") else changes[c] for c in columns]

    async with conn.cursor() as cur:
        await cur.execute(
            f"UPDATE habits SET {assignments} WHERE id = %s",
            (*values, habit_id)
        )


async def set_habit_active(conn: psycopg.AsyncConnection, habit_id: int, is_active: bool) -> None:
    """Soft delete (False) or restore (True)"""
    async with conn.cursor() as cur:
        await cur.execute(
            "UPDATE habits SET is_active = %s WHERE id = %s",
            (is_active, habit_id)
        )


async def update_habit_progress(
    conn: psycopg.AsyncConnection,
    habit_id: int,
    current_streak: int,
    best_streak: int,
    last_completed_at: datetime
) -> Habit:
    """Write streak values after a completion and return the updated row"""
    async with conn.cursor() as cur:
        await cur.execute(
            f"""
            UPDATE habits
            SET current_streak = %s,
                best_streak = %s,
                last_completed_at = %s
            WHERE id = %s
            RETURNING {_HABIT_COLUMNS}
            """,
            (current_streak, best_streak, last_completed_at, habit_id)
        )
        row = await cur.fetchone()
        return Habit(**row)


async def delete_habit(conn: psycopg.AsyncConnection, habit_id: int) -> None:
    """Hard delete; completion logs go with it (ON DELETE CASCADE)"""
    async with conn.cursor() as cur:
        await cur.execute("DELETE FROM habits WHERE id = %s", (habit_id,))
        logger.info(f"Hard-deleted habit {habit_id}")


async def get_habit_aggregates(conn: psycopg.AsyncConnection, user_id: int) -> Dict[str, int]:
    """
    Profile aggregates over the user's active habits

    Returns:
        {
            'active_habits_count': int,
            'total_completions': int,
            'longest_streak': int,
            'current_active_streaks': int
        }
    """
    async with conn.cursor() as cur:
        await cur.execute(
            """
            SELECT
                count(*) AS active_habits_count,
                coalesce(max(h.best_streak), 0) AS longest_streak,
                count(*) FILTER (WHERE h.current_streak > 0) AS current_active_streaks,
                coalesce((
                    SELECT count(*)
                    FROM completion_logs cl
                    JOIN habits ah ON ah.id = cl.habit_id
                    WHERE ah.user_id = %s AND ah.is_active
                ), 0) AS total_completions
            FROM habits h
            WHERE h.user_id = %s AND h.is_active
            """,
            (user_id, user_id)
        )
        row = await cur.fetchone()
        return {
            "active_habits_count": row["active_habits_count"],
            "total_completions": row["total_completions"],
            "longest_streak": row["longest_streak"],
            "current_active_streaks": row["current_active_streaks"],
        }


async def count_user_habits(conn: psycopg.AsyncConnection, user_id: int) -> int:
    """All habits of the user, soft-deleted included"""
    async with conn.cursor() as cur:
        await cur.execute(
            "SELECT count(*) AS count FROM habits WHERE user_id = %s",
            (user_id,)
        )
        row = await cur.fetchone()
        return row["count"] if row else 0
