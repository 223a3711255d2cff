"""Completion log queries"""
import logging
from datetime import datetime
from typing import Optional
import psycopg
from habitrpg.models.habit import CompletionLog

logger = logging.getLogger(__name__)


async def completion_exists_between(
    conn: psycopg.AsyncConnection,
    habit_id: int,
    start: datetime,
    end: datetime
) -> bool:
    """True if the habit has a completion with start <= completed_at < end"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            SELECT 1 FROM completion_logs
            WHERE habit_id = %s
              AND completed_at >= %s
              AND completed_at < %s
            LIMIT 1
            """,
            (habit_id, start, end)
        )
        return await cur.fetchone() is not None


async def get_last_completion_before(
    conn: psycopg.AsyncConnection,
    habit_id: int,
    before: datetime
) -> Optional[datetime]:
    """completed_at of the most recent completion strictly before `before`"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            SELECT completed_at FROM completion_logs
            WHERE habit_id = %s AND completed_at < %s
            ORDER BY completed_at DESC
            LIMIT 1
            """,
            (habit_id, before)
        )
        row = await cur.fetchone()
        return row["completed_at"] if row else None


async def insert_completion(
    conn: psycopg.AsyncConnection,
    habit_id: int,
    completed_at: datetime
) -> CompletionLog:
    """
    Append a completion log row

    completed_on is the UTC date of completed_at.

    Raises:
        psycopg.errors.UniqueViolation: If the habit already has a log that UTC day
    """
    async with conn.cursor() as cur:
        await cur.execute(
            """
            INSERT INTO completion_logs (habit_id, completed_at, completed_on)
            VALUES (%s, %s, (%s AT TIME ZONE 'UTC')::date)
            RETURNING id, habit_id, completed_at
            """,
            (habit_id, completed_at, completed_at)
        )
        row = await cur.fetchone()
        return CompletionLog(**row)


async def get_user_completion_times(
    conn: psycopg.AsyncConnection,
    user_id: int,
    since: datetime
) -> list[datetime]:
    """completed_at of every completion of any of the user's habits since `since`"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            SELECT cl.completed_at
            FROM completion_logs cl
            JOIN habits h ON h.id = cl.habit_id
            WHERE h.user_id = %s AND cl.completed_at >= %s
            ORDER BY cl.completed_at
            """,
            (user_id, since)
        )
        rows = await cur.fetchall()
        return [row["completed_at"] for row in rows]
