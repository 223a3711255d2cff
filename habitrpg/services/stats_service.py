"""
StatsService - Completion Statistics

Per-user completion figures over a trailing window of N days
(today included, so the daily breakdown has N + 1 entries).
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from habitrpg.db import queries
from habitrpg.exceptions import RecordNotFoundError, ValidationError
from habitrpg.gamification.streaks import current_run, daily_counts, longest_run
from habitrpg.models import UserStats
from habitrpg.utils.datetime_helpers import get_day_start_utc, now_utc, to_utc, utc_date

logger = logging.getLogger(__name__)

MIN_STATS_DAYS = 1
MAX_STATS_DAYS = 365


class StatsService:
    """Service for user completion statistics"""

    def __init__(self, db_connection):
        self.db = db_connection

    async def get_stats(self, user_id: int, days: int = 30, now: Optional[datetime] = None) -> UserStats:
        """
        Completion statistics for the last `days` days.

        completion_rate is completions / (days * habit count) as a percentage,
        counted over every habit the user owns, soft-deleted ones included.

        Raises:
            ValidationError: days outside 1-365
            RecordNotFoundError: User does not exist
        """
        if not MIN_STATS_DAYS <= days <= MAX_STATS_DAYS:
            raise ValidationError(
                f"Days parameter must be between {MIN_STATS_DAYS} and {MAX_STATS_DAYS}",
                field="days",
                value=days
            )

        today = utc_date(to_utc(now) if now is not None else now_utc())
        start_day = today - timedelta(days=days)
        period_start = get_day_start_utc(start_day)

        async with self.db.connection() as conn:
            user = await queries.users.get_user_by_id(conn, user_id)
            if user is None:
                raise RecordNotFoundError(f"User {user_id} not found", record_type="User", record_id=user_id)

            habit_count = await queries.habits.count_user_habits(conn, user_id)
            completion_times = await queries.completions.get_user_completion_times(conn, user_id, period_start)

        completion_days = [utc_date(moment) for moment in completion_times]
        completion_days = [day for day in completion_days if day <= today]
        days_breakdown = daily_counts(completion_days, start_day, today)
        total = len(completion_days)

        if habit_count:
            completion_rate = round(total / (days * habit_count) * 100, 1)
        else:
            completion_rate = 0.0

        return UserStats(
            total_completions=total,
            completion_rate=completion_rate,
            current_streak=current_run(days_breakdown),
            longest_streak_in_period=longest_run(days_breakdown),
            average_completions_per_day=round(total / days, 1),
            daily_completions={day.isoformat(): count for day, count in days_breakdown},
            period_start=period_start,
            period_end=get_day_start_utc(today),
        )
