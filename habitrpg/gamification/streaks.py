"""
Streak Rules

Pure functions, no I/O.

Completion streak (per habit):
- Most recent prior completion exactly yesterday: streak continues (+1)
- No prior completion, or prior completion older than yesterday: reset to 1
- best_streak = max(best_streak, current_streak)
- Both values clamped to MAX_STREAK

Period statistics (per user):
- current streak: consecutive days with at least one completion, ending today
- longest streak: longest such run inside the period
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional, Sequence, Tuple
import logging

logger = logging.getLogger(__name__)

MAX_STREAK = 10000


@dataclass(frozen=True)
class StreakUpdate:
    """Streak values after one completion"""
    current_streak: int
    best_streak: int
    continued: bool  # True when yesterday's completion extended the streak


def _clamp_streak(value: int, field: str, habit_id: Optional[int]) -> int:
    if value < 0:
        logger.warning(f"Habit {habit_id} had negative {field} {value}, clamping to 0")
        return 0
    if value > MAX_STREAK:
        logger.warning(f"Habit {habit_id} {field} {value} exceeds {MAX_STREAK}, clamping")
        return MAX_STREAK
    return value


def next_streak(
    current_streak: int,
    best_streak: int,
    previous_completion: Optional[date],
    today: date,
    habit_id: Optional[int] = None,
) -> StreakUpdate:
    """
    Compute streak values for a completion made `today`

    Args:
        current_streak: Stored current streak
        best_streak: Stored best streak
        previous_completion: UTC date of the most recent completion strictly before today
        today: UTC date of this completion
        habit_id: Only used for log messages

    Returns:
        StreakUpdate with the new current and best streak
    """
    current_streak = _clamp_streak(current_streak, "current_streak", habit_id)
    best_streak = _clamp_streak(best_streak, "best_streak", habit_id)

    if previous_completion is not None and previous_completion >= today:
        # Callers pass logs strictly before today; anything else is a bad query
        logger.warning(
            f"Habit {habit_id}: previous completion {previous_completion} is not before {today}, "
            f"treating streak as broken"
        )
        previous_completion = None

    yesterday = today - timedelta(days=1)
    continued = previous_completion == yesterday

    if continued:
        new_current = current_streak + 1
    else:
        if current_streak > 1:
            logger.info(
                f"Habit {habit_id} streak reset. Was {current_streak}, "
                f"last completion {previous_completion}"
            )
        new_current = 1

    new_current = _clamp_streak(new_current, "current_streak", habit_id)
    new_best = max(best_streak, new_current)

    return StreakUpdate(current_streak=new_current, best_streak=new_best, continued=continued)


def daily_counts(
    completion_dates: Iterable[date],
    start: date,
    end: date,
) -> Sequence[Tuple[date, int]]:
    """
    Zero-filled (date, count) pairs for every day in [start, end]

    Dates outside the range are ignored.
    """
    counts: dict[date, int] = {}
    for day in completion_dates:
        if start <= day <= end:
            counts[day] = counts.get(day, 0) + 1

    result = []
    day = start
    while day <= end:
        result.append((day, counts.get(day, 0)))
        day += timedelta(days=1)
    return result


def current_run(days: Sequence[Tuple[date, int]]) -> int:
    """Consecutive days with completions, counted back from the last day"""
    run = 0
    for _, count in reversed(days):
        if count <= 0:
            break
        run += 1
    return run


def longest_run(days: Sequence[Tuple[date, int]]) -> int:
    """Longest run of consecutive days with completions"""
    best = 0
    run = 0
    for _, count in days:
        if count > 0:
            run += 1
            best = max(best, run)
        else:
            run = 0
    return best
