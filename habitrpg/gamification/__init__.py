"""
Gamification rules for HabitRPG

Pure functions, no I/O:
- XP per difficulty and level progression (progression.py)
- Streak continuation and per-period streak statistics (streaks.py)
"""

from habitrpg.gamification.progression import (
    XP_PER_LEVEL,
    MAX_LEVEL,
    MAX_TOTAL_XP,
    xp_for_difficulty,
    xp_required_for_level,
    level_from_total_xp,
    calculate_level_info,
)
from habitrpg.gamification.streaks import MAX_STREAK, StreakUpdate, next_streak

__all__ = [
    "XP_PER_LEVEL",
    "MAX_LEVEL",
    "MAX_TOTAL_XP",
    "xp_for_difficulty",
    "xp_required_for_level",
    "level_from_total_xp",
    "calculate_level_info",
    "MAX_STREAK",
    "StreakUpdate",
    "next_streak",
]
