"""
XP and Leveling System

Pure functions mapping total XP to levels and habit difficulty to XP rewards.
No I/O: the completion and profile services persist whatever these return.

Leveling Curve:
- Flat 100 XP per level
- Level 1 starts at 0 XP, level N starts at (N-1) * 100 XP
- Levels are capped at MAX_LEVEL, total XP at MAX_TOTAL_XP

XP Award Rules:
- Easy habit: 5 XP
- Medium habit: 10 XP
- Hard habit: 20 XP
- Anything else: Medium's 10 XP
"""

from typing import Any, Dict
import logging

from habitrpg.models.habit import HabitDifficulty

logger = logging.getLogger(__name__)

XP_PER_LEVEL = 100
MAX_LEVEL = 1000

XP_BY_DIFFICULTY = {
    HabitDifficulty.EASY: 5,
    HabitDifficulty.MEDIUM: 10,
    HabitDifficulty.HARD: 20,
}
DEFAULT_XP = XP_BY_DIFFICULTY[HabitDifficulty.MEDIUM]


def xp_for_difficulty(difficulty: Any) -> int:
    """
    XP reward for completing a habit of the given difficulty

    Accepts enum members as well as their raw values ("Hard", 3). Unknown
    values fall back to the Medium reward instead of failing.
    """
    try:
        difficulty = HabitDifficulty.coerce(difficulty)
    except ValueError:
        logger.debug(f"Unknown difficulty {difficulty!r}, awarding default {DEFAULT_XP} XP")
        return DEFAULT_XP

    return XP_BY_DIFFICULTY.get(difficulty, DEFAULT_XP)


def xp_required_for_level(level: int) -> int:
    """
    Total XP at which `level` starts

    Levels below 1 are clamped to 1 (and logged), levels above MAX_LEVEL to MAX_LEVEL.
    """
    if level < 1:
        logger.warning(f"xp_required_for_level called with level {level}, clamping to 1")
        level = 1
    elif level > MAX_LEVEL:
        level = MAX_LEVEL

    return (level - 1) * XP_PER_LEVEL


# Highest total XP a user can hold; the first XP of MAX_LEVEL
MAX_TOTAL_XP = xp_required_for_level(MAX_LEVEL)


def level_from_total_xp(total_xp: int) -> int:
    """
    Level reached with `total_xp` lifetime XP, in [1, MAX_LEVEL]

    Negative totals are treated as 0. That is a guard, not a repair: callers
    that persist data should log and fix the source row themselves.
    """
    if total_xp < 0:
        logger.warning(f"level_from_total_xp called with negative total XP {total_xp}, treating as 0")
        total_xp = 0

    level = total_xp // XP_PER_LEVEL + 1
    return min(level, MAX_LEVEL)


def xp_in_level(total_xp: int, level: int) -> int:
    """In-level XP: what the user earned since `level` started"""
    return max(0, total_xp) - xp_required_for_level(level)


def calculate_level_info(total_xp: int) -> Dict[str, int]:
    """
    Calculate level and progress figures from total XP

    Returns:
        {
            'level': int,
            'xp_in_current_level': int,
            'xp_to_next_level': int,
            'xp_required_for_next_level': int,
            'xp_progress': int
        }
    """
    total_xp = max(0, total_xp)
    level = level_from_total_xp(total_xp)

    current_level_start = xp_required_for_level(level)
    if level >= MAX_LEVEL:
        next_level_start = current_level_start
    else:
        next_level_start = xp_required_for_level(level + 1)

    return {
        "level": level,
        "xp_in_current_level": total_xp - current_level_start,
        "xp_to_next_level": max(0, next_level_start - total_xp),
        "xp_required_for_next_level": next_level_start - current_level_start,
        "xp_progress": max(0, total_xp - current_level_start),
    }
