"""Pydantic models for users, habits and completion results"""
from habitrpg.models.habit import (
    Habit,
    HabitCreate,
    HabitDifficulty,
    HabitFrequency,
    HabitState,
    HabitUpdate,
    HabitView,
    CompletionLog,
)
from habitrpg.models.user import User, UserProfile, UserStats, UserSummary
from habitrpg.models.reward import CompletionOutcome, GameReward

__all__ = [
    "Habit",
    "HabitCreate",
    "HabitDifficulty",
    "HabitFrequency",
    "HabitState",
    "HabitUpdate",
    "HabitView",
    "CompletionLog",
    "User",
    "UserProfile",
    "UserStats",
    "UserSummary",
    "CompletionOutcome",
    "GameReward",
]
