"""Habit and completion log models"""
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _strip_title(v: Optional[str]) -> Optional[str]:
    """Titles are stored trimmed and may not be blank"""
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError("Title cannot be empty")
    return v


class HabitFrequency(IntEnum):
    """How often a habit is meant to be done (wire values match the mobile client)"""
    DAILY = 1
    WEEKLY = 2


class HabitDifficulty(IntEnum):
    """Habit difficulty, drives the XP reward"""
    EASY = 1    # +5 XP
    MEDIUM = 2  # +10 XP
    HARD = 3    # +20 XP

    @classmethod
    def coerce(cls, value: Any) -> "HabitDifficulty":
        """
        Accept a member, its int value, or its name in any case

        Raises:
            ValueError: If value doesn't name a difficulty
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            name = value.strip().upper()
            if name in cls.__members__:
                return cls[name]
            if name.isdigit():
                return cls(int(name))
            raise ValueError(f"Unknown difficulty: {value!r}")
        if isinstance(value, bool):
            raise ValueError(f"Unknown difficulty: {value!r}")
        return cls(value)


class HabitState(str, Enum):
    """Lifecycle state; hard deletion removes the row, so it has no state"""
    ACTIVE = "active"
    SOFT_DELETED = "soft_deleted"


class Habit(BaseModel):
    """Habit row as stored"""
    id: int
    user_id: int
    title: str
    description: Optional[str] = None
    frequency: HabitFrequency = HabitFrequency.DAILY
    difficulty: HabitDifficulty = HabitDifficulty.MEDIUM
    current_streak: int = 0
    best_streak: int = 0
    last_completed_at: Optional[datetime] = None
    is_active: bool = True
    created_at: datetime

    @property
    def state(self) -> HabitState:
        return HabitState.ACTIVE if self.is_active else HabitState.SOFT_DELETED


class CompletionLog(BaseModel):
    """Immutable record of one completion"""
    id: int
    habit_id: int
    completed_at: datetime


class HabitView(BaseModel):
    """Habit as returned to clients"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    title: str
    description: Optional[str] = None
    frequency: HabitFrequency
    difficulty: HabitDifficulty
    current_streak: int
    best_streak: int
    last_completed_at: Optional[datetime] = None
    is_active: bool
    can_complete_today: bool
    created_at: datetime

    @classmethod
    def from_habit(cls, habit: Habit, can_complete_today: bool) -> "HabitView":
        return cls(
            id=habit.id,
            title=habit.title,
            description=habit.description,
            frequency=habit.frequency,
            difficulty=habit.difficulty,
            current_streak=habit.current_streak,
            best_streak=habit.best_streak,
            last_completed_at=habit.last_completed_at,
            is_active=habit.is_active,
            can_complete_today=can_complete_today,
            created_at=habit.created_at,
        )


class HabitCreate(BaseModel):
    """Validated input for a new habit"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    frequency: HabitFrequency = HabitFrequency.DAILY
    difficulty: HabitDifficulty = HabitDifficulty.MEDIUM

    strip_title = field_validator('title')(_strip_title)


class HabitUpdate(BaseModel):
    """Partial habit update; None means unchanged"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    frequency: Optional[HabitFrequency] = None
    difficulty: Optional[HabitDifficulty] = None

    strip_title = field_validator('title')(_strip_title)

    def changes(self) -> dict:
        """Fields the caller actually set"""
        return self.model_dump(exclude_none=True)
