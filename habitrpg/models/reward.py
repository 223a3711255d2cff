"""Completion result models"""
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from habitrpg.models.habit import HabitView


class CompletionOutcome(str, Enum):
    """How a completion attempt ended"""
    COMPLETED = "completed"
    NOT_FOUND = "not_found"
    ALREADY_COMPLETED = "already_completed"
    LIMIT_REACHED = "limit_reached"
    TRANSIENT = "transient"


class GameReward(BaseModel):
    """
    Result of one completion attempt

    Failures carry only success/outcome/message; reward fields stay at their
    zero values so nothing can be mistaken for an applied reward.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    outcome: CompletionOutcome
    message: str
    xp_gained: int = 0
    leveled_up: bool = False
    new_level: int = 0
    new_xp: int = 0
    new_total_xp: int = 0
    new_streak: int = 0
    updated_habit: Optional[HabitView] = None

    @classmethod
    def failure(cls, outcome: CompletionOutcome, message: str) -> "GameReward":
        return cls(success=False, outcome=outcome, message=message)
