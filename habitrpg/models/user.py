"""User-related Pydantic models"""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class User(BaseModel):
    """User row as stored (credential hash included, never serialized to clients)"""
    id: int
    username: str
    email: str
    password_hash: str = Field(default="", repr=False)
    level: int = 1
    xp: int = 0  # in-level XP, derived from total_xp
    total_xp: int = 0  # source of truth
    created_at: datetime


class UserSummary(BaseModel):
    """User block returned with auth tokens"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    username: str
    email: str
    level: int
    xp: int
    total_xp: int = Field(alias="totalXP")

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            level=user.level,
            xp=user.xp,
            total_xp=user.total_xp,
        )


class UserProfile(UserSummary):
    """Reconciled profile with progress and habit aggregates"""
    xp_to_next_level: int
    xp_progress: int
    xp_required_for_next_level: int
    active_habits_count: int = 0
    total_completions: int = 0
    longest_streak: int = 0
    current_active_streaks: int = 0
    created_at: datetime


class UserStats(BaseModel):
    """Completion statistics over a trailing period"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_completions: int
    completion_rate: float
    current_streak: int
    longest_streak_in_period: int
    average_completions_per_day: float
    daily_completions: dict[str, int]
    period_start: datetime
    period_end: datetime
