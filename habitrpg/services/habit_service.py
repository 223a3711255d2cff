"""
HabitService - Habit Lifecycle Business Logic

Create, edit, soft delete, restore and permanently delete habits.
Streaks, XP and completion logs are owned by CompletionService; edits here
never touch them.
"""

import logging
from typing import Optional

from habitrpg.config import MAX_ACTIVE_HABITS
from habitrpg.db import queries
from habitrpg.exceptions import LimitReachedError, RecordNotFoundError, ValidationError
from habitrpg.models import Habit, HabitCreate, HabitUpdate, HabitView
from habitrpg.services.completion_service import CompletionService

logger = logging.getLogger(__name__)


class HabitService:
    """
    Service for habit management.

    Responsibilities:
    - Per-user active habit cap (on create and restore)
    - Ownership checks (other users' habits look missing)
    - Confirmed, irreversible hard deletion
    """

    def __init__(
        self,
        db_connection,
        completion_service: Optional[CompletionService] = None,
        max_active_habits: int = MAX_ACTIVE_HABITS
    ):
        self.db = db_connection
        self.completions = completion_service or CompletionService(db_connection)
        self.max_active_habits = max_active_habits

    async def create_habit(self, user_id: int, data: HabitCreate) -> HabitView:
        """
        Create an active habit.

        Raises:
            LimitReachedError: User already has max_active_habits active habits
        """
        async with self.db.transaction() as conn:
            await self._check_active_cap(conn, user_id)
            habit = await queries.habits.insert_habit(conn, user_id, data)

        logger.info(f"User {user_id} created habit {habit.id} ({habit.title})")
        return HabitView.from_habit(habit, can_complete_today=True)

    async def list_habits(self, user_id: int) -> list[HabitView]:
        """Active habits, newest first"""
        return await self._list(user_id, active=True)

    async def list_deleted_habits(self, user_id: int) -> list[HabitView]:
        """Soft-deleted habits, newest first"""
        return await self._list(user_id, active=False)

    async def _list(self, user_id: int, active: bool) -> list[HabitView]:
        async with self.db.connection() as conn:
            habits = await queries.habits.list_habits(conn, user_id, active=active)
            return [
                HabitView.from_habit(habit, await self.completions.can_complete_today(habit.id, conn=conn))
                for habit in habits
            ]

    async def get_habit(self, user_id: int, habit_id: int) -> HabitView:
        """
        Raises:
            RecordNotFoundError: Missing or owned by another user
        """
        async with self.db.connection() as conn:
            habit = await self._get_owned(conn, user_id, habit_id)
            can_complete = await self.completions.can_complete_today(habit.id, conn=conn)
        return HabitView.from_habit(habit, can_complete)

    async def update_habit(self, user_id: int, habit_id: int, changes: HabitUpdate) -> None:
        """Apply a partial edit of title/description/frequency/difficulty"""
        fields = changes.changes()

        async with self.db.transaction() as conn:
            await self._get_owned(conn, user_id, habit_id)
            await queries.habits.update_habit_fields(conn, habit_id, fields)

        logger.info(f"User {user_id} updated habit {habit_id}: {sorted(fields)}")

    async def soft_delete_habit(self, user_id: int, habit_id: int) -> None:
        """Hide the habit; history and streaks are kept for a later restore"""
        async with self.db.transaction() as conn:
            habit = await self._get_owned(conn, user_id, habit_id)
            if not habit.is_active:
                return
            await queries.habits.set_habit_active(conn, habit_id, False)

        logger.info(f"User {user_id} soft-deleted habit {habit_id}")

    async def restore_habit(self, user_id: int, habit_id: int) -> None:
        """
        Reactivate a soft-deleted habit.

        Raises:
            RecordNotFoundError: Missing or owned by another user
            LimitReachedError: Restoring would exceed the active habit cap
        """
        async with self.db.transaction() as conn:
            habit = await self._get_owned(conn, user_id, habit_id)
            if habit.is_active:
                return
            await self._check_active_cap(conn, user_id)
            await queries.habits.set_habit_active(conn, habit_id, True)

        logger.info(f"User {user_id} restored habit {habit_id}")

    async def hard_delete_habit(self, user_id: int, habit_id: int, confirmation_text: str) -> None:
        """
        Permanently delete a habit and its completion history.

        The caller must echo the habit's exact title as confirmation.

        Raises:
            RecordNotFoundError: Missing or owned by another user
            ValidationError: Confirmation does not match the title
        """
        async with self.db.transaction() as conn:
            habit = await self._get_owned(conn, user_id, habit_id)
            if confirmation_text != habit.title:
                raise ValidationError(
                    "Confirmation text does not match the habit title",
                    field="confirmationText",
                    value=confirmation_text,
                    user_id=user_id,
                    operation="hard_delete_habit"
                )
            await queries.habits.delete_habit(conn, habit_id)

        logger.warning(f"User {user_id} permanently deleted habit {habit_id} ({habit.title})")

    async def _get_owned(self, conn, user_id: int, habit_id: int) -> Habit:
        habit = await queries.habits.get_habit(conn, habit_id, user_id)
        if habit is None:
            raise RecordNotFoundError(
                f"Habit {habit_id} not found for user {user_id}",
                record_type="Habit",
                record_id=habit_id,
                user_id=user_id
            )
        return habit

    async def _check_active_cap(self, conn, user_id: int) -> None:
        # Serializes concurrent creates/restores of the same user
        await queries.users.get_user_for_update(conn, user_id)
        active = await queries.habits.count_active_habits(conn, user_id)
        if active >= self.max_active_habits:
            raise LimitReachedError(
                f"You can have at most {self.max_active_habits} active habits",
                limit="max_active_habits",
                user_id=user_id
            )
