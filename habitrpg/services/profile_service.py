"""
ProfileService - User Profile Business Logic

Every profile read re-derives level and in-level XP from total XP and
repairs the stored row when they disagree. Total XP is the source of truth.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from psycopg import errors as pg_errors

from habitrpg.db import queries
from habitrpg.exceptions import RecordNotFoundError, ValidationError
from habitrpg.gamification.progression import calculate_level_info, level_from_total_xp, xp_in_level
from habitrpg.models import UserProfile
from habitrpg.observability.metrics import profile_reconciliations_total

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 50


@dataclass(frozen=True)
class Reconciliation:
    """Corrected progress values and the fields that had to change"""
    level: int
    xp: int
    total_xp: int
    changed_fields: tuple = field(default_factory=tuple)

    @property
    def changed(self) -> bool:
        return bool(self.changed_fields)


def reconcile_progress(level: int, xp: int, total_xp: int, user_id: Optional[int] = None) -> Reconciliation:
    """
    Derive consistent (level, xp, total_xp) from stored values.

    - total_xp < 0 is clamped to 0
    - level < 1 is clamped to 1 before comparison
    - level and xp are recomputed from total_xp

    Example:
        >>> reconcile_progress(level=5, xp=0, total_xp=1050)
        Reconciliation(level=11, xp=50, total_xp=1050, changed_fields=('level', 'xp'))
    """
    changed = []

    if total_xp < 0:
        logger.warning(f"User {user_id} has negative total_xp {total_xp}, clamping to 0")
        total_xp = 0
        changed.append("total_xp")

    if level < 1:
        logger.warning(f"User {user_id} has invalid level {level}, clamping to 1")

    expected_level = level_from_total_xp(total_xp)
    expected_xp = xp_in_level(total_xp, expected_level)

    if level != expected_level:
        logger.warning(
            f"User {user_id} level drift: stored {level}, expected {expected_level} "
            f"for {total_xp} total XP"
        )
        changed.append("level")
    if xp != expected_xp:
        logger.warning(f"User {user_id} xp drift: stored {xp}, expected {expected_xp}")
        changed.append("xp")

    return Reconciliation(
        level=expected_level,
        xp=expected_xp,
        total_xp=total_xp,
        changed_fields=tuple(changed),
    )


def validate_username(username: str) -> str:
    """
    Check username rules and return it trimmed.

    Raises:
        ValidationError: If length or characters are invalid
    """
    username = (username or "").strip()
    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        raise ValidationError(
            f"Username must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters",
            field="username",
            value=username
        )
    if not USERNAME_PATTERN.match(username):
        raise ValidationError(
            "Username can only contain letters, numbers, hyphens, and underscores",
            field="username",
            value=username
        )
    return username


class ProfileService:
    """
    Service for user profiles.

    Responsibilities:
    - Reconcile stored level/xp with total XP on every read
    - Aggregate habit statistics for the profile payload
    - Username changes
    """

    def __init__(self, db_connection):
        self.db = db_connection

    async def get_profile(self, user_id: int) -> Optional[UserProfile]:
        """
        Load, reconcile and return the user's profile.

        Repairs are persisted in the same transaction that reads the
        aggregates; nothing is written when the stored values are consistent.

        Returns:
            UserProfile, or None if the user does not exist
        """
        async with self.db.transaction() as conn:
            user = await queries.users.get_user_for_update(conn, user_id)
            if user is None:
                logger.info(f"Profile requested for missing user {user_id}")
                return None

            result = reconcile_progress(user.level, user.xp, user.total_xp, user_id=user_id)
            if result.changed:
                await queries.users.update_user_progress(
                    conn, user_id, result.level, result.xp, result.total_xp
                )
                for name in result.changed_fields:
                    profile_reconciliations_total.labels(field=name).inc()
                logger.warning(
                    f"Reconciled progress for user {user_id}: "
                    f"level={result.level} xp={result.xp} total_xp={result.total_xp}"
                )

            aggregates = await queries.habits.get_habit_aggregates(conn, user_id)

        info = calculate_level_info(result.total_xp)

        return UserProfile(
            id=user.id,
            username=user.username,
            email=user.email,
            level=result.level,
            xp=result.xp,
            total_xp=result.total_xp,
            xp_to_next_level=info["xp_to_next_level"],
            xp_progress=info["xp_progress"],
            xp_required_for_next_level=info["xp_required_for_next_level"],
            created_at=user.created_at,
            **aggregates,
        )

    async def update_username(self, user_id: int, username: str) -> None:
        """
        Change the user's username.

        Raises:
            ValidationError: Invalid or taken (case-insensitive) username
            RecordNotFoundError: User does not exist
        """
        username = validate_username(username)

        try:
            async with self.db.transaction() as conn:
                user = await queries.users.get_user_by_id(conn, user_id)
                if user is None:
                    raise RecordNotFoundError(
                        f"User {user_id} not found",
                        record_type="User",
                        record_id=user_id
                    )

                if user.username == username:
                    return

                if await queries.users.username_taken(conn, username, exclude_user_id=user_id):
                    raise ValidationError("This username is already taken", field="username", value=username)

                await queries.users.update_username(conn, user_id, username)

        except pg_errors.UniqueViolation:
            raise ValidationError("This username is already taken", field="username", value=username)

        logger.info(f"User {user_id} renamed to {username}")
