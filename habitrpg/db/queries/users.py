"""User database queries"""
import logging
from typing import Optional
import psycopg
from habitrpg.models.user import User

logger = logging.getLogger(__name__)

_USER_COLUMNS = "id, username, email, password_hash, level, xp, total_xp, created_at"


async def create_user(
    conn: psycopg.AsyncConnection,
    username: str,
    email: str,
    password_hash: str
) -> User:
    """
    Insert a new user at level 1 with no XP

    Raises:
        psycopg.errors.UniqueViolation: If username or email is taken
    """
    async with conn.cursor() as cur:
        await cur.execute(
            f"""
            INSERT INTO users (username, email, password_hash, level, xp, total_xp)
            VALUES (%s, %s, %s, 1, 0, 0)
            RETURNING {_USER_COLUMNS}
            """,
            (username, email, password_hash)
        )
        row = await cur.fetchone()
        logger.info(f"Created user {row['id']} ({username})")
        return User(**row)


async def get_user_by_id(conn: psycopg.AsyncConnection, user_id: int) -> Optional[User]:
    """Get user by id, None if missing"""
    async with conn.cursor() as cur:
        await cur.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s",
            (user_id,)
        )
        row = await cur.fetchone()
        return User(**row) if row else None


async def get_user_for_update(conn: psycopg.AsyncConnection, user_id: int) -> Optional[User]:
    """Get user by id and lock the row until the transaction ends"""
    async with conn.cursor() as cur:
        await cur.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s FOR UPDATE",
            (user_id,)
        )
        row = await cur.fetchone()
        return User(**row) if row else None


async def get_user_by_email(conn: psycopg.AsyncConnection, email: str) -> Optional[User]:
    """Case-insensitive lookup by email"""
    async with conn.cursor() as cur:
        await cur.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE lower(email) = lower(%s)",
            (email,)
        )
        row = await cur.fetchone()
        return User(**row) if row else None


async def email_taken(conn: psycopg.AsyncConnection, email: str) -> bool:
    async with conn.cursor() as cur:
        await cur.execute(
            "SELECT 1 FROM users WHERE lower(email) = lower(%s)",
            (email,)
        )
        return await cur.fetchone() is not None


async def username_taken(
    conn: psycopg.AsyncConnection,
    username: str,
    exclude_user_id: Optional[int] = None
) -> bool:
    """Case-insensitive check, optionally ignoring one user (for renames)"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            SELECT 1 FROM users
            WHERE lower(username) = lower(%s)
              AND (%s::integer IS NULL OR id <> %s)
            """,
            (username, exclude_user_id, exclude_user_id)
        )
        return await cur.fetchone() is not None


async def update_user_progress(
    conn: psycopg.AsyncConnection,
    user_id: int,
    level: int,
    xp: int,
    total_xp: int
) -> None:
    """Write level, in-level XP and total XP together"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            UPDATE users
            SET level = %s,
                xp = %s,
                total_xp = %s
            WHERE id = %s
            """,
            (level, xp, total_xp, user_id)
        )


async def update_username(conn: psycopg.AsyncConnection, user_id: int, username: str) -> None:
    async with conn.cursor() as cur:
        await cur.execute(
            "UPDATE users SET username = %s WHERE id = %s",
            (username, user_id)
        )
