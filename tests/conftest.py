"""Global test fixtures and utilities for HabitRPG tests"""
import os

# Must be set before habitrpg.config is imported
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from tests.fakes import FakeStore


# ============================================================================
# Time Fixtures
# ============================================================================

# A Sunday afternoon, well away from midnight UTC
NOW = datetime(2024, 3, 10, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def store():
    """In-memory store patched in for every service's query modules"""
    fake = FakeStore()
    with fake.patch_queries():
        yield fake


@pytest.fixture
def unlocked_store():
    """Store without row locks: only the unique constraint stops double completions"""
    fake = FakeStore(row_locks=False)
    with fake.patch_queries():
        yield fake


@pytest.fixture
def mock_cursor():
    """Mock psycopg cursor with standard query results"""
    cursor = AsyncMock()
    cursor.fetchone = AsyncMock(return_value=None)
    cursor.fetchall = AsyncMock(return_value=[])
    cursor.execute = AsyncMock()
    return cursor


@pytest.fixture
def mock_conn(mock_cursor):
    """Mock psycopg AsyncConnection whose cursor() is an async context manager"""
    conn = MagicMock()
    conn.cursor.return_value.__aenter__ = AsyncMock(return_value=mock_cursor)
    conn.cursor.return_value.__aexit__ = AsyncMock(return_value=None)
    return conn


# ============================================================================
# User Fixtures
# ============================================================================

@pytest.fixture
def user_id(store):
    """A level 1 user with no XP"""
    return store.add_user("hero")


@pytest.fixture
def habit_id(store, user_id):
    """An active Medium habit owned by user_id"""
    return store.add_habit(user_id, "Read 20 pages")
