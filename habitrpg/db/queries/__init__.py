"""
Database queries - one module per table group.

Every function takes an open psycopg AsyncConnection as its first argument so
the services decide the transaction boundaries:

- users.py: Identity store (accounts, XP/level columns)
- habits.py: Habit rows, lifecycle flags, profile aggregates
- completions.py: Completion log (ground truth for "completed today")
"""

from habitrpg.db.queries import completions, habits, users

__all__ = ["completions", "habits", "users"]
