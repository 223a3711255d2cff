"""HabitRPG: habit tracking backend with XP, levels and streaks"""

__version__ = "1.0.0"
