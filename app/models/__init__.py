from .habit import Habit

__all__ = [
    "Habit",
]
