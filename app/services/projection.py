"""
View projection: display fields derived from habit state. Read-only.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from app.services.streak_engine import HabitState

EMPTY_TODAY_MESSAGE = "No habits yet. Tap + to add one!"
EMPTY_HISTORY_MESSAGE = "No habits yet to show history."


@dataclass(frozen=True)
class Progress:
    completed: int
    total: int

    @property
    def label(self) -> str:
        return f"Progress: {self.completed} / {self.total} habits done"


def progress(habits: Iterable[HabitState]) -> Progress:
    items = list(habits)
    return Progress(
        completed=sum(1 for h in items if h.is_done_today),
        total=len(items),
    )


def status_label(habit: HabitState) -> str:
    return "Done" if habit.is_done_today else "Today"


def streak_label(habit: HabitState) -> str:
    return f"Streak: {habit.streak_days} days"


def history_label(habit: HabitState) -> str:
    return f"Current streak: {habit.streak_days} days"


def last_done_label(habit: HabitState) -> Optional[str]:
    if not habit.last_completed_date:
        return None
    return f"Last done: {habit.last_completed_date}"
