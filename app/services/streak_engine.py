"""
Streak Engine: what a completion toggle does to a habit.

Rules (apply_toggle)
--------------------
  Marking complete (is_done_today False -> True):
    last_completed_date == today      -> streak unchanged (already counted)
    last_completed_date == yesterday  -> streak + 1       (continues)
    anything else (gap, or never)     -> streak = 1       (restarts)
    last_completed_date becomes today.

  Un-marking (is_done_today True -> False):
    only is_done_today changes. The streak and last_completed_date stay,
    so checking again on the same day lands in the "== today" branch and
    the counter is not incremented twice.

Pure: no clock, no store. Date keys come in as arguments.
Total: never raises, never sanitizes (negative streaks are the store's problem).
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional

from app.core.dates import DateKey


@dataclass(frozen=True)
class HabitState:
    """A habit as persisted; also the view entity held by the sync controller."""
    id: str
    name: str
    description: str = ""
    is_done_today: bool = False
    streak_days: int = 0
    last_completed_date: Optional[DateKey] = None


def next_streak(habit: HabitState, today: DateKey, yesterday: DateKey) -> int:
    last = habit.last_completed_date
    if last == today:
        return habit.streak_days
    if last == yesterday:
        return habit.streak_days + 1
    return 1


def apply_toggle(habit: HabitState, today: DateKey, yesterday: DateKey) -> HabitState:
    """Return the state after one completion toggle. Other fields are carried over."""
    if habit.is_done_today:
        return replace(habit, is_done_today=False)
    return replace(
        habit,
        is_done_today=True,
        streak_days=next_streak(habit, today, yesterday),
        last_completed_date=today,
    )


def toggle_fields(next_state: HabitState) -> dict[str, Any]:
    """Partial update to send to the store for a toggle that produced `next_state`."""
    if not next_state.is_done_today:
        return {"is_done_today": False}
    return {
        "is_done_today": True,
        "streak_days": next_state.streak_days,
        "last_completed_date": next_state.last_completed_date,
    }
