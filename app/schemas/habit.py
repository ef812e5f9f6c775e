"""
Habit request / response schemas.

POST /habits                  → HabitCreateRequest → HabitOut
GET  /habits                  → HabitListResponse
GET  /habits/history          → HabitHistoryResponse
POST /habits/{id}/toggle      → ToggleResponse
GET  /profile                 → ProfileResponse
"""
from __future__ import annotations

from typing import Annotated, Optional

from pydantic import BaseModel, Field

from app.services import projection
from app.services.projection import Progress
from app.services.streak_engine import HabitState


class HabitCreateRequest(BaseModel):
    """A new habit. Blank names are rejected by the sync controller, not here."""
    name: Annotated[str, Field(
        max_length=256,
        description="Display name. Leading/trailing whitespace is trimmed.",
        examples=["Drink water"],
    )]
    description: Annotated[str, Field(
        default="",
        max_length=2_000,
        description="Optional free text.",
        examples=["8 glasses"],
    )]


class HabitOut(BaseModel):
    id: str = Field(description="Store-assigned habit id.")
    name: str
    description: str
    is_done_today: bool
    streak_days: int = Field(ge=0)
    last_completed_date: Optional[str] = Field(
        default=None, description="Date key (YYYY-MM-DD) of the latest completion."
    )
    status_label: str = Field(description='"Done" or "Today".')
    streak_label: str
    last_done_label: Optional[str] = None

    @classmethod
    def from_state(cls, habit: HabitState) -> "HabitOut":
        return cls(
            id=habit.id,
            name=habit.name,
            description=habit.description,
            is_done_today=habit.is_done_today,
            streak_days=habit.streak_days,
            last_completed_date=habit.last_completed_date,
            status_label=projection.status_label(habit),
            streak_label=projection.streak_label(habit),
            last_done_label=projection.last_done_label(habit),
        )


class ProgressOut(BaseModel):
    completed: int
    total: int
    label: str

    @classmethod
    def from_progress(cls, p: Progress) -> "ProgressOut":
        return cls(completed=p.completed, total=p.total, label=p.label)


class HabitListResponse(BaseModel):
    display_name: str
    today: str = Field(description="Date key the done flags refer to.")
    progress: ProgressOut
    empty_message: Optional[str] = None
    habits: list[HabitOut]


class HabitHistoryItem(BaseModel):
    id: str
    name: str
    streak_days: int
    history_label: str
    last_done_label: Optional[str] = None


class HabitHistoryResponse(BaseModel):
    empty_message: Optional[str] = None
    items: list[HabitHistoryItem]


class ToggleResponse(BaseModel):
    habit_id: str
    found: bool = Field(description="False when the habit is not (or no longer) in the collection.")
    habit: Optional[HabitOut] = Field(
        default=None, description="The habit as pushed back by the store after the write."
    )


class ProfileResponse(BaseModel):
    user_id: str
    display_name: str
