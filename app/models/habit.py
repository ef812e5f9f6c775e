"""
Habit: one tracked habit in a user's collection.

`user_id` partitions the table; the core never reads across users.
`last_completed_date` is a `YYYY-MM-DD` date key (see app/core/dates.py),
NULL only before the first-ever completion.
"""
from datetime import datetime, timezone
from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Habit(Base):
    __tablename__ = "habits"
    __table_args__ = (
        CheckConstraint("streak_days >= 0", name="ck_habits_streak_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_done_today: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_completed_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    # Set client-side: snapshots are ordered by creation and need sub-second resolution.
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
