"""
Record store: the authoritative per-user habit collection.

Contract (RecordStore)
----------------------
create(user_id, fields)                        -> habit id
update(user_id, habit_id, fields)              -> None   (partial; other fields untouched)
subscribe(user_id, on_snapshot, on_error)      -> Subscription
unsubscribe(subscription)                      -> None   (idempotent)
snapshot(user_id)                              -> tuple[HabitRecord, ...]

Failures raise RecordStoreError (HabitNotFoundError for an update on a
missing habit). Every committed write pushes the user's full current
snapshot to all of that user's subscribers, in commit order.

Writes are last-write-wins per update call: two concurrent updates to the
same habit are not merged field by field.
"""
from __future__ import annotations

import itertools
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.errors import HabitNotFoundError, RecordStoreError
from app.db.base import SessionLocal
from app.models.habit import Habit

logger = logging.getLogger(__name__)

WRITABLE_FIELDS = frozenset({
    "name",
    "description",
    "is_done_today",
    "streak_days",
    "last_completed_date",
})


@dataclass(frozen=True)
class HabitRecord:
    id: str
    name: str
    description: str
    is_done_today: bool
    streak_days: int
    last_completed_date: Optional[str]


SnapshotCallback = Callable[[tuple[HabitRecord, ...]], None]
ErrorCallback = Callable[[str], None]


class Subscription:
    """Handle returned by subscribe(); close() is safe to call repeatedly."""

    def __init__(self, user_id: str, on_close: Callable[["Subscription"], None]):
        self.user_id = user_id
        self.key: Optional[int] = None
        self.active = True
        self._on_close = on_close

    def close(self) -> None:
        if not self.active:
            return
        self.active = False
        self._on_close(self)


class RecordStore(Protocol):
    def create(self, user_id: str, fields: dict[str, Any]) -> str: ...

    def update(self, user_id: str, habit_id: str, fields: dict[str, Any]) -> None: ...

    def subscribe(
        self, user_id: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback
    ) -> Subscription: ...

    def unsubscribe(self, subscription: Subscription) -> None: ...

    def snapshot(self, user_id: str) -> tuple[HabitRecord, ...]: ...


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown habit fields: {sorted(unknown)}")


def _to_record(h: Habit) -> HabitRecord:
    return HabitRecord(
        id=h.id,
        name=h.name,
        description=h.description or "",
        is_done_today=bool(h.is_done_today),
        streak_days=h.streak_days or 0,
        last_completed_date=h.last_completed_date,
    )


@dataclass
class _Listener:
    subscription: Subscription
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback


class SqlRecordStore:
    """RecordStore over the `habits` table, with in-process snapshot fan-out."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        # Held across commit + push so pushes leave in commit order.
        self._lock = threading.RLock()
        self._listeners: dict[str, dict[int, _Listener]] = {}
        self._ids = itertools.count(1)

    # --- reads ---

    def _read_snapshot(self, db: Session, user_id: str) -> tuple[HabitRecord, ...]:
        rows = (
            db.query(Habit)
            .filter(Habit.user_id == user_id)
            .order_by(Habit.created_at.asc(), Habit.id.asc())
            .all()
        )
        return tuple(_to_record(h) for h in rows)

    def snapshot(self, user_id: str) -> tuple[HabitRecord, ...]:
        try:
            with self._session_factory() as db:
                return self._read_snapshot(db, user_id)
        except SQLAlchemyError as exc:
            raise RecordStoreError("Could not read habits.", operation="snapshot") from exc

    # --- writes ---

    def create(self, user_id: str, fields: dict[str, Any]) -> str:
        _check_fields(fields)
        habit_id = uuid.uuid4().hex
        with self._lock:
            try:
                with self._session_factory() as db:
                    db.add(Habit(id=habit_id, user_id=user_id, **fields))
                    db.commit()
            except SQLAlchemyError as exc:
                logger.exception("Habit create failed for user %s", user_id)
                raise RecordStoreError("Failed to add habit.", operation="create") from exc
            logger.info("Created habit %s for user %s", habit_id, user_id)
            self._publish(user_id)
        return habit_id

    def update(self, user_id: str, habit_id: str, fields: dict[str, Any]) -> None:
        _check_fields(fields)
        with self._lock:
            try:
                with self._session_factory() as db:
                    habit = (
                        db.query(Habit)
                        .filter(Habit.user_id == user_id, Habit.id == habit_id)
                        .one_or_none()
                    )
                    if habit is None:
                        raise HabitNotFoundError(habit_id)
                    for key, value in fields.items():
                        setattr(habit, key, value)
                    db.commit()
            except SQLAlchemyError as exc:
                logger.exception("Habit update failed for %s/%s", user_id, habit_id)
                raise RecordStoreError("Failed to update habit.", operation="update") from exc
            logger.info("Updated habit %s fields=%s", habit_id, sorted(fields))
            self._publish(user_id)

    # --- push channel ---

    def subscribe(
        self, user_id: str, on_snapshot: SnapshotCallback, on_error: ErrorCallback
    ) -> Subscription:
        subscription = Subscription(user_id, self.unsubscribe)
        listener = _Listener(subscription, on_snapshot, on_error)
        with self._lock:
            key = next(self._ids)
            subscription.key = key
            self._listeners.setdefault(user_id, {})[key] = listener
            logger.debug("Subscribed listener %s for user %s", key, user_id)
            # First push carries the current state, like any realtime listener.
            self._deliver(user_id, [listener])
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscription.active = False
            listeners = self._listeners.get(subscription.user_id, {})
            if listeners.pop(subscription.key, None) is not None:
                logger.debug("Unsubscribed listener for user %s", subscription.user_id)
            if not listeners:
                self._listeners.pop(subscription.user_id, None)

    def subscriber_count(self, user_id: str) -> int:
        with self._lock:
            return len(self._listeners.get(user_id, {}))

    def _publish(self, user_id: str) -> None:
        listeners = list(self._listeners.get(user_id, {}).values())
        if listeners:
            self._deliver(user_id, listeners)

    def _deliver(self, user_id: str, listeners: list[_Listener]) -> None:
        try:
            records = self.snapshot(user_id)
        except RecordStoreError as exc:
            for listener in listeners:
                if listener.subscription.active:
                    self._call(listener.on_error, exc.message)
            return
        for listener in listeners:
            if listener.subscription.active:
                self._call(listener.on_snapshot, records)

    @staticmethod
    def _call(callback: Callable, arg: Any) -> None:
        try:
            callback(arg)
        except Exception:
            # A broken subscriber must not fail the write or starve the others.
            logger.exception("Snapshot subscriber raised")


# ---------------------------------------------------------------------------
# Process-wide store (FastAPI dependency)
# ---------------------------------------------------------------------------

_default_store: Optional[SqlRecordStore] = None


def get_record_store() -> SqlRecordStore:
    """One store per process so every subscriber shares the same fan-out."""
    global _default_store
    if _default_store is None:
        _default_store = SqlRecordStore(SessionLocal)
    return _default_store
