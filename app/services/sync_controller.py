"""
Sync Controller: one user session's view of their habits.

The local list is never edited in place. Every push from the record store
replaces it wholesale with a new immutable Snapshot, so whatever the store
pushed last is what the session shows. Toggles and creates are sent to the
store and otherwise forgotten: no optimistic local state survives, so a
failed write needs no rollback.

Lifecycle
---------
  controller = SyncController(store, date_keys, notify)
  controller.subscribe(session)        # first push arrives immediately
  controller.toggle(habit_id)          # -> ToggleResult
  controller.create(name, description) # -> CreateResult
  controller.unsubscribe()             # idempotent; also via `with controller:`

Failures
--------
  blank name              -> notice + HabitNameEmptyError, no store call
  store write failure     -> notice, result.error set, local list untouched
  habit missing on toggle -> silent no-op (result.found is False)
  subscription failure    -> notice, is_stale until the next push
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional

from app.core.dates import DateKey, DateKeyProvider
from app.core.errors import HabitNameEmptyError, HabitNotFoundError, RecordStoreError
from app.services.record_store import HabitRecord, RecordStore, Subscription
from app.services.session import SessionContext
from app.services.streak_engine import HabitState, apply_toggle, toggle_fields

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Notices
# ---------------------------------------------------------------------------

class NoticeCode:
    HABIT_ADDED = "habit_added"
    ADD_FAILED = "add_failed"
    UPDATE_FAILED = "update_failed"
    NAME_EMPTY = "name_empty"
    SYNC_ERROR = "sync_error"
    UNKNOWN_ACTION = "unknown_action"
    MALFORMED = "malformed_message"


@dataclass(frozen=True)
class Notice:
    """Transient, human-readable message for the surrounding UI."""
    level: str      # "info" | "error"
    code: str
    message: str


NotificationSink = Callable[[Notice], None]


def log_notice(notice: Notice) -> None:
    """Default sink: the notice only goes to the log."""
    level = logging.WARNING if notice.level == "error" else logging.INFO
    logger.log(level, "notice[%s]: %s", notice.code, notice.message)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Snapshot:
    habits: tuple[HabitState, ...] = ()
    today: Optional[DateKey] = None

    def find(self, habit_id: str) -> Optional[HabitState]:
        for habit in self.habits:
            if habit.id == habit_id:
                return habit
        return None


@dataclass
class ToggleResult:
    habit_id: str
    found: bool
    next_state: Optional[HabitState] = None
    error: Optional[RecordStoreError] = None

    @property
    def ok(self) -> bool:
        return self.found and self.error is None


@dataclass
class CreateResult:
    habit_id: Optional[str] = None
    error: Optional[RecordStoreError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------

def project_record(record: HabitRecord, today: DateKey) -> HabitState:
    """
    Record -> view entity. A done flag left over from an earlier day reads as
    not done: done-today always implies last_completed_date == today.
    The streak itself is left alone.
    """
    return HabitState(
        id=record.id,
        name=record.name,
        description=record.description,
        is_done_today=record.is_done_today and record.last_completed_date == today,
        streak_days=record.streak_days,
        last_completed_date=record.last_completed_date,
    )


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class SyncController:

    def __init__(
        self,
        store: RecordStore,
        date_keys: DateKeyProvider,
        notify: NotificationSink = log_notice,
    ):
        self._store = store
        self._date_keys = date_keys
        self._notify = notify
        self._session: Optional[SessionContext] = None
        self._subscription: Optional[Subscription] = None
        self._snapshot: Optional[Snapshot] = None
        self._closed = False
        self._stale = False
        self._on_snapshot: Optional[Callable[[Snapshot], None]] = None
        self._on_error: Optional[Callable[[str], None]] = None

    # --- read side ---

    @property
    def snapshot(self) -> Optional[Snapshot]:
        """Last pushed snapshot; None before the first push or after unsubscribe."""
        return self._snapshot

    @property
    def habits(self) -> tuple[HabitState, ...]:
        return self._snapshot.habits if self._snapshot else ()

    @property
    def is_stale(self) -> bool:
        return self._stale

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None and not self._closed

    # --- subscription ---

    def subscribe(
        self,
        session: SessionContext,
        on_snapshot: Optional[Callable[[Snapshot], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ) -> Subscription:
        if self._subscription is not None or self._closed:
            raise RuntimeError("SyncController.subscribe may only be called once")
        self._session = session
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._subscription = self._store.subscribe(
            session.user_id, self._handle_snapshot, self._handle_error
        )
        logger.debug("Sync controller subscribed for user %s", session.user_id)
        return self._subscription

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            self._store.unsubscribe(self._subscription)
        self._snapshot = None
        logger.debug(
            "Sync controller closed for user %s",
            self._session.user_id if self._session else None,
        )

    def __enter__(self) -> "SyncController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()

    def _handle_snapshot(self, records: tuple[HabitRecord, ...]) -> None:
        if self._closed:
            return
        today = self._date_keys.today()
        snapshot = Snapshot(
            habits=tuple(project_record(r, today) for r in records),
            today=today,
        )
        self._snapshot = snapshot
        self._stale = False
        if self._on_snapshot is not None:
            self._on_snapshot(snapshot)

    def _handle_error(self, reason: str) -> None:
        if self._closed:
            return
        self._stale = True
        logger.warning("Habit subscription error: %s", reason)
        self.emit(Notice("error", NoticeCode.SYNC_ERROR, reason))
        if self._on_error is not None:
            self._on_error(reason)

    # --- writes ---

    def toggle(self, habit_id: str) -> ToggleResult:
        habit = self._snapshot.find(habit_id) if self._snapshot else None
        if habit is None or self._session is None:
            logger.debug("Toggle for unknown habit %s ignored", habit_id)
            return ToggleResult(habit_id=habit_id, found=False)

        today, yesterday = self._date_keys.keys()
        # The last push may predate midnight; read its done flag against today.
        habit = replace(
            habit, is_done_today=habit.is_done_today and habit.last_completed_date == today
        )
        next_state = apply_toggle(habit, today, yesterday)
        try:
            self._store.update(self._session.user_id, habit_id, toggle_fields(next_state))
        except HabitNotFoundError:
            # Deleted remotely since the last push; the next push will drop it.
            logger.debug("Habit %s vanished before toggle reached the store", habit_id)
            return ToggleResult(habit_id=habit_id, found=False)
        except RecordStoreError as exc:
            self.emit(Notice("error", NoticeCode.UPDATE_FAILED, "Failed to update habit"))
            return ToggleResult(habit_id=habit_id, found=True, next_state=next_state, error=exc)
        return ToggleResult(habit_id=habit_id, found=True, next_state=next_state)

    def create(self, name: str, description: str = "") -> CreateResult:
        name = (name or "").strip()
        if not name:
            self.emit(Notice("error", NoticeCode.NAME_EMPTY, "Habit name cannot be empty"))
            raise HabitNameEmptyError()
        if self._session is None:
            raise RuntimeError("SyncController.create called before subscribe")

        fields = {
            "name": name,
            "description": description or "",
            "is_done_today": False,
            "streak_days": 0,
            "last_completed_date": None,
        }
        try:
            habit_id = self._store.create(self._session.user_id, fields)
        except RecordStoreError as exc:
            self.emit(Notice("error", NoticeCode.ADD_FAILED, "Failed to add habit"))
            return CreateResult(error=exc)
        self.emit(Notice("info", NoticeCode.HABIT_ADDED, "Habit added"))
        return CreateResult(habit_id=habit_id)

    def emit(self, notice: Notice) -> None:
        # A torn-down session has no UI left to show anything on.
        if self._closed:
            return
        self._notify(notice)
