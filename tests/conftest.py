"""
Shared pytest fixtures.

Uses a SQLite file database so no Postgres is required for tests.
The clock is pinned through the date-key dependency; tests move it with
`clock.set(...)` / `clock.advance(days=...)`.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_habithive.db")

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.dates import DateKeyProvider, get_date_keys
from app.core.errors import HabitNotFoundError, RecordStoreError
from app.db.base import Base, get_db
from app.main import app
from app.models.habit import Habit  # noqa: F401
from app.services.record_store import (
    HabitRecord,
    SqlRecordStore,
    Subscription,
    get_record_store,
)
from app.services.session import SessionContext

SQLITE_URL = "sqlite:///./test_habithive.db"

engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeClock:
    """Callable clock for DateKeyProvider; starts at 2024-03-11 12:00 UTC."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 3, 11, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self.now = self.now + timedelta(days=days, hours=hours)


class FakeRecordStore:
    """
    In-memory record store with failure injection.

    Pushes are synchronous unless `auto_push` is False; then tests call
    `push(user_id)` themselves to model a delayed or reordered listener.
    """

    def __init__(self):
        self.records: dict[str, dict[str, dict[str, Any]]] = {}
        self.listeners: list[tuple[Subscription, Any, Any]] = []
        self.calls: list[tuple] = []
        self.fail_create: Optional[RecordStoreError] = None
        self.fail_update: Optional[RecordStoreError] = None
        self.auto_push = True
        self._keys = 0

    # --- helpers for tests ---

    def seed(self, user_id: str, **fields) -> str:
        habit_id = fields.pop("id", None) or uuid.uuid4().hex
        record = {
            "name": "Habit",
            "description": "",
            "is_done_today": False,
            "streak_days": 0,
            "last_completed_date": None,
        }
        record.update(fields)
        self.records.setdefault(user_id, {})[habit_id] = record
        return habit_id

    def delete(self, user_id: str, habit_id: str) -> None:
        self.records.get(user_id, {}).pop(habit_id, None)
        if self.auto_push:
            self.push(user_id)

    def fail_subscription(self, user_id: str, reason: str) -> None:
        for sub, _, on_error in list(self.listeners):
            if sub.active and sub.user_id == user_id:
                on_error(reason)

    def push(self, user_id: str) -> None:
        records = self.snapshot(user_id)
        for sub, on_snapshot, _ in list(self.listeners):
            if sub.active and sub.user_id == user_id:
                on_snapshot(records)

    # --- RecordStore contract ---

    def snapshot(self, user_id: str) -> tuple[HabitRecord, ...]:
        return tuple(
            HabitRecord(id=habit_id, **fields)
            for habit_id, fields in self.records.get(user_id, {}).items()
        )

    def create(self, user_id: str, fields: dict[str, Any]) -> str:
        self.calls.append(("create", user_id, dict(fields)))
        if self.fail_create is not None:
            raise self.fail_create
        habit_id = self.seed(user_id, **fields)
        if self.auto_push:
            self.push(user_id)
        return habit_id

    def update(self, user_id: str, habit_id: str, fields: dict[str, Any]) -> None:
        self.calls.append(("update", user_id, habit_id, dict(fields)))
        if self.fail_update is not None:
            raise self.fail_update
        record = self.records.get(user_id, {}).get(habit_id)
        if record is None:
            raise HabitNotFoundError(habit_id)
        record.update(fields)
        if self.auto_push:
            self.push(user_id)

    def subscribe(self, user_id, on_snapshot, on_error) -> Subscription:
        sub = Subscription(user_id, self.unsubscribe)
        self._keys += 1
        sub.key = self._keys
        self.listeners.append((sub, on_snapshot, on_error))
        on_snapshot(self.snapshot(user_id))
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.active = False
        self.listeners = [entry for entry in self.listeners if entry[0] is not subscription]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def date_keys(clock):
    return DateKeyProvider("UTC", clock=clock)


@pytest.fixture()
def fake_store():
    return FakeRecordStore()


@pytest.fixture()
def sql_store():
    return SqlRecordStore(TestingSessionLocal)


@pytest.fixture()
def user_id():
    # Fresh user per test: the SQLite file is shared by the whole session.
    return f"user-{uuid.uuid4().hex[:12]}"


@pytest.fixture()
def session(user_id):
    return SessionContext(user_id=user_id, display_name="ana@example.com")


@pytest.fixture()
def headers(user_id):
    return {"X-User-Id": user_id, "X-User-Email": "ana@example.com"}


@pytest.fixture()
def client(sql_store, date_keys):
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_record_store] = lambda: sql_store
    app.dependency_overrides[get_date_keys] = lambda: date_keys
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
