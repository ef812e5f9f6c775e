"""
Tests for the SQLAlchemy record store: partial updates, snapshot fan-out,
user partitioning, and failure mapping.
"""
from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from app.core.errors import HabitNotFoundError, RecordStoreError
from app.models.habit import Habit
from app.services.record_store import HabitRecord, SqlRecordStore

_NEW = {
    "name": "Read",
    "description": "20 pages",
    "is_done_today": False,
    "streak_days": 0,
    "last_completed_date": None,
}


class _Collector:
    def __init__(self):
        self.snapshots: list[tuple[HabitRecord, ...]] = []
        self.errors: list[str] = []

    def on_snapshot(self, records):
        self.snapshots.append(records)

    def on_error(self, reason):
        self.errors.append(reason)


class TestCreateAndUpdate:

    def test_create_assigns_id_and_persists(self, sql_store, db, user_id):
        habit_id = sql_store.create(user_id, dict(_NEW))
        row = db.get(Habit, habit_id)
        assert row is not None
        assert row.user_id == user_id
        assert (row.is_done_today, row.streak_days, row.last_completed_date) == (False, 0, None)

    def test_ids_are_unique(self, sql_store, user_id):
        ids = {sql_store.create(user_id, dict(_NEW)) for _ in range(5)}
        assert len(ids) == 5

    def test_partial_update_touches_only_listed_fields(self, sql_store, user_id):
        habit_id = sql_store.create(user_id, dict(_NEW))
        sql_store.update(user_id, habit_id, {
            "is_done_today": True, "streak_days": 1, "last_completed_date": "2024-03-11",
        })
        sql_store.update(user_id, habit_id, {"is_done_today": False})

        (record,) = sql_store.snapshot(user_id)
        assert record == HabitRecord(
            id=habit_id, name="Read", description="20 pages",
            is_done_today=False, streak_days=1, last_completed_date="2024-03-11",
        )

    def test_update_missing_habit_raises_not_found(self, sql_store, user_id):
        with pytest.raises(HabitNotFoundError) as exc_info:
            sql_store.update(user_id, "nope", {"is_done_today": True})
        assert exc_info.value.details["habit_id"] == "nope"

    def test_update_other_users_habit_is_not_found(self, sql_store, user_id):
        habit_id = sql_store.create(user_id, dict(_NEW))
        with pytest.raises(HabitNotFoundError):
            sql_store.update("intruder", habit_id, {"is_done_today": True})

    def test_unknown_field_rejected(self, sql_store, user_id):
        with pytest.raises(ValueError):
            sql_store.create(user_id, {**_NEW, "user_id": "other"})

    def test_negative_streak_rejected_by_store(self, sql_store, user_id):
        habit_id = sql_store.create(user_id, dict(_NEW))
        with pytest.raises(RecordStoreError) as exc_info:
            sql_store.update(user_id, habit_id, {"streak_days": -1})
        assert exc_info.value.operation == "update"
        assert sql_store.snapshot(user_id)[0].streak_days == 0


class TestSnapshots:

    def test_subscribe_delivers_current_state(self, sql_store, user_id):
        sql_store.create(user_id, dict(_NEW))
        sink = _Collector()
        sub = sql_store.subscribe(user_id, sink.on_snapshot, sink.on_error)
        try:
            assert len(sink.snapshots) == 1
            assert sink.snapshots[0][0].name == "Read"
        finally:
            sub.close()

    def test_every_write_pushes_full_snapshot_in_order(self, sql_store, user_id):
        sink = _Collector()
        sub = sql_store.subscribe(user_id, sink.on_snapshot, sink.on_error)
        try:
            first = sql_store.create(user_id, dict(_NEW))
            second = sql_store.create(user_id, {**_NEW, "name": "Run"})
            sql_store.update(user_id, first, {"is_done_today": True})
        finally:
            sub.close()

        assert [len(s) for s in sink.snapshots] == [0, 1, 2, 2]
        assert [r.id for r in sink.snapshots[-1]] == [first, second]
        assert sink.snapshots[-1][0].is_done_today is True

    def test_pushes_are_scoped_to_user(self, sql_store, user_id):
        sink = _Collector()
        sub = sql_store.subscribe(user_id, sink.on_snapshot, sink.on_error)
        try:
            sql_store.create(f"{user_id}-other", dict(_NEW))
        finally:
            sub.close()
        assert sink.snapshots == [()]

    def test_close_stops_delivery_and_is_idempotent(self, sql_store, user_id):
        sink = _Collector()
        sub = sql_store.subscribe(user_id, sink.on_snapshot, sink.on_error)
        sub.close()
        sub.close()
        sql_store.unsubscribe(sub)
        sql_store.create(user_id, dict(_NEW))
        assert len(sink.snapshots) == 1
        assert sql_store.subscriber_count(user_id) == 0

    def test_raising_subscriber_does_not_break_write(self, sql_store, user_id):
        def boom(records):
            if records:
                raise RuntimeError("listener bug")

        healthy = _Collector()
        bad = sql_store.subscribe(user_id, boom, lambda reason: None)
        good = sql_store.subscribe(user_id, healthy.on_snapshot, healthy.on_error)
        try:
            habit_id = sql_store.create(user_id, dict(_NEW))
        finally:
            bad.close()
            good.close()
        assert healthy.snapshots[-1][0].id == habit_id


class TestFailures:

    class _BrokenSession:
        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def query(self, *args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("db down"))

        def add(self, obj):
            pass

        def commit(self):
            raise OperationalError("INSERT", {}, Exception("db down"))

    def _broken_store(self) -> SqlRecordStore:
        return SqlRecordStore(lambda: self._BrokenSession())

    def test_create_failure_maps_to_store_error(self, user_id):
        with pytest.raises(RecordStoreError) as exc_info:
            self._broken_store().create(user_id, dict(_NEW))
        assert exc_info.value.operation == "create"
        assert exc_info.value.http_status == 503

    def test_update_failure_maps_to_store_error(self, user_id):
        with pytest.raises(RecordStoreError) as exc_info:
            self._broken_store().update(user_id, "h1", {"is_done_today": True})
        assert not isinstance(exc_info.value, HabitNotFoundError)

    def test_subscribe_read_failure_goes_to_on_error(self, user_id):
        sink = _Collector()
        sub = self._broken_store().subscribe(user_id, sink.on_snapshot, sink.on_error)
        assert sink.snapshots == []
        assert sink.errors == ["Could not read habits."]
        assert sub.active is True

    def test_read_failure_skips_subscriptions_closed_during_fan_out(self, db, user_id):
        reads_fail = False
        healthy_factory = sessionmaker(bind=db.get_bind())

        def session_factory():
            session = healthy_factory()
            if reads_fail:
                session.query = self._BrokenSession().query
            return session

        store = SqlRecordStore(session_factory)
        second = _Collector()
        closer_errors = []

        def close_second(reason):
            closer_errors.append(reason)
            second_sub.close()

        first_sub = store.subscribe(user_id, lambda records: None, close_second)
        second_sub = store.subscribe(user_id, second.on_snapshot, second.on_error)
        reads_fail = True
        try:
            store.create(user_id, dict(_NEW))
        finally:
            first_sub.close()

        assert closer_errors == ["Could not read habits."]
        assert second.errors == []
