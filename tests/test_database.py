"""Tests for SQLite persistence, schema migrations and the legacy import."""

import json
import logging
import sqlite3
from contextlib import closing
from datetime import datetime

import pytest

from daybook.calendar.database import SCHEMA_VERSION, CalendarDatabase
from daybook.calendar.legacy import LegacyCalendarFile
from daybook.calendar.types import Interval

JAN_1 = "Mon Jan 01 2024"
JAN_2 = "Tue Jan 02 2024"


def _interval(ident: str, hour: int, label: str = "", day: int = 1, end: bool = True) -> Interval:
    return Interval(
        identifier=ident,
        start=datetime(2024, 1, day, hour),
        end=datetime(2024, 1, day, hour, 45) if end else None,
        label=label,
    )


def _legacy_calendar() -> dict:
    return {
        JAN_1: [
            {"identifier": "a1", "start": "2024-01-01T09:00:00", "end": "2024-01-01T10:00:00", "msg": "work"},
            {"identifier": "a2", "start": "2024-01-01T10:30:00", "end": None, "msg": ""},
        ],
        JAN_2: [
            {"identifier": "b1", "start": "2024-01-02T08:15:42", "end": "2024-01-02T09:00:00", "msg": "work"},
        ],
    }


def _snapshot(calendar: dict[str, list[Interval]]) -> dict:
    return {key: [i.model_dump() for i in intervals] for key, intervals in calendar.items()}


@pytest.fixture
def db(tmp_path) -> CalendarDatabase:
    return CalendarDatabase(tmp_path / "calendar.db")


class TestSchema:
    def test_fresh_database_is_current(self, db: CalendarDatabase) -> None:
        """A new database starts at the current schema and is empty."""
        assert db.schema_version() == SCHEMA_VERSION
        assert db.load() == {}

    def test_version_one_day_buckets_are_normalized(self, tmp_path) -> None:
        """A schema-1 database is migrated into interval rows and tags."""
        path = tmp_path / "calendar.db"
        with closing(sqlite3.connect(path)) as conn:
            conn.execute("CREATE TABLE day_buckets (day_key TEXT PRIMARY KEY, intervals TEXT NOT NULL)")
            conn.execute(
                "INSERT INTO day_buckets VALUES (?, ?)",
                (JAN_1, json.dumps([
                    {"identifier": "x1", "start": "2024-01-01T09:00:00", "end": "2024-01-01T09:30:00", "label": "read"},
                    {"identifier": "x2", "start": "2024-01-01T11:00:00", "end": None, "label": ""},
                ])),
            )
            conn.execute("PRAGMA user_version = 1")
            conn.commit()

        db = CalendarDatabase(path)
        calendar = db.load()

        assert db.schema_version() == 2
        assert [i.identifier for i in calendar[JAN_1]] == ["x1", "x2"]
        assert calendar[JAN_1][0].label == "read"
        assert calendar[JAN_1][1].end is None
        assert [t.name for t in db.get_all_tags()] == ["read"]
        with closing(sqlite3.connect(path)) as conn:
            tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        assert "day_buckets" not in tables

    def test_reopening_does_not_migrate_again(self, tmp_path) -> None:
        """Reopening a migrated database keeps its data unchanged."""
        path = tmp_path / "calendar.db"
        first = CalendarDatabase(path)
        first.save_all({JAN_1: [_interval("a", 9, "work")]})

        second = CalendarDatabase(path)
        assert _snapshot(second.load()) == _snapshot(first.load())
        assert second.schema_version() == SCHEMA_VERSION


class TestSaveAll:
    def test_round_trip(self, db: CalendarDatabase) -> None:
        """A saved calendar loads back identically."""
        calendar = {
            JAN_1: [_interval("a", 9, "work"), _interval("b", 11, "", end=False)],
            JAN_2: [_interval("c", 8, "read", day=2)],
        }
        db.save_all(calendar)
        assert _snapshot(db.load()) == _snapshot(calendar)

    def test_removes_intervals_absent_from_calendar(self, db: CalendarDatabase) -> None:
        """Rows missing from the saved calendar are deleted."""
        db.save_all({JAN_1: [_interval("a", 9), _interval("b", 10)], JAN_2: [_interval("c", 9, day=2)]})
        db.save_all({JAN_1: [_interval("a", 9)], JAN_2: []})

        loaded = db.load()
        assert list(loaded) == [JAN_1]
        assert [i.identifier for i in loaded[JAN_1]] == ["a"]
        assert db.get_all_dates() == [JAN_1]

    def test_updates_existing_rows(self, db: CalendarDatabase) -> None:
        """Saving again updates rows in place by identifier."""
        db.save_all({JAN_1: [_interval("a", 9, "old", end=False)]})
        db.save_all({JAN_1: [_interval("a", 9, "new")]})

        [stored] = db.get_intervals(JAN_1)
        assert stored.label == "new"
        assert stored.end == datetime(2024, 1, 1, 9, 45)

    def test_failed_save_rolls_back(self, db: CalendarDatabase) -> None:
        """A failing save leaves the previous state untouched."""
        db.save_all({JAN_1: [_interval("a", 9, "work")]})
        broken = Interval.model_construct(identifier="b", start=None, end=None, label="")

        with pytest.raises(AttributeError):
            db.save_all({JAN_1: [_interval("c", 10), broken]})

        assert [i.identifier for i in db.get_intervals(JAN_1)] == ["a"]


class TestTags:
    def test_empty_label_never_becomes_tag(self, db: CalendarDatabase) -> None:
        """Empty labels never create tag rows."""
        assert db.get_or_create_tag("") is None
        assert db.get_or_create_tag(None) is None
        db.save_all({JAN_1: [_interval("a", 9, "")]})
        assert db.get_all_tags() == []

    def test_tags_are_deduplicated(self, db: CalendarDatabase) -> None:
        """The same label resolves to one tag."""
        first = db.get_or_create_tag("work")
        assert db.get_or_create_tag("work") == first
        db.save_all({JAN_1: [_interval("a", 9, "work"), _interval("b", 10, "work")]})
        assert [t.name for t in db.get_all_tags()] == ["work"]

    def test_tags_outlive_intervals(self, db: CalendarDatabase) -> None:
        """Tags stay after their intervals are removed."""
        db.save_all({JAN_1: [_interval("a", 9, "gone")]})
        db.save_all({})
        assert [t.name for t in db.get_all_tags()] == ["gone"]


class TestQueries:
    def test_delete_intervals_and_clear(self, db: CalendarDatabase) -> None:
        """Per-day delete and clear_all empty the tables."""
        db.save_all({JAN_1: [_interval("a", 9, "x"), _interval("b", 10)], JAN_2: [_interval("c", 9, day=2)]})

        assert db.delete_intervals(JAN_1) == 2
        assert db.get_all_dates() == [JAN_2]

        db.clear_all()
        assert db.load() == {}
        assert db.get_all_tags() == []


class TestLegacyImport:
    def test_imports_and_deletes_legacy_file(self, tmp_path) -> None:
        """The legacy file is imported and then removed."""
        legacy = LegacyCalendarFile(tmp_path / "calendar.json")
        legacy.write(_legacy_calendar())
        db = CalendarDatabase(tmp_path / "calendar.db", legacy=legacy)

        calendar = db.load()

        assert not legacy.exists()
        assert [i.identifier for i in calendar[JAN_1]] == ["a1", "a2"]
        assert calendar[JAN_1][1].is_running
        assert calendar[JAN_2][0].start == datetime(2024, 1, 2, 8, 15)
        assert [t.name for t in db.get_all_tags()] == ["work"]

    def test_import_is_idempotent(self, tmp_path) -> None:
        """A second import is a no-op."""
        legacy = LegacyCalendarFile(tmp_path / "calendar.json")
        legacy.write(_legacy_calendar())
        db = CalendarDatabase(tmp_path / "calendar.db", legacy=legacy)

        once = _snapshot(db.load())
        assert db.import_legacy() is False
        assert _snapshot(db.load()) == once

    def test_existing_data_wins_over_legacy(self, tmp_path) -> None:
        """Existing rows are kept and the legacy file is discarded."""
        legacy = LegacyCalendarFile(tmp_path / "calendar.json")
        db = CalendarDatabase(tmp_path / "calendar.db", legacy=legacy)
        db.save_all({JAN_1: [_interval("keep", 9, "mine")]})
        legacy.write(_legacy_calendar())

        assert db.import_legacy() is False
        assert not legacy.exists()
        assert [i.identifier for i in db.load()[JAN_1]] == ["keep"]

    def test_string_encoded_legacy_value(self, tmp_path) -> None:
        """A JSON string under the calendar key is decoded."""
        path = tmp_path / "calendar.json"
        path.write_text(json.dumps({"calendar": json.dumps(_legacy_calendar())}))
        db = CalendarDatabase(tmp_path / "calendar.db", legacy=LegacyCalendarFile(path))

        assert sum(len(v) for v in db.load().values()) == 3

    def test_corrupt_legacy_file_is_logged(self, tmp_path, caplog) -> None:
        """An unreadable legacy file is logged and left in place."""
        path = tmp_path / "calendar.json"
        path.write_text("{not json")
        db = CalendarDatabase(tmp_path / "calendar.db", legacy=LegacyCalendarFile(path))

        with caplog.at_level(logging.ERROR):
            assert db.load() == {}

        assert path.exists()
        assert "Failed to import legacy calendar" in caplog.text

    def test_interval_without_start_is_skipped(self, tmp_path) -> None:
        """Legacy rows without a start are dropped."""
        legacy = LegacyCalendarFile(tmp_path / "calendar.json")
        legacy.write({JAN_1: [{"identifier": "z", "start": None, "end": None, "msg": "x"}]})
        db = CalendarDatabase(tmp_path / "calendar.db", legacy=legacy)

        assert db.load() == {}
        assert not legacy.exists()
