"""SQLite storage for the interval calendar.

Two persisted layouts have existed:

1. ``day_buckets``: one row per day, holding a JSON array of intervals.
2. ``tags`` + ``intervals``: one row per interval, referencing a
   deduplicated tag row instead of carrying the label text.

The schema version lives in ``PRAGMA user_version``. Opening the database
runs every pending migration step in order, then imports the legacy JSON
file (if one is configured and present) and deletes it.
"""

import json
import logging
import sqlite3
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Any

from daybook.calendar.legacy import LegacyCalendarFile
from daybook.calendar.timeutils import day_key, format_timestamp, parse_timestamp
from daybook.calendar.types import Interval, Tag, new_identifier

logger = logging.getLogger(__name__)

# Current schema version; bump together with a new entry in MIGRATIONS.
SCHEMA_VERSION = 2

# Errors a failing database can surface; filelock.Timeout is an OSError and
# corrupt stored JSON raises ValueError.
PERSISTENCE_ERRORS = (sqlite3.Error, OSError, ValueError)


def _table_exists(conn: sqlite3.Connection, name: str) -> bool:
    cursor = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
    )
    return cursor.fetchone() is not None


def _count_intervals(conn: sqlite3.Connection) -> int:
    return conn.execute("SELECT COUNT(*) FROM intervals").fetchone()[0]


def _interval_from_legacy(item: dict[str, Any]) -> Interval | None:
    """Convert a plain legacy interval object, skipping ones without a start."""
    start = parse_timestamp(item.get("start"))
    if start is None:
        logger.warning(f"Skipping legacy interval without start: {item!r}")
        return None
    return Interval(
        identifier=item.get("identifier") or new_identifier(),
        start=start,
        end=parse_timestamp(item.get("end")),
        label=item.get("label", item.get("msg")) or "",
    ).normalized()


def _create_day_buckets(conn: sqlite3.Connection) -> None:
    """Schema 1: one row per day with an embedded interval array."""
    conn.execute(
        """CREATE TABLE IF NOT EXISTS day_buckets (
               day_key TEXT PRIMARY KEY,
               intervals TEXT NOT NULL
           )"""
    )


def _normalize_day_buckets(conn: sqlite3.Connection) -> None:
    """Schema 2: split day buckets into interval rows and a tag table."""
    conn.execute(
        """CREATE TABLE IF NOT EXISTS tags (
               id INTEGER PRIMARY KEY AUTOINCREMENT,
               name TEXT NOT NULL UNIQUE
           )"""
    )
    conn.execute(
        """CREATE TABLE IF NOT EXISTS intervals (
               id INTEGER PRIMARY KEY AUTOINCREMENT,
               identifier TEXT NOT NULL UNIQUE,
               start TEXT NOT NULL,
               "end" TEXT,
               tag_id INTEGER REFERENCES tags(id),
               day_key TEXT NOT NULL
           )"""
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_intervals_day_key ON intervals(day_key)")

    if not _table_exists(conn, "day_buckets"):
        return

    # Already copied by an earlier, interrupted run
    if _count_intervals(conn) == 0:
        rows = conn.execute("SELECT day_key, intervals FROM day_buckets").fetchall()
        copied = 0
        for row in rows:
            for item in json.loads(row["intervals"]):
                interval = _interval_from_legacy(item)
                if interval is not None:
                    _upsert_interval(conn, interval)
                    copied += 1
        logger.info(f"Copied {copied} intervals from {len(rows)} day buckets")

    conn.execute("DROP TABLE day_buckets")


# Ordered (target_version, step) pairs. Each step must be safe to re-run.
MIGRATIONS: list[tuple[int, Callable[[sqlite3.Connection], None]]] = [
    (1, _create_day_buckets),
    (2, _normalize_day_buckets),
]


def _get_or_create_tag(conn: sqlite3.Connection, label: str | None) -> int | None:
    """Resolve a label to a tag id, creating the tag if needed.

    Empty labels map to None and are never stored as tags.
    """
    if not label:
        return None
    row = conn.execute("SELECT id FROM tags WHERE name = ?", (label,)).fetchone()
    if row is not None:
        return row["id"]
    cursor = conn.execute("INSERT INTO tags (name) VALUES (?)", (label,))
    return cursor.lastrowid


def _upsert_interval(conn: sqlite3.Connection, interval: Interval) -> None:
    """Insert an interval row or update the row with the same identifier."""
    conn.execute(
        """INSERT INTO intervals (identifier, start, "end", tag_id, day_key)
           VALUES (?, ?, ?, ?, ?)
           ON CONFLICT(identifier) DO UPDATE SET
               start = excluded.start,
               "end" = excluded."end",
               tag_id = excluded.tag_id,
               day_key = excluded.day_key""",
        (
            interval.identifier,
            format_timestamp(interval.start),
            format_timestamp(interval.end),
            _get_or_create_tag(conn, interval.label),
            day_key(interval.start),
        ),
    )


def _interval_from_row(row: sqlite3.Row) -> Interval:
    return Interval(
        identifier=row["identifier"],
        start=parse_timestamp(row["start"]),
        end=parse_timestamp(row["end"]),
        label=row["name"] or "",
    )


_SELECT_INTERVALS = """
    SELECT i.identifier, i.start, i."end", i.day_key, t.name
    FROM intervals i LEFT JOIN tags t ON t.id = i.tag_id
"""


class CalendarDatabase:
    """SQLite-backed durable store for the day-bucketed calendar.

    Example:
        db = CalendarDatabase("~/.daybook/calendar.db", legacy=LegacyCalendarFile(...))
        calendar = db.load()
        db.save_all(calendar)
    """

    def __init__(
        self,
        db_path: Path | str | None = None,
        legacy: LegacyCalendarFile | None = None,
    ):
        """Initialize the calendar database.

        Args:
            db_path: Path to SQLite database file. Defaults to ~/.daybook/calendar.db
            legacy: Optional legacy JSON file to import on first load.
        """
        if db_path is None:
            db_path = Path.home() / ".daybook" / "calendar.db"

        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.legacy = legacy
        self._schema_ready = False

    # -- connection handling ----------------------------------------------

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection in autocommit mode with the schema migrated."""
        with closing(sqlite3.connect(self.db_path, isolation_level=None)) as conn:
            conn.row_factory = sqlite3.Row
            if not self._schema_ready:
                self._migrate(conn)
                self._schema_ready = True
            yield conn

    @staticmethod
    @contextmanager
    def _transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
        conn.execute("BEGIN")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

    # -- schema -------------------------------------------------------------

    def _migrate(self, conn: sqlite3.Connection) -> None:
        """Apply every migration step above the stored schema version."""
        version = conn.execute("PRAGMA user_version").fetchone()[0]
        if version > SCHEMA_VERSION:
            logger.warning(
                f"Calendar database {self.db_path} has schema version {version}, "
                f"newer than supported version {SCHEMA_VERSION}"
            )
            return

        for target, step in MIGRATIONS:
            if version >= target:
                continue
            logger.info(f"Migrating calendar database from version {version} to {target}")
            with self._transaction(conn):
                step(conn)
                conn.execute(f"PRAGMA user_version = {target}")
            version = target

    def schema_version(self) -> int:
        """Return the schema version stamped in the database."""
        with self._connect() as conn:
            return conn.execute("PRAGMA user_version").fetchone()[0]

    def import_legacy(self) -> bool:
        """Import the legacy JSON calendar into the current schema.

        The legacy file is deleted afterwards. If the database already holds
        intervals the import is skipped, and the file is deleted as well.

        Returns:
            True if intervals were imported.
        """
        if self.legacy is None:
            return False
        stored = self.legacy.read()
        if stored is None:
            return False

        with self._connect() as conn:
            if _count_intervals(conn) > 0:
                logger.info("Calendar database already has data, skipping legacy import")
                self.legacy.delete()
                return False

            imported = 0
            with self._transaction(conn):
                for items in stored.values():
                    for item in items:
                        interval = _interval_from_legacy(item)
                        if interval is not None:
                            _upsert_interval(conn, interval)
                            imported += 1

        self.legacy.delete()
        logger.info(f"Imported {imported} intervals from {self.legacy.path}")
        return True

    # -- bulk load/save ---------------------------------------------------

    def load(self) -> dict[str, list[Interval]]:
        """Load the whole calendar, running migrations and the legacy import.

        Returns:
            Mapping of day key to intervals, in insertion order.
        """
        try:
            self.import_legacy()
        except (OSError, ValueError) as e:
            # Keep loading what the database already has
            logger.error(f"Failed to import legacy calendar: {e}")
        calendar: dict[str, list[Interval]] = {}
        with self._connect() as conn:
            for row in conn.execute(_SELECT_INTERVALS + " ORDER BY i.id"):
                calendar.setdefault(row["day_key"], []).append(_interval_from_row(row))
        logger.debug(f"Loaded {sum(map(len, calendar.values()))} intervals from {self.db_path}")
        return calendar

    def save_all(self, calendar: Mapping[str, Sequence[Interval]]) -> None:
        """Reconcile the database with the full in-memory calendar.

        Every interval in a non-empty bucket is upserted by identifier; any
        stored interval not present in the calendar is deleted. Runs as a
        single transaction.
        """
        with self._connect() as conn, self._transaction(conn):
            stored = {row[0] for row in conn.execute("SELECT identifier FROM intervals")}
            current: set[str] = set()
            for intervals in calendar.values():
                for interval in intervals:
                    current.add(interval.identifier)
                    _upsert_interval(conn, interval)

            stale = stored - current
            if stale:
                conn.executemany(
                    "DELETE FROM intervals WHERE identifier = ?", [(i,) for i in stale]
                )
        logger.debug(f"Saved {len(current)} intervals, removed {len(stale)}")

    # -- queries ------------------------------------------------------------

    def get_or_create_tag(self, label: str | None) -> int | None:
        """Resolve a label to its tag id; empty labels map to None."""
        with self._connect() as conn, self._transaction(conn):
            return _get_or_create_tag(conn, label)

    def get_intervals(self, key: str) -> list[Interval]:
        """Get the stored intervals for one day key."""
        with self._connect() as conn:
            cursor = conn.execute(_SELECT_INTERVALS + " WHERE i.day_key = ? ORDER BY i.id", (key,))
            return [_interval_from_row(row) for row in cursor.fetchall()]

    def get_all_dates(self) -> list[str]:
        """Get every day key that has at least one stored interval."""
        with self._connect() as conn:
            cursor = conn.execute("SELECT day_key FROM intervals GROUP BY day_key ORDER BY MIN(id)")
            return [row[0] for row in cursor.fetchall()]

    def get_all_tags(self) -> list[Tag]:
        """Get every stored tag, including ones no interval references."""
        with self._connect() as conn:
            cursor = conn.execute("SELECT id, name FROM tags ORDER BY id")
            return [Tag(id=row["id"], name=row["name"]) for row in cursor.fetchall()]

    def delete_intervals(self, key: str) -> int:
        """Delete all stored intervals for one day key.

        Returns:
            Number of rows deleted.
        """
        with self._connect() as conn, self._transaction(conn):
            cursor = conn.execute("DELETE FROM intervals WHERE day_key = ?", (key,))
            return cursor.rowcount

    def clear_all(self) -> None:
        """Delete every interval and tag."""
        with self._connect() as conn, self._transaction(conn):
            conn.execute("DELETE FROM intervals")
            conn.execute("DELETE FROM tags")
        logger.info(f"Cleared calendar database {self.db_path}")
