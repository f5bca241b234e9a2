"""Interval tracker: stop/resume state machine over the day calendar.

The tracker owns the in-memory :class:`DayCalendar` and is the only thing
that mutates it. Every successful mutation is followed by a full resync of
the calendar to the database. Persistence failures are logged and never
undo the in-memory change; the next successful save catches up.
"""

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta

from daybook.calendar.database import PERSISTENCE_ERRORS, CalendarDatabase
from daybook.calendar.legacy import LegacyCalendarFile
from daybook.calendar.store import DayCalendar
from daybook.calendar.tags import TagRegistry
from daybook.calendar.timeutils import truncate_to_minute
from daybook.calendar.types import ErrorKind, Interval, StoreError
from daybook.config import Settings, settings

logger = logging.getLogger(__name__)

DEFAULT_RESUME_WINDOW_SECONDS = 60.0


class IntervalTracker:
    """Adds, edits, stops and resumes intervals and keeps them persisted.

    An interval is Running while it has no ``end`` and Closed once it has
    one. ``stop_interval`` goes Running -> Closed. ``resume_interval`` goes
    Closed -> Running: within the resume window it reopens the same record,
    otherwise it starts a new interval with the same label.

    With ``stop_running_on_add`` enabled, adding an interval first closes
    every running interval on the new interval's day.

    Example:
        tracker = IntervalTracker(CalendarDatabase(path))
        tracker.load()
        ident = tracker.add_interval(Interval(label="work"))
        tracker.stop_interval(tracker.find_interval(ident))
    """

    def __init__(
        self,
        database: CalendarDatabase | None = None,
        resume_window_seconds: float = DEFAULT_RESUME_WINDOW_SECONDS,
        stop_running_on_add: bool = True,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the tracker.

        Args:
            database: Durable store; None keeps everything in memory.
            resume_window_seconds: Resume window for reopening a stopped interval.
            stop_running_on_add: Enable the single-running policy.
            now: Clock used for stop/resume and default start times.
        """
        self._calendar = DayCalendar()
        self._database = database
        self._tags = TagRegistry(self._calendar, database)
        self._resume_window = timedelta(seconds=resume_window_seconds)
        self._now = now
        self.stop_running_on_add = stop_running_on_add

    @property
    def calendar(self) -> DayCalendar:
        return self._calendar

    @property
    def database(self) -> CalendarDatabase | None:
        return self._database

    @property
    def resume_window(self) -> timedelta:
        return self._resume_window

    # -- persistence --------------------------------------------------------

    def load(self) -> bool:
        """Load the calendar from the database.

        Returns:
            True on success. On failure the calendar is left empty.
        """
        if self._database is None:
            return True
        try:
            buckets = self._database.load()
        except PERSISTENCE_ERRORS as e:
            logger.error(f"Failed to load calendar from {self._database.db_path}: {e}")
            self._calendar.replace({})
            return False

        self._calendar.replace(buckets)
        logger.debug(f"Calendar loaded with {len(self._calendar)} intervals")
        return True

    def save(self) -> bool:
        """Resync the full calendar to the database.

        Returns:
            True on success (or when there is no database).
        """
        if self._database is None:
            return True
        try:
            self._database.save_all(self._calendar.buckets())
        except PERSISTENCE_ERRORS as e:
            logger.error(f"Failed to save calendar to {self._database.db_path}: {e}")
            return False
        return True

    # -- queries ------------------------------------------------------------

    def get_intervals(self, day: date | datetime | None = None) -> list[Interval]:
        """Intervals of ``day`` (defaults to today)."""
        return self._calendar.get_intervals(day or self._now())

    def get_dates(self) -> list[date]:
        return self._calendar.get_dates()

    def find_interval(self, identifier: str) -> Interval | None:
        return self._calendar.find(identifier)

    def get_running(self) -> list[Interval]:
        """All running intervals across every day."""
        return [i for i in self._calendar.iter_intervals() if i.is_running]

    def get_descriptions(self) -> list[str]:
        return self._tags.get_descriptions()

    def day_summary(self, day: date | datetime | None = None) -> dict[str, int]:
        """Total tracked seconds per label for one day, largest first."""
        now = self._now()
        totals: dict[str, int] = {}
        for interval in self.get_intervals(day):
            seconds = interval.duration_seconds(now)
            totals[interval.label] = totals.get(interval.label, 0) + seconds
        return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))

    # -- mutations ------------------------------------------------------------

    def add_interval(self, interval: Interval) -> str:
        """Add an interval, applying the single-running policy.

        Returns:
            The identifier of the new interval.
        """
        now = self._now()
        start = interval.start or now
        if self.stop_running_on_add:
            self._close_running(start, now)
        identifier = self._calendar.add_interval(interval, now=now)
        self.save()
        return identifier

    def update_interval(self, interval: Interval) -> str | StoreError:
        result = self._calendar.update_interval(interval)
        if not isinstance(result, StoreError):
            self.save()
        return result

    def delete_interval(self, interval: Interval) -> str | StoreError:
        result = self._calendar.delete_interval(interval)
        if not isinstance(result, StoreError):
            self.save()
        return result

    def stop_interval(self, interval: Interval) -> str | StoreError:
        """Close a running interval with ``end`` = now.

        Returns:
            The identifier, or INVALID_STATE if it is already closed,
            INVALID_INPUT without a start, NOT_FOUND if it is not stored.
        """
        if interval.end is not None:
            logger.warning(f"Cannot stop interval {interval.identifier}: already stopped")
            return StoreError(ErrorKind.INVALID_STATE, "Interval is already stopped")
        stored = self._stored(interval)
        if isinstance(stored, StoreError):
            return stored
        if not stored.is_running:
            return StoreError(ErrorKind.INVALID_STATE, "Interval is already stopped")

        result = self._calendar.update_interval(
            stored.model_copy(update={"end": truncate_to_minute(self._now())})
        )
        if not isinstance(result, StoreError):
            self.save()
        return result

    def resume_interval(self, interval: Interval) -> str | StoreError:
        """Reopen a closed interval, or start a new one with its label.

        Within the resume window of ``end`` the same record goes back to
        running. Past it, a new interval starting now is added.

        Returns:
            The identifier of the running interval, or INVALID_STATE if the
            interval is still running.
        """
        if interval.end is None:
            logger.warning(f"Cannot resume interval {interval.identifier}: still running")
            return StoreError(ErrorKind.INVALID_STATE, "Interval is still running")

        now = self._now()
        if now - interval.end >= self._resume_window:
            logger.debug(f"Resume window passed for {interval.identifier}, starting new interval")
            return self.add_interval(Interval(start=now, label=interval.label))

        stored = self._stored(interval)
        if isinstance(stored, StoreError):
            return stored
        if stored.is_running:
            return StoreError(ErrorKind.INVALID_STATE, "Interval is still running")
        if self.stop_running_on_add:
            self._close_running(stored.start, now)
        result = self._calendar.update_interval(stored.model_copy(update={"end": None}))
        if not isinstance(result, StoreError):
            self.save()
        return result

    # -- internals ------------------------------------------------------------

    def _stored(self, interval: Interval) -> Interval | StoreError:
        """Return the stored record matching ``interval``."""
        if interval.start is None:
            return StoreError(ErrorKind.INVALID_INPUT, "Start date is required")
        stored = self._calendar.find(interval.identifier)
        if stored is None:
            logger.warning(f"Interval not found for identifier: {interval.identifier}")
            return StoreError(ErrorKind.NOT_FOUND, "Interval not found")
        return stored

    def _close_running(self, day: datetime, now: datetime) -> None:
        """Set ``end`` = now on every running interval of ``day``."""
        end = truncate_to_minute(now)
        for running in self._calendar.get_intervals(day):
            if running.is_running:
                logger.debug(f"Stopping interval {running.identifier} at {end}")
                self._calendar.update_interval(running.model_copy(update={"end": end}))


def create_tracker(config: Settings | None = None) -> IntervalTracker:
    """Build a tracker from settings and load its calendar.

    Args:
        config: Settings to use (defaults to the global settings).

    Returns:
        A loaded IntervalTracker.
    """
    config = config or settings
    database = CalendarDatabase(
        config.get_db_path(),
        legacy=LegacyCalendarFile(config.get_legacy_path()),
    )
    tracker = IntervalTracker(
        database,
        resume_window_seconds=config.resume_window_seconds,
        stop_running_on_add=config.stop_running_on_add,
    )
    tracker.load()
    return tracker
