"""Interval calendar for Daybook.

This package provides:
- Minute truncation and locale-stable day keys
- An in-memory store grouping intervals by day
- The stop/resume state machine with the single-running policy
- SQLite persistence with schema migrations and a legacy JSON import

Example:
    from daybook.calendar import Interval, create_tracker

    tracker = create_tracker()
    ident = tracker.add_interval(Interval(label="Code review"))
    tracker.stop_interval(tracker.find_interval(ident))
"""

from daybook.calendar.database import SCHEMA_VERSION, CalendarDatabase
from daybook.calendar.legacy import LegacyCalendarFile
from daybook.calendar.store import DayCalendar
from daybook.calendar.tags import NO_DESCRIPTIONS, TagRegistry
from daybook.calendar.timeutils import day_from_key, day_key, truncate_to_minute
from daybook.calendar.tracker import IntervalTracker, create_tracker
from daybook.calendar.types import (
    ErrorKind,
    Interval,
    StoreError,
    Tag,
    format_duration,
    new_identifier,
)

__all__ = [
    # Tracker
    "IntervalTracker",
    "create_tracker",
    # Types
    "Interval",
    "Tag",
    "ErrorKind",
    "StoreError",
    "new_identifier",
    "format_duration",
    # Store
    "DayCalendar",
    "TagRegistry",
    "NO_DESCRIPTIONS",
    # Storage
    "CalendarDatabase",
    "LegacyCalendarFile",
    "SCHEMA_VERSION",
    # Time helpers
    "day_key",
    "day_from_key",
    "truncate_to_minute",
]
