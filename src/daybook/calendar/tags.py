"""Deduplicated set of interval labels."""

import logging

from daybook.calendar.database import PERSISTENCE_ERRORS, CalendarDatabase
from daybook.calendar.store import DayCalendar

logger = logging.getLogger(__name__)

# Returned in place of an empty list; callers must not treat it as a label.
NO_DESCRIPTIONS = "No descriptions available"


class TagRegistry:
    """Collects the distinct non-empty labels used by intervals.

    Without a database, labels are derived from the intervals currently in
    the calendar. With one, the stored tag table is included as well, so
    labels of deleted intervals remain available (tags are never removed).
    """

    def __init__(self, calendar: DayCalendar, database: CalendarDatabase | None = None) -> None:
        self._calendar = calendar
        self._database = database

    def labels(self) -> set[str]:
        """Return the raw set of non-empty labels."""
        names = {interval.label for interval in self._calendar.iter_intervals()}
        if self._database is not None:
            try:
                names.update(tag.name for tag in self._database.get_all_tags())
            except PERSISTENCE_ERRORS as e:
                logger.error(f"Failed to read tags from database: {e}")
        names.discard("")
        return names

    def get_descriptions(self) -> list[str]:
        """Return the sorted labels, or ``[NO_DESCRIPTIONS]`` when there are none."""
        names = sorted(self.labels())
        return names if names else [NO_DESCRIPTIONS]
