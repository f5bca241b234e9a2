"""In-memory day-bucketed interval store.

Intervals are grouped under the day key of their ``start`` timestamp.
Each bucket keeps insertion order; a bucket disappears as soon as its last
interval is removed.
"""

import logging
from collections.abc import Iterator, Mapping, Sequence
from datetime import date, datetime

from daybook.calendar.timeutils import day_from_key, day_key
from daybook.calendar.types import ErrorKind, Interval, StoreError, new_identifier

logger = logging.getLogger(__name__)


class DayCalendar:
    """Mapping of day key to the ordered intervals that start on that day.

    Besides the buckets, the calendar keeps an identifier -> day key index.
    Lookups for update/delete go through the index, so an edit that moves
    ``start`` to another day still finds the record in its old bucket and
    moves it instead of reporting it missing.

    Example:
        calendar = DayCalendar()
        ident = calendar.add_interval(Interval(start=datetime(2024, 1, 1, 9), label="work"))
        calendar.get_intervals(date(2024, 1, 1))
    """

    def __init__(self) -> None:
        self._buckets: dict[str, list[Interval]] = {}
        self._index: dict[str, str] = {}

    # -- queries --------------------------------------------------------

    def get_intervals(self, day: date | datetime) -> list[Interval]:
        """Return the intervals for the day of ``day`` (empty if none)."""
        return list(self._buckets.get(day_key(day), []))

    def get_dates(self) -> list[date]:
        """Return one date per populated bucket, in bucket order."""
        return [day_from_key(key) for key in self._buckets]

    def find(self, identifier: str) -> Interval | None:
        """Find an interval by identifier in any bucket."""
        key = self._index.get(identifier)
        if key is None:
            return None
        for interval in self._buckets.get(key, []):
            if interval.identifier == identifier:
                return interval
        return None

    def iter_intervals(self) -> Iterator[Interval]:
        """Iterate over every stored interval, bucket by bucket."""
        for intervals in self._buckets.values():
            yield from intervals

    def buckets(self) -> dict[str, list[Interval]]:
        """Return a shallow copy of the day key -> intervals mapping."""
        return {key: list(intervals) for key, intervals in self._buckets.items()}

    def __len__(self) -> int:
        return sum(len(intervals) for intervals in self._buckets.values())

    # -- mutations ------------------------------------------------------

    def replace(self, buckets: Mapping[str, Sequence[Interval]]) -> None:
        """Replace the whole calendar, e.g. with data loaded from disk."""
        self._buckets = {}
        self._index = {}
        for key, intervals in buckets.items():
            if not intervals:
                continue
            self._buckets[key] = list(intervals)
            for interval in intervals:
                self._index[interval.identifier] = key

    def add_interval(self, interval: Interval, now: datetime | None = None) -> str:
        """Add an interval to the bucket of its start day.

        A missing identifier, or one already used by a stored interval, is
        replaced with a fresh one. A missing start defaults to ``now``.
        Timestamps are truncated to the minute before storing.

        Args:
            interval: The interval to add.
            now: Fallback start time (defaults to the current time).

        Returns:
            The identifier of the stored interval.
        """
        updates: dict[str, object] = {}
        if not interval.identifier or interval.identifier in self._index:
            if interval.identifier:
                logger.warning(f"Identifier {interval.identifier} already in use, assigning a new one")
            updates["identifier"] = self._fresh_identifier()
        if interval.start is None:
            updates["start"] = now or datetime.now()
        record = interval.model_copy(update=updates).normalized()

        key = day_key(record.start)
        self._buckets.setdefault(key, []).append(record)
        self._index[record.identifier] = key
        logger.debug(f"Added interval {record.identifier} to {key}")
        return record.identifier

    def update_interval(self, interval: Interval) -> str | StoreError:
        """Replace the stored record that has the same identifier.

        Returns:
            The identifier, or a StoreError (INVALID_INPUT without a start,
            NOT_FOUND when no record matches).
        """
        if interval.start is None:
            return StoreError(ErrorKind.INVALID_INPUT, "Start date is required")

        record = interval.normalized()
        located = self._locate(record)
        if isinstance(located, StoreError):
            return located

        old_key, index = located
        new_key = day_key(record.start)
        if new_key == old_key:
            self._buckets[old_key][index] = record
        else:
            self._remove_at(old_key, index)
            self._buckets.setdefault(new_key, []).append(record)
            self._index[record.identifier] = new_key
            logger.debug(f"Moved interval {record.identifier} from {old_key} to {new_key}")
        return record.identifier

    def delete_interval(self, interval: Interval) -> str | StoreError:
        """Remove the stored record that has the same identifier.

        Returns:
            The identifier, or a StoreError with the same kinds as
            :meth:`update_interval`.
        """
        if interval.start is None:
            return StoreError(ErrorKind.INVALID_INPUT, "Start date is required")

        located = self._locate(interval.normalized())
        if isinstance(located, StoreError):
            return located

        key, index = located
        self._remove_at(key, index)
        logger.debug(f"Deleted interval {interval.identifier} from {key}")
        return interval.identifier

    # -- internals ------------------------------------------------------

    def _locate(self, interval: Interval) -> tuple[str, int] | StoreError:
        """Find the bucket key and position of the stored record."""
        key = self._index.get(interval.identifier, day_key(interval.start))
        bucket = self._buckets.get(key)
        if not bucket:
            return StoreError(
                ErrorKind.NOT_FOUND, f"No intervals found for the specified date: {key}"
            )
        for index, existing in enumerate(bucket):
            if existing.identifier == interval.identifier:
                return key, index
        return StoreError(ErrorKind.NOT_FOUND, "Interval not found")

    def _fresh_identifier(self) -> str:
        identifier = new_identifier()
        while identifier in self._index:
            identifier = new_identifier()
        return identifier

    def _remove_at(self, key: str, index: int) -> None:
        bucket = self._buckets[key]
        removed = bucket.pop(index)
        self._index.pop(removed.identifier, None)
        if not bucket:
            del self._buckets[key]
