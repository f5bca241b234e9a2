"""Type definitions for the interval calendar.

This module defines the Pydantic model for a tracked interval and the
error values returned by store mutations.
"""

import random
import string
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field

from daybook.calendar.timeutils import truncate_to_minute

_ID_ALPHABET = string.digits + string.ascii_lowercase
_ID_LENGTH = 11


def new_identifier() -> str:
    """Generate a random base-36 identifier for an interval."""
    return "".join(random.choices(_ID_ALPHABET, k=_ID_LENGTH))


class Interval(BaseModel):
    """A tracked span of time.

    An interval with no ``end`` is running. Intervals are grouped into day
    buckets by the calendar day of ``start``.

    Attributes:
        identifier: Opaque unique id, assigned when the interval is added.
        start: Start timestamp. Defaults to "now" when added without one.
        end: End timestamp, or None while running.
        label: Free-text description. May be empty.
    """

    identifier: str = Field(default="", description="Unique interval identifier")
    start: datetime | None = Field(default=None, description="Start timestamp")
    end: datetime | None = Field(default=None, description="End timestamp, None while running")
    label: str = Field(default="", description="Free-text description")

    @property
    def is_running(self) -> bool:
        """True while the interval has no end."""
        return self.end is None

    def normalized(self) -> "Interval":
        """Return a copy with ``start`` and ``end`` truncated to the minute."""
        return self.model_copy(
            update={
                "start": truncate_to_minute(self.start) if self.start else None,
                "end": truncate_to_minute(self.end) if self.end else None,
            }
        )

    def duration_seconds(self, now: datetime | None = None) -> int:
        """Length of the interval in whole seconds.

        Args:
            now: Reference time for running intervals (defaults to now).

        Returns:
            Seconds between start and end, or 0 if start is missing.
        """
        if self.start is None:
            return 0
        end = self.end or now or datetime.now()
        return max(0, int((end - self.start).total_seconds()))


class Tag(BaseModel):
    """A deduplicated label stored in the normalized schema."""

    id: int = Field(..., description="Surrogate key")
    name: str = Field(..., description="Label text, unique and never empty")


class ErrorKind(str, Enum):
    """Reasons a store mutation can be rejected.

    Attributes:
        INVALID_INPUT: A required field (``start``) is missing.
        NOT_FOUND: No bucket or no record with the given identifier.
        INVALID_STATE: Stop on a closed interval, or resume on a running one.
    """

    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"


@dataclass(frozen=True)
class StoreError:
    """Descriptive failure returned (not raised) by store mutations."""

    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return self.message


def format_duration(duration: int | timedelta) -> str:
    """Render a duration as ``1h 5m``, ``12m 34s`` or ``40s``.

    Accepts whole seconds or a timedelta. Seconds are shown only for
    durations under an hour; an empty or negative duration is ``0s``.
    """
    if isinstance(duration, timedelta):
        duration = int(duration.total_seconds())
    if duration <= 0:
        return "0s"

    hours, rest = divmod(duration, 3600)
    minutes, seconds = divmod(rest, 60)
    parts = [f"{value}{unit}" for value, unit in ((hours, "h"), (minutes, "m")) if value]
    if seconds and not hours:
        parts.append(f"{seconds}s")
    return " ".join(parts) or "0s"
