"""Minute truncation and day-key helpers.

Day keys look like ``Mon Jan 01 2024``. Weekday and month names are fixed
English strings rather than ``strftime`` output, so keys stay the same
whatever locale the process runs under.
"""

from datetime import date, datetime

_WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def truncate_to_minute(value: datetime) -> datetime:
    """Zero the seconds and microseconds of a timestamp."""
    return value.replace(second=0, microsecond=0)


def day_key(value: date | datetime) -> str:
    """Return the bucket key for the calendar day of ``value``.

    Args:
        value: A date or timestamp. Any time component is ignored.

    Returns:
        Key string like ``Mon Jan 01 2024``
    """
    if isinstance(value, datetime):
        value = value.date()
    return (
        f"{_WEEKDAYS[value.weekday()]} {_MONTHS[value.month - 1]} "
        f"{value.day:02d} {value.year:04d}"
    )


def day_from_key(key: str) -> date:
    """Parse a key produced by :func:`day_key` back into a date.

    Raises:
        ValueError: If the key is not in ``Www Mmm DD YYYY`` form.
    """
    parts = key.split()
    if len(parts) != 4 or parts[1] not in _MONTHS:
        raise ValueError(f"Invalid day key: {key!r}")
    return date(int(parts[3]), _MONTHS.index(parts[1]) + 1, int(parts[2]))


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse a stored timestamp into a naive local datetime.

    Accepts ISO-8601 strings, including the ``...Z`` form written by
    JavaScript's ``Date.toJSON()``. Aware values are converted to local
    wall-clock time and stripped of their offset.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        value = datetime.fromisoformat(value)
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value


def format_timestamp(value: datetime | None) -> str | None:
    """Serialize a timestamp for storage."""
    return value.isoformat() if value is not None else None
