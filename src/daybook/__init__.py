"""Daybook - day-bucketed time interval tracking with SQLite persistence."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("daybook")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from daybook.calendar import Interval, IntervalTracker, create_tracker

__all__ = ["Interval", "IntervalTracker", "create_tracker"]
