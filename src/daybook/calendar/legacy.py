"""Legacy flat key/value calendar file.

Before the SQLite store existed, the whole calendar was kept as one JSON
document under a fixed ``calendar`` key. This module only reads, writes and
deletes that document; it is the source for the one-time import done by
:class:`daybook.calendar.database.CalendarDatabase`.
"""

import json
import logging
from pathlib import Path
from typing import Any

from filelock import FileLock

logger = logging.getLogger(__name__)

LEGACY_KEY = "calendar"


class LegacyCalendarFile:
    """Read/write/delete access to the legacy calendar JSON file.

    The file holds ``{"calendar": {day_key: [interval, ...]}}`` where each
    interval is a plain object with ``identifier``, ``start``, ``end`` and
    ``msg`` (or ``label``). Access is serialized with a file lock.
    """

    def __init__(self, path: str | Path, lock_timeout: float = 10.0) -> None:
        """Initialize the legacy file accessor.

        Args:
            path: Path to the JSON file.
            lock_timeout: Seconds to wait for the file lock.
        """
        self._path = Path(path)
        self._lock = FileLock(str(self._path.with_suffix(".lock")), timeout=lock_timeout)

    @property
    def path(self) -> Path:
        """Get the legacy file path."""
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def read(self) -> dict[str, list[dict[str, Any]]] | None:
        """Read the stored calendar mapping.

        Returns:
            The day key -> intervals mapping, or None if nothing is stored.

        Raises:
            json.JSONDecodeError: If the file contains invalid JSON.
            ValueError: If the stored value is not a mapping.
        """
        with self._lock:
            if not self._path.exists():
                return None
            content = self._path.read_text(encoding="utf-8")

        if not content.strip():
            return None

        data = json.loads(content)
        stored = data.get(LEGACY_KEY) if isinstance(data, dict) else None
        if stored is None:
            return None
        # Older writers stored the mapping as a JSON string inside the key.
        if isinstance(stored, str):
            stored = json.loads(stored)
        if not isinstance(stored, dict):
            raise ValueError(f"Legacy calendar in {self._path} is not a mapping")
        return stored

    def write(self, calendar: dict[str, list[dict[str, Any]]]) -> None:
        """Store a calendar mapping, replacing any existing one."""
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            content = json.dumps({LEGACY_KEY: calendar}, indent=2)
            self._path.write_text(content, encoding="utf-8")

    def delete(self) -> None:
        """Remove the stored calendar."""
        with self._lock:
            if self._path.exists():
                self._path.unlink()
                logger.info(f"Removed legacy calendar file: {self._path}")
