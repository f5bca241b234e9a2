"""Configuration management for Daybook."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Daybook data directory
DAYBOOK_DIR = Path.home() / ".daybook"
DAYBOOK_ENV_FILE = DAYBOOK_DIR / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DAYBOOK_",
        # Later files override earlier ones
        env_file=(str(DAYBOOK_ENV_FILE), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    data_dir: Path = Field(
        default=DAYBOOK_DIR,
        description="Directory holding the calendar database and legacy file",
    )
    db_path: Path | None = Field(
        default=None,
        description="SQLite database path (default: <data_dir>/calendar.db)",
    )
    legacy_path: Path | None = Field(
        default=None,
        description="Legacy JSON calendar to import once (default: <data_dir>/calendar.json)",
    )

    # Interval behaviour
    resume_window_seconds: float = Field(
        default=60,
        ge=0,
        description="Resuming within this many seconds of the end reopens the same interval",
    )
    stop_running_on_add: bool = Field(
        default=True,
        description="Close running intervals of the same day when a new one is added",
    )

    def get_db_path(self) -> Path:
        """Get the database path, using default if not set."""
        if self.db_path:
            return self.db_path.expanduser()
        return self.data_dir.expanduser() / "calendar.db"

    def get_legacy_path(self) -> Path:
        """Get the legacy calendar path, using default if not set."""
        if self.legacy_path:
            return self.legacy_path.expanduser()
        return self.data_dir.expanduser() / "calendar.json"


# Global settings instance
settings = Settings()
