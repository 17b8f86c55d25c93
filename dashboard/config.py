"""Dashboard configuration.

Settings are read from environment variables and an optional ``.env`` file.
Persistent client state (the session database) lives in the state directory,
which defaults to a per-user configuration folder.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_APP_DIR_NAME = "MDMDashboard"


def _config_dir() -> Path:
    """Return the directory that stores persistent dashboard state."""
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / _APP_DIR_NAME


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Backend
    API_URL: str = "http://localhost:3001"
    REQUEST_TIMEOUT: float = 30.0
    CONNECT_TIMEOUT: float = 10.0

    # Client-side session
    STATE_DIR: Path | None = None
    TOKEN_COOKIE_DAYS: int = 7

    # Views
    ONLINE_THRESHOLD_MINUTES: int = 5
    REQUESTS_POLL_INTERVAL: float = 10.0
    COUNTDOWN_TICK_INTERVAL: float = 1.0
    SUCCESS_BANNER_SECONDS: float = 3.0
    ERROR_BANNER_SECONDS: float = 5.0

    # Logging
    LOG_LEVEL: str = "WARNING"

    @property
    def state_dir(self) -> Path:
        """Directory holding the session database, created on first use."""
        d = self.STATE_DIR or _config_dir()
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def session_db_path(self) -> Path:
        return self.state_dir / "session.db"


settings = Settings()
