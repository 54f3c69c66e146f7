"""
BacklogSync Configuration

Pydantic-backed configuration loaded from environment variables.
Uses BACKLOGSYNC_ prefix for all environment variables.
"""

import os
import threading
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Config(BaseModel):
    """
    Pydantic-backed configuration loaded from environment variables.

    Key env vars:
    - BACKLOGSYNC_DB_URL (preferred) or BACKLOGSYNC_DB_PATH for SQLite fallback.
    - BACKLOGSYNC_ENV (default: local)
    - BACKLOGSYNC_LOG_LEVEL (default: INFO)
    - BACKLOGSYNC_LOG_JSON (default: false)
    """

    # Database
    db_url: Optional[str] = Field(default=None)
    db_path: Path = Field(default=Path(".backlogsync.sqlite"))
    db_pool_size: int = Field(default=5)
    sqlite_timeout_seconds: float = Field(default=30.0)

    # Environment
    environment: str = Field(default="local")
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def is_postgres(self) -> bool:
        """Check if using PostgreSQL database."""
        return bool(self.db_url and self.db_url.startswith("postgres"))


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def load_config() -> Config:
    """
    Load BacklogSync configuration from environment.

    Environment variables use the BACKLOGSYNC_ prefix.
    """
    return Config(
        # Database
        db_url=os.environ.get("BACKLOGSYNC_DB_URL"),
        db_path=Path(os.environ.get("BACKLOGSYNC_DB_PATH", ".backlogsync.sqlite")).expanduser(),
        db_pool_size=int(os.environ.get("BACKLOGSYNC_DB_POOL_SIZE", "5")),
        sqlite_timeout_seconds=float(os.environ.get("BACKLOGSYNC_SQLITE_TIMEOUT_SECONDS", "30")),

        # Environment
        environment=os.environ.get("BACKLOGSYNC_ENV", "local"),
        log_level=os.environ.get("BACKLOGSYNC_LOG_LEVEL", "INFO"),
        log_json=_parse_bool(os.environ.get("BACKLOGSYNC_LOG_JSON")),
    )


# Singleton config instance (lazy loaded)
_config: Optional[Config] = None
_config_lock = threading.Lock()


def get_config() -> Config:
    """Get or create the singleton config instance."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = load_config()
    return _config


def _reset_config_for_tests() -> None:
    """Reset the global config cache (tests only)."""
    global _config
    with _config_lock:
        _config = None
