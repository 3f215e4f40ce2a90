"""Configuration management for bookshare.

Loads configuration from environment variables and provides defaults.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


def _default_database_url() -> str:
    path = Path.home() / ".bookshare" / "bookshare.db"
    return f"sqlite:///{path}"


@dataclass
class Config:
    """Application configuration."""

    # Database
    database_url: str
    lock_timeout: float  # seconds

    # Web
    secret_key: str

    # Transaction retry
    tx_retry_max: int
    tx_retry_delay: float  # seconds

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            database_url=os.environ.get("BOOKSHARE_DATABASE_URL", _default_database_url()),
            lock_timeout=float(os.environ.get("BOOKSHARE_LOCK_TIMEOUT", "5.0")),
            secret_key=os.environ.get("BOOKSHARE_SECRET_KEY", "bookshare-dev-secret"),
            tx_retry_max=int(os.environ.get("BOOKSHARE_TX_RETRY_MAX", "3")),
            tx_retry_delay=float(os.environ.get("BOOKSHARE_TX_RETRY_DELAY", "0.05")),
            log_level=os.environ.get("BOOKSHARE_LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.tx_retry_max < 1:
            errors.append("BOOKSHARE_TX_RETRY_MAX must be at least 1")
        if self.tx_retry_delay < 0:
            errors.append("BOOKSHARE_TX_RETRY_DELAY cannot be negative")
        if self.lock_timeout <= 0:
            errors.append("BOOKSHARE_LOCK_TIMEOUT must be positive")
        if not isinstance(logging.getLevelName(self.log_level), int):
            errors.append(f"Unknown log level: {self.log_level}")

        if self.is_sqlite_file:
            db_dir = self.sqlite_path.parent
            if not db_dir.exists():
                try:
                    db_dir.mkdir(parents=True, exist_ok=True)
                except PermissionError:
                    errors.append(f"Cannot create database directory: {db_dir}")

        return errors

    @property
    def is_sqlite_file(self) -> bool:
        """Check if the database is a file-backed SQLite database."""
        return self.database_url.startswith("sqlite:///") and not self.database_url.endswith(
            ":memory:"
        )

    @property
    def sqlite_path(self) -> Path:
        """Filesystem path of a file-backed SQLite database."""
        return Path(self.database_url[len("sqlite:///"):]).expanduser()


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
