"""
chatledger Configuration.

Centralized configuration management using Pydantic Settings.
Loads configuration from environment variables.
"""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def get_xdg_data_dir() -> str:
    """
    Get XDG-compliant data directory for chatledger.

    Follows XDG Base Directory Specification:
    - Uses $XDG_DATA_HOME/chatledger if XDG_DATA_HOME is set
    - Falls back to $HOME/.local/share/chatledger if not set
    - Returns relative path .chatledger if HOME not available (dev/testing)

    Returns:
        str: Path to data directory
    """
    xdg_data_home = os.getenv("XDG_DATA_HOME")
    if xdg_data_home:
        return str(Path(xdg_data_home) / "chatledger")

    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".local" / "share" / "chatledger")

    # Fallback for development/testing environments without HOME
    return ".chatledger"


def get_xdg_state_dir() -> str:
    """
    Get XDG-compliant state directory for chatledger logs.

    Returns:
        str: Path to state/logs directory
    """
    xdg_state_home = os.getenv("XDG_STATE_HOME")
    if xdg_state_home:
        return str(Path(xdg_state_home) / "chatledger" / "logs")

    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".local" / "state" / "chatledger" / "logs")

    return "./logs"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    db_path: str = f"{get_xdg_data_dir()}/chatledger.db"
    db_url: str = ""  # Full SQLAlchemy URL, overrides db_path when set
    db_echo: bool = False

    @property
    def database_url(self) -> str:
        """Resolve the SQLAlchemy database URL."""
        if self.db_url:
            return self.db_url
        return f"sqlite:///{Path(self.db_path).expanduser()}"

    # Storage engine
    storage_max_retries: int = 3  # Retries on transient lock contention
    storage_retry_backoff_seconds: float = 0.05

    # Harvest
    harvest_max_workers: int = 4  # Parallel adapter extraction threads
    harvest_allow_branching: bool = True  # False = divergent history is an error
    provider_modules: list[str] | str = []  # Optional additional adapter modules
    codex_sessions_dir: str = "~/.codex/sessions"
    json_export_dir: str = f"{get_xdg_data_dir()}/exports"

    # Sync
    sync_delta_page_size: int = 1000
    sync_subscriber_queue_size: int = 1000  # Events buffered per subscriber
    sync_heartbeat_seconds: float = 15.0
    sync_max_events_per_second: int = 200  # Per-subscriber push rate

    # API
    api_host: str = "127.0.0.1"
    api_port: int = 8787

    # Application
    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_dir: str = ""  # XDG-compliant log directory (defaults to XDG state dir if empty)
    log_format: str = "standard"  # standard or json
    log_console_enabled: bool = True
    log_file_enabled: bool = True
    log_max_bytes: int = 10_485_760  # 10MB per log file
    log_backup_count: int = 5

    @property
    def log_directory(self) -> Path:
        """Get the log directory path, using XDG default if not specified."""
        if self.log_dir:
            return Path(self.log_dir).expanduser()
        return Path(get_xdg_state_dir())


# Global settings instance
settings = Settings()
