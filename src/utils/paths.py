"""File path resolution using platformdirs.

The data directory holds the default SQLite database; the log directory
holds the optional log file. Both can be redirected with CIMEMORY_DATA_DIR
(useful for containers and tests):
  Linux: ~/.local/share/ci-memory/
  macOS: ~/Library/Application Support/ci-memory/
"""

import os
from pathlib import Path

import platformdirs

APP_NAME = "ci-memory"
DB_FILENAME = "ci_memory.db"


def get_data_dir() -> Path:
    """Return the directory for persistent data (the SQLite database)."""
    override = os.environ.get("CIMEMORY_DATA_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))


def get_log_dir() -> Path:
    """Return the directory for application log files."""
    override = os.environ.get("CIMEMORY_DATA_DIR", "").strip()
    if override:
        return Path(override).expanduser() / "logs"
    return Path(platformdirs.user_log_dir(APP_NAME, appauthor=False))


def get_default_db_path() -> Path:
    """Return the default SQLite database file path."""
    return get_data_dir() / DB_FILENAME


def ensure_dirs_exist() -> None:
    """Create all required directories if they don't exist."""
    for d in [get_data_dir(), get_log_dir()]:
        d.mkdir(parents=True, exist_ok=True)
