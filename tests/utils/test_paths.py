"""Tests for data and log path resolution."""

from pathlib import Path

from src.utils.paths import (
    DB_FILENAME,
    ensure_dirs_exist,
    get_data_dir,
    get_default_db_path,
    get_log_dir,
)


def test_get_data_dir_returns_path(monkeypatch):
    """Data dir should be a valid Path."""
    monkeypatch.delenv("CIMEMORY_DATA_DIR", raising=False)
    result = get_data_dir()
    assert isinstance(result, Path)
    assert "ci-memory" in str(result)


def test_data_dir_env_override(monkeypatch, tmp_path):
    """CIMEMORY_DATA_DIR redirects data and logs."""
    monkeypatch.setenv("CIMEMORY_DATA_DIR", str(tmp_path))
    assert get_data_dir() == tmp_path
    assert get_log_dir() == tmp_path / "logs"


def test_get_default_db_path(monkeypatch, tmp_path):
    """Default DB path combines data dir + ci_memory.db."""
    monkeypatch.setenv("CIMEMORY_DATA_DIR", str(tmp_path))
    result = get_default_db_path()
    assert result.name == DB_FILENAME == "ci_memory.db"
    assert result.parent == tmp_path


def test_get_log_dir(monkeypatch):
    """Log dir returns a valid path."""
    monkeypatch.delenv("CIMEMORY_DATA_DIR", raising=False)
    assert isinstance(get_log_dir(), Path)


def test_ensure_dirs_exist(monkeypatch, tmp_path):
    data_dir = tmp_path / "data"
    monkeypatch.setenv("CIMEMORY_DATA_DIR", str(data_dir))
    ensure_dirs_exist()
    assert data_dir.is_dir()
    assert (data_dir / "logs").is_dir()
