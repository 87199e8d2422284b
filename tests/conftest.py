"""Shared test fixtures."""

from __future__ import annotations

import pytest

from shellpane.config import AppConfig, HistoryConfig, LoggingConfig, ShellConfig, StorageConfig
from shellpane.services.navigation import ShellContext
from shellpane.storage.history import HistoryStore


@pytest.fixture
def app_config(tmp_path):
    """Create a test configuration."""
    return AppConfig(
        shell=ShellConfig(executable="/bin/sh", term="xterm-256color", read_size=4096),
        history=HistoryConfig(listing_limit=16),
        storage=StorageConfig(enabled=False, db_path=str(tmp_path / "test.db")),
        logging=LoggingConfig(level="DEBUG", file=str(tmp_path / "test.log")),
    )


@pytest.fixture
def workdir(tmp_path):
    """A directory with a few files and subdirectories."""
    root = tmp_path / "work"
    root.mkdir()
    for name in ("report.txt", "notes.md", "photo.png", ".hidden"):
        (root / name).write_text(name)
    (root / "docs").mkdir()
    (root / "src").mkdir()
    return root


@pytest.fixture
def context(workdir, tmp_path):
    return ShellContext(workdir, home=tmp_path)


@pytest.fixture
def history():
    return HistoryStore("stdout")


@pytest.fixture
def error_history():
    return HistoryStore("stderr")
