"""Configuration management using TOML + environment variables."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import tomli_w

CONFIG_DIR = Path.home() / ".shellpane"
CONFIG_FILE = CONFIG_DIR / "config.toml"
LOG_FILE = CONFIG_DIR / "shellpane.log"


@dataclass
class ShellConfig:
    executable: str = "/bin/sh"
    term: str = "xterm-256color"
    read_size: int = 65536


@dataclass
class HistoryConfig:
    listing_limit: int = 16


@dataclass
class StorageConfig:
    enabled: bool = True
    db_path: str = "~/.shellpane/history.db"


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    file: str = "~/.shellpane/shellpane.log"


@dataclass
class AppConfig:
    shell: ShellConfig = field(default_factory=ShellConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def ensure_config_dir() -> None:
    """Create config directory with secure permissions."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    os.chmod(CONFIG_DIR, 0o700)


def load_config() -> AppConfig:
    """Load configuration from TOML file with env var overrides."""
    config = AppConfig()

    if CONFIG_FILE.exists():
        with open(CONFIG_FILE, "rb") as f:
            data = tomllib.load(f)

        shell = data.get("shell", {})
        config.shell.executable = shell.get("executable", config.shell.executable)
        config.shell.term = shell.get("term", config.shell.term)
        config.shell.read_size = shell.get("read_size", config.shell.read_size)

        history = data.get("history", {})
        config.history.listing_limit = history.get("listing_limit", config.history.listing_limit)

        storage = data.get("storage", {})
        config.storage.enabled = storage.get("enabled", config.storage.enabled)
        config.storage.db_path = storage.get("db_path", config.storage.db_path)

        logging_cfg = data.get("logging", {})
        config.logging.level = logging_cfg.get("level", config.logging.level)
        config.logging.file = logging_cfg.get("file", config.logging.file)

    # Environment variable overrides
    if env_shell := os.environ.get("SHELLPANE_SHELL"):
        config.shell.executable = env_shell
    if env_term := os.environ.get("SHELLPANE_TERM"):
        config.shell.term = env_term
    if env_limit := os.environ.get("SHELLPANE_HISTORY_LIMIT"):
        config.history.listing_limit = int(env_limit)
    if env_storage := os.environ.get("SHELLPANE_STORAGE"):
        config.storage.enabled = env_storage.lower() in ("true", "1", "yes")
    if env_db := os.environ.get("SHELLPANE_DB_PATH"):
        config.storage.db_path = env_db
    if env_log_level := os.environ.get("SHELLPANE_LOG_LEVEL"):
        config.logging.level = env_log_level

    return config


def save_config(config: AppConfig) -> None:
    """Save configuration to TOML file."""
    ensure_config_dir()

    data = {
        "shell": {
            "executable": config.shell.executable,
            "term": config.shell.term,
            "read_size": config.shell.read_size,
        },
        "history": {
            "listing_limit": config.history.listing_limit,
        },
        "storage": {
            "enabled": config.storage.enabled,
            "db_path": config.storage.db_path,
        },
        "logging": {
            "level": config.logging.level,
            "file": config.logging.file,
        },
    }

    with open(CONFIG_FILE, "wb") as f:
        tomli_w.dump(data, f)

    os.chmod(CONFIG_FILE, 0o600)


# Global singleton
_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get or load the global config singleton."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Reset the global config (for testing)."""
    global _config
    _config = None
