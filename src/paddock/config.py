"""Paths and user configuration for paddock."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)

# Configuration Constants
PADDOCK_HOME = Path(os.environ.get("PADDOCK_HOME", Path.home() / ".paddock"))
STORE_FILE = PADDOCK_HOME / "sessions.json"
DELETION_LOG = PADDOCK_HOME / "deletion.log"
CONFIG_FILE = PADDOCK_HOME / "config.json"
SOCKET_PATH = PADDOCK_HOME / "paddock.sock"

HOOK_DEBUG_DIR = Path(os.environ.get("TMPDIR", "/tmp").rstrip("/")) / "paddock_hook"

WRITE_DEBOUNCE_SECONDS = 0.1
CLEANUP_INTERVAL_SECONDS = 15.0
TTY_CACHE_TTL_SECONDS = 30.0
MAX_TTY_CACHE_SIZE = 100
DAEMON_TIMEOUT_SECONDS = 1.0

DEFAULT_CONFIG: dict[str, Any] = {
    # 0 = no timeout (sessions persist until their tty closes)
    "sessionTimeoutMinutes": 0,
}


def ensure_dir(path: Path) -> None:
    """Create *path* (user-only) if it does not exist yet."""
    path.mkdir(mode=0o700, parents=True, exist_ok=True)


def read_config(config_file: Path = CONFIG_FILE) -> dict[str, Any]:
    """Return the config merged over defaults. Missing or broken files yield defaults."""
    if not config_file.exists():
        return dict(DEFAULT_CONFIG)
    try:
        parsed = json.loads(config_file.read_text())
    except (OSError, ValueError):
        log.warning("Ignoring unreadable config file %s", config_file)
        return dict(DEFAULT_CONFIG)
    if not isinstance(parsed, dict):
        return dict(DEFAULT_CONFIG)
    return {**DEFAULT_CONFIG, **parsed}


def write_config(config: dict[str, Any], config_file: Path = CONFIG_FILE) -> None:
    ensure_dir(config_file.parent)
    config_file.write_text(json.dumps(config, indent=2) + "\n")
    os.chmod(config_file, 0o600)


def get_session_timeout_seconds(config_file: Path = CONFIG_FILE) -> float:
    """Session idle timeout in seconds; 0 disables the timeout check."""
    minutes = read_config(config_file).get("sessionTimeoutMinutes", 0)
    if not isinstance(minutes, (int, float)) or minutes <= 0:
        return 0
    return minutes * 60


def set_session_timeout(minutes: int, config_file: Path = CONFIG_FILE) -> None:
    if minutes < 0:
        raise ValueError("timeout must be a non-negative integer")
    config = read_config(config_file)
    config["sessionTimeoutMinutes"] = minutes
    write_config(config, config_file)
