import os
from pathlib import Path

"""Global constants and path definitions for git-vault-sync.

This module defines the filesystem layout (adhering to XDG standards where
applicable), application identifiers, and the documented defaults of the
persisted settings record.
"""

# --- Identity ---
APP_NAME = "git-vault-sync"
"""str: The human-readable application name (also the logger name)."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-vault-sync"
"""Path: The directory for runtime state data (logs, settings record)."""

# Ensure state directory exists immediately upon module import.
STATE_DIR.mkdir(parents=True, exist_ok=True)

SETTINGS_FILE = STATE_DIR / "settings.json"
"""Path: The persisted settings record (configuration plus counters)."""

LOG_FILE = STATE_DIR / "watch.log"
"""Path: The file path for the watcher process logs."""

MAX_LOG_SIZE = 5 * 1024 * 1024
"""int: Max bytes for the log file before rotation."""

# --- Scheduling Defaults ---
DEFAULT_COMMIT_MESSAGE = "automated commit"
"""str: Message used for scheduled, startup and shutdown commits."""

DEFAULT_MAJOR_SAVE_THRESHOLD = 2
"""int: Number of edits that make up a major save."""

DEFAULT_MIN_COMMIT_INTERVAL = 20 * 60
"""int: Minimum seconds between two consecutive commit+push operations."""

DEFAULT_EXTENSIONS = ["md"]
"""list[str]: File extensions whose modification triggers the scheduler."""

DEFAULT_SHUTDOWN_GRACE = 10.0
"""float: Seconds the shutdown flush may take before teardown proceeds."""

DEFAULT_WATCH_DEBOUNCE = 1.6
"""float: Seconds file changes are grouped for before the watcher reports them."""

IGNORED_DIRS = {".git", ".obsidian", ".trash"}
"""set[str]: Directory names whose contents never trigger the scheduler."""
