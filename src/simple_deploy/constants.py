import os
from pathlib import Path

"""Global constants and path definitions for Simple Deploy.

This module defines the filesystem layout (adhering to XDG standards where applicable),
the application identifier, and the default timing, exclusion and maintenance values
used by the scheduler and its collaborators.
"""

# --- Identity ---
APP_NAME = "simple-deploy"
"""str: The human-readable application name, also used as the logger name."""

# --- Scheduling ---
DELAY_BEFORE_SYNC = 0.05
"""float: Seconds of quiet required before a mirror runs (sync debounce window)."""

DELAY_BEFORE_MAINTENANCE = 0.2
"""float: Seconds of quiet after a mirror before maintenance runs."""

# --- Mirror ---
RSYNC_FLAGS = "av"
"""str: Short flags passed to rsync (archive, verbose)."""

DEFAULT_EXCLUDES = [
    "node_modules/",
    ".git/",
]
"""list[str]: Source subtrees that are never mirrored to the target."""

# --- Maintenance ---
MAINTENANCE_COMMAND = "npm"
"""str: The package manager executable run in the target directory."""

MAINTENANCE_STEPS = [
    "update",
    "prune",
]
"""list[str]: The maintenance steps, run in order after every successful mirror."""

WATCHED_EVENTS = frozenset({"created", "modified", "deleted", "moved"})
"""frozenset[str]: Filesystem event kinds that trigger a sync."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "simple-deploy"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "daemon.log"
"""Path: The file path for the daemon process logs."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/simple-deploy"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global configuration file path."""

LOCAL_CONFIG_NAME = "simple-deploy.toml"
"""str: Per-project configuration file looked up in the source directory."""

PYPROJECT_SECTION = "tool.simple-deploy"
"""str: The pyproject.toml table used when no local configuration file exists."""
