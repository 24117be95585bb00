"""Global constants and path definitions for Git Ferry.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, remote API endpoints, and the naming rules shared by the
synchronization engine.
"""

import os
from pathlib import Path

# --- Identity ---
APP_NAME = "git-ferry"
"""str: The human-readable application name (also the logger name)."""

USER_AGENT = "git-ferry"
"""str: The User-Agent header sent to the hosting API."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-ferry"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "sync.log"
"""Path: The file path for unattended sync logs."""

# --- Configuration Paths ---
_XDG_CONFIG = os.environ.get("XDG_CONFIG_HOME")
CONFIG_DIR: Path = (
    Path(_XDG_CONFIG) / "git-ferry" if _XDG_CONFIG else Path.home() / ".config/git-ferry"
)
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

# --- Remote Account ---
GITHUB_API_URL = "https://api.github.com"
"""str: Base URL of the hosting API."""

TOKEN_ENV_VARS = ("GIT_FERRY_TOKEN", "GITHUB_TOKEN")
"""tuple[str, ...]: Environment variables consulted (in order) for the API token."""

PAGE_SIZE = 100
"""int: Fixed page size for the remote repository listing."""

HTTP_TIMEOUT = 30.0
"""float: Seconds before an API or dashboard request is abandoned."""

# --- Dashboard ---
DEFAULT_DASHBOARD_URL = "http://localhost:3737"
"""str: Default address of the external progress dashboard."""

DASHBOARD_TASK_ID = "git-sync-bidirectional"
"""str: Task identifier registered with the dashboard."""

# --- Sync Logic ---
DEFAULT_COMMIT_MESSAGE = "Auto-sync: {date}"
"""str: Commit message template; `{date}` is replaced with the current date."""

DATE_TOKEN = "{date}"
"""str: The substitution token recognised in commit message templates."""

LOCAL_MARKER = "local"
"""str: Backup marker for the preserved local version of a conflicting file."""

REMOTE_MARKER = "remote"
"""str: Backup marker for the preserved remote version of a conflicting file."""

README_PREFIX = "readme."
"""str: Lower-cased filename prefix that marks a placeholder README."""

GIT_LOCK_FILES = [
    "MERGE_HEAD",
    "REBASE_HEAD",
    "CHERRY_PICK_HEAD",
    "BISECT_LOG",
    "rebase-merge",
    "rebase-apply",
    "index.lock",
]
"""
list[str]: Git internal files indicating an
active state (merge/rebase/lock) that blocks synchronization.
"""
