import logging
import os
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DASHBOARD_TASK_ID,
    DEFAULT_COMMIT_MESSAGE,
    DEFAULT_DASHBOARD_URL,
    TOKEN_ENV_VARS,
)

logger = logging.getLogger(APP_NAME)


class ConfigError(Exception):
    """Raised when the configuration cannot support a sync run."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("; ".join(problems))


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def _string_list(value: Any) -> list[str]:
    """Accepts a single string or a list of strings."""
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ValueError(f"Expected a string or list of strings, got {value!r}")


@dataclass
class AccountConfig:
    """Remote account identity.

    Attributes:
        username (str): The account whose repositories are synchronized.
        token (str): The API credential. Environment variables take precedence.
    """

    username: str = ""
    token: str = ""


@dataclass
class ScanConfig:
    """Local inventory settings.

    Attributes:
        search_dirs (list[str]): Roots whose direct children are candidate repos.
            The first root also receives new clones.
        exclude (list[str]): Directory names skipped during the scan.
    """

    search_dirs: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)


@dataclass
class SyncConfig:
    """Synchronization behaviour.

    Attributes:
        commit_message (str): Template for auto-commits; `{date}` is substituted.
        delete_empty_repos (bool): Whether empty repositories are retired.
        dry_run (bool): Report destructive operations instead of running them.
        remote_name (str): The git remote paired with the hosting account.
    """

    commit_message: str = DEFAULT_COMMIT_MESSAGE
    delete_empty_repos: bool = False
    dry_run: bool = False
    remote_name: str = "origin"


@dataclass
class DashboardConfig:
    """External progress dashboard.

    Attributes:
        enabled (bool): Whether progress is posted to the dashboard.
        url (str): Base URL of the dashboard process.
        task_id (str): Task identifier used for this run.
    """

    enabled: bool = False
    url: str = DEFAULT_DASHBOARD_URL
    task_id: str = DASHBOARD_TASK_ID


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class Config:
    """Global configuration aggregator.

    Loaded once before a run and treated as read-only afterwards.

    Attributes:
        account (AccountConfig): Remote identity and credential.
        scan (ScanConfig): Local inventory settings.
        sync (SyncConfig): Sync behaviour.
        dashboard (DashboardConfig): Progress dashboard settings.
        limits (LimitsConfig): Resource limits.
    """

    account: AccountConfig = field(default_factory=AccountConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Loads configuration from defaults, the TOML file, and the environment.

        Args:
            path (Path | None): An explicit config file. Defaults to CONFIG_FILE.

        Returns:
            Config: The merged configuration object.
        """
        instance = cls()
        config_path = path or CONFIG_FILE
        if config_path.exists():
            instance._merge_from_file(config_path)
        elif path is not None:
            logger.warning(f"Config file not found: {config_path}")

        for var in TOKEN_ENV_VARS:
            if token := os.environ.get(var):
                instance.account.token = token
                break

        return instance

    @property
    def search_paths(self) -> list[Path]:
        """The configured search roots with `~` expanded."""
        return [Path(d).expanduser() for d in self.scan.search_dirs]

    def validate(self) -> list[str]:
        """Lists the problems that make a sync run impossible.

        Returns:
            list[str]: Human-readable problems; empty when the config is usable.
        """
        problems = []
        if not self.account.token:
            problems.append("GitHub token not configured")
        if not self.account.username:
            problems.append("GitHub username not configured")
        if not self.scan.search_dirs:
            problems.append("No search directories configured")
        return problems

    def require_valid(self) -> None:
        """Raises ConfigError if `validate` reports any problem."""
        if problems := self.validate():
            raise ConfigError(problems)

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if not data:
                return

            if "account" in data:
                self.account = self._update_dataclass(
                    "account", self.account, data["account"]
                )
            if "scan" in data:
                self.scan = self._update_dataclass("scan", self.scan, data["scan"])
            if "sync" in data:
                self.sync = self._update_dataclass("sync", self.sync, data["sync"])
            if "dashboard" in data:
                self.dashboard = self._update_dataclass(
                    "dashboard", self.dashboard, data["dashboard"]
                )
            if "limits" in data:
                self.limits = self._update_dataclass(
                    "limits", self.limits, data["limits"]
                )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k in ["search_dirs", "exclude"]:
                    filtered_updates[k] = _string_list(v)
                elif k in ["delete_empty_repos", "dry_run", "enabled"]:
                    if not isinstance(v, bool):
                        raise ValueError(f"Expected true or false, got {v!r}")
                    filtered_updates[k] = v
                else:
                    filtered_updates[k] = str(v)
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
