"""Whole-account synchronization: inventory, pull-or-clone, push-or-retire.

Repositories are processed strictly one at a time. Every git command for one
repository finishes before the next repository is touched, so no two git
processes ever share a working tree.
"""

import logging
from dataclasses import dataclass

from .config import Config, ConfigError
from .constants import APP_NAME
from .github import GitHubClient, GitHubError
from .inventory import (
    Cloned,
    CloneFailed,
    RepositoryRecord,
    build_records,
    clone_repo,
    find_local_repos,
    is_repo_empty,
)
from .ops import NoChanges, Pulled, Pushed, UpToDate, safe_pull, safe_push
from .reporter import DashboardReporter, Reporter

logger = logging.getLogger(APP_NAME)


class SyncError(Exception):
    """Raised when a run has to stop before reconciling any repository."""


@dataclass
class SyncCounters:
    """Aggregated results of one run."""

    pulled: int = 0
    pushed: int = 0
    cloned: int = 0
    empty_deleted: int = 0
    up_to_date: int = 0
    failed: int = 0
    conflicts_resolved: int = 0
    total: int = 0

    def summary(self) -> str:
        """Renders the completion summary shown to the user and the dashboard."""
        return "\n".join(
            [
                "Conflict-Safe Sync Complete!",
                f"- Pulled updates: {self.pulled} repos",
                f"- Pushed changes: {self.pushed} repos",
                f"- Cloned new repos: {self.cloned} repos",
                f"- Conflicts resolved: {self.conflicts_resolved} files",
                f"- Deleted empty: {self.empty_deleted} repos",
                f"- Up to date: {self.up_to_date} repos",
                f"- Failed: {self.failed} operations",
                f"- Total processed: {self.total} repos",
            ]
        )


# --- Retire outcomes ---


@dataclass(frozen=True)
class Retired:
    """The hosted copy was deleted."""


@dataclass(frozen=True)
class RetireSkipped:
    reason: str


@dataclass(frozen=True)
class RetireFailed:
    reason: str


RetireOutcome = Retired | RetireSkipped | RetireFailed


class SyncOrchestrator:
    """Drives a full sync run for one account.

    Attributes:
        config (Config): Read-only run configuration.
        client (GitHubClient): Remote account client.
        reporter (Reporter): Progress and log destination.
        counters (SyncCounters): Results of the current run.
    """

    def __init__(
        self,
        config: Config,
        client: GitHubClient | None = None,
        reporter: Reporter | None = None,
    ):
        self.config = config
        self.client = client or GitHubClient(config.account.token)
        self.reporter = reporter or Reporter()
        self.counters = SyncCounters()
        self._progress = 0

    def _advance(self) -> None:
        self._progress += 1
        self.reporter.progress(self._progress, self.counters.total)

    def run(self) -> SyncCounters:
        """Runs the four phases and returns the counters.

        Raises:
            ConfigError: If the configuration is unusable. Nothing is touched.
            SyncError: If the remote inventory cannot be fetched.
        """
        self.counters = SyncCounters()
        self._progress = 0
        dry_run = self.config.sync.dry_run

        self.reporter.start(
            "Git Bi-Directional Sync (Conflict Safe)",
            "Syncs repos with conflict detection and resolution (keeps both versions)",
        )

        try:
            self.config.require_valid()
        except ConfigError as e:
            self.reporter.fail(str(e))
            raise

        self.reporter.log(
            "Starting Conflict-Safe Bi-Directional Git Sync"
            + (" [DRY RUN]" if dry_run else "")
        )

        # Phase 1: Remote inventory.
        self.reporter.log("Phase 1: Fetching repos from GitHub...")
        try:
            remote_repos = self.client.list_repos(self.config.account.username)
        except GitHubError as e:
            self.reporter.fail(str(e))
            raise SyncError(f"Could not list remote repositories: {e}") from e
        self.reporter.log(f"  Found {len(remote_repos)} repos on GitHub")

        # Phase 2: Local inventory.
        self.reporter.log("Phase 2: Scanning local directories...")
        local_repos = find_local_repos(
            self.config.search_paths, self.config.scan.exclude, self.reporter
        )
        self.reporter.log(f"  Found {len(local_repos)} local repos")

        records = build_records(remote_repos, local_repos)
        self.counters.total = len(records)

        # Phase 3: Pull paired repos, clone remote-only ones.
        self.reporter.log("Phase 3: Pulling updates from GitHub (with conflict detection)...")
        for record in records:
            if record.remote is None:
                continue
            self._advance()
            if record.is_paired:
                self._pull(record)
            else:
                self._clone(record)

        # Phase 4: Push or retire local-only repos.
        self.reporter.log("Phase 4: Pushing local changes (with conflict detection)...")
        for record in records:
            if not record.is_push_candidate:
                continue
            self._advance()
            if self.config.sync.delete_empty_repos and is_repo_empty(record.local_path):
                self._retire(record)
            else:
                self._push(record)

        summary = self.counters.summary()
        self.reporter.log(summary, "success")
        self.reporter.complete(summary)
        return self.counters

    def _pull(self, record: RepositoryRecord) -> None:
        result = safe_pull(
            record.local_path, self.reporter, self.config.sync.remote_name
        )
        if isinstance(result, Pulled):
            self.counters.pulled += 1
            self.counters.conflicts_resolved += result.resolved
        elif isinstance(result, UpToDate):
            self.counters.up_to_date += 1
        else:
            self.counters.failed += 1

    def _clone(self, record: RepositoryRecord) -> None:
        target = self.config.search_paths[0] / record.remote.name
        result = clone_repo(
            record.remote, target, self.reporter, dry_run=self.config.sync.dry_run
        )
        if isinstance(result, Cloned):
            self.counters.cloned += 1
        elif isinstance(result, CloneFailed):
            self.counters.failed += 1

    def _push(self, record: RepositoryRecord) -> None:
        result = safe_push(
            record.local_path,
            self.config.sync.commit_message,
            self.reporter,
            self.config.sync.remote_name,
        )
        if isinstance(result, Pushed):
            self.counters.pushed += 1
        elif isinstance(result, NoChanges):
            self.counters.up_to_date += 1
        else:
            self.counters.failed += 1

    def _retire(self, record: RepositoryRecord) -> None:
        result = self.retire(record)
        if isinstance(result, Retired):
            self.counters.empty_deleted += 1
        elif isinstance(result, RetireFailed):
            self.counters.failed += 1

    def retire(self, record: RepositoryRecord) -> RetireOutcome:
        """Deletes the hosted copy of an empty repository. Never raises.

        The local working copy is never removed automatically; its path is
        reported for manual deletion. Under dry run nothing is deleted.
        """
        owner = self.config.account.username
        self.reporter.log(f"  {record.name}: Detected as empty")

        if self.config.sync.dry_run:
            self.reporter.log(f"  [DRY RUN] Would delete local repo: {record.local_path}")
            self.reporter.log(f"  [DRY RUN] Would delete empty GitHub repo: {record.name}")
            return RetireSkipped("dry run")

        self.reporter.log(
            f"  Local repo left in place: {record.local_path} (manual deletion required)",
            "warn",
        )
        try:
            self.client.delete_repo(owner, record.name)
        except GitHubError as e:
            self.reporter.log(f"  Failed to delete {record.name}: {e}", "error")
            return RetireFailed(str(e))

        self.reporter.log(f"  Deleted empty GitHub repo: {record.name}", "success")
        return Retired()


def make_reporter(config: Config) -> Reporter:
    """Builds the reporter selected by the dashboard settings."""
    if config.dashboard.enabled:
        return DashboardReporter(config.dashboard.url, config.dashboard.task_id)
    return Reporter()


def run_sync(
    config: Config,
    client: GitHubClient | None = None,
    reporter: Reporter | None = None,
) -> SyncCounters:
    """Runs one full sync with the given (or default) collaborators."""
    orchestrator = SyncOrchestrator(config, client, reporter or make_reporter(config))
    return orchestrator.run()
