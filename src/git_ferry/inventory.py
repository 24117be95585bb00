"""Local repository discovery, empty-repository classification and cloning."""

import logging
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME, README_PREFIX
from .git_wrapper import GitRepo
from .reporter import Reporter

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class RemoteRepo:
    """A repository listed by the remote account.

    Attributes:
        name (str): Repository name as hosted.
        clone_url (str): URL used to clone it.
        full_name (str): `owner/name`, when the listing provides it.
    """

    name: str
    clone_url: str
    full_name: str = ""

    @property
    def owner(self) -> str:
        """The owning account, derived from `full_name`."""
        return self.full_name.split("/", 1)[0] if "/" in self.full_name else ""


@dataclass
class RepositoryRecord:
    """One repository as seen from either or both sides.

    Attributes:
        name (str): Display name; identity is `name.lower()`.
        local_path (Path | None): The local working copy, if any.
        remote (RemoteRepo | None): The hosted repository, if any.
    """

    name: str
    local_path: Path | None = None
    remote: RemoteRepo | None = None

    @property
    def key(self) -> str:
        return self.name.lower()

    @property
    def is_paired(self) -> bool:
        return self.local_path is not None and self.remote is not None

    @property
    def is_push_candidate(self) -> bool:
        return self.local_path is not None and self.remote is None

    @property
    def is_clone_candidate(self) -> bool:
        return self.local_path is None and self.remote is not None


def build_records(
    remote_repos: list[RemoteRepo], local_repos: dict[str, Path]
) -> list[RepositoryRecord]:
    """Pairs the remote and local inventories by case-insensitive name.

    Remote repositories come first, in listing order, followed by the
    local-only repositories in scan order.
    """
    records: dict[str, RepositoryRecord] = {}
    for remote in remote_repos:
        record = RepositoryRecord(name=remote.name, remote=remote)
        record.local_path = local_repos.get(record.key)
        records.setdefault(record.key, record)
    for key, path in local_repos.items():
        if key not in records:
            records[key] = RepositoryRecord(name=path.name, local_path=path)
    return list(records.values())


def find_local_repos(
    search_dirs: list[Path], exclude: list[str], reporter: Reporter | None = None
) -> dict[str, Path]:
    """Scans the direct children of each search root for git working copies.

    Args:
        search_dirs (list[Path]): Roots to scan, in priority order.
        exclude (list[str]): Directory names to skip.
        reporter (Reporter | None): Destination for progress lines.

    Returns:
        dict[str, Path]: Repository paths keyed by lower-cased directory name.
            When two roots hold the same name, the first root wins.
    """
    reporter = reporter or Reporter()
    excluded = set(exclude)
    repos: dict[str, Path] = {}

    for root in search_dirs:
        reporter.log(f"Scanning {root} for local repos...")
        try:
            entries = sorted(root.iterdir())
        except OSError as e:
            reporter.log(f"  Error scanning {root}: {e}", "warn")
            continue

        for entry in entries:
            if entry.name in excluded:
                continue
            try:
                if entry.is_dir() and (entry / ".git").is_dir():
                    repos.setdefault(entry.name.lower(), entry)
            except OSError as e:
                logger.debug(f"Skipping unreadable entry {entry}: {e}")

    return repos


def classify_empty(commit_count: int, tree_names: list[str]) -> bool:
    """Decides whether a repository holds nothing worth keeping.

    A repository is empty when it has no commits, or a single commit whose tree
    contains exactly one file named like `README.*`.
    """
    if commit_count == 0:
        return True
    return (
        commit_count == 1
        and len(tree_names) == 1
        and tree_names[0].lower().startswith(README_PREFIX)
    )


def is_repo_empty(repo_path: Path) -> bool:
    """Applies `classify_empty` to a working copy. Any git error yields False."""
    try:
        repo = GitRepo(repo_path)
        count = repo.commit_count()
        names = repo.list_tree("HEAD") if count == 1 else []
        return classify_empty(count, names)
    except Exception as e:
        logger.debug(f"Empty check failed for {repo_path}: {e}")
        return False


# --- Clone outcomes ---


@dataclass(frozen=True)
class Cloned:
    path: Path


@dataclass(frozen=True)
class CloneSkipped:
    """Dry run: the clone was only reported."""

    path: Path


@dataclass(frozen=True)
class CloneFailed:
    reason: str


CloneOutcome = Cloned | CloneSkipped | CloneFailed


def clone_repo(
    remote: RemoteRepo,
    target: Path,
    reporter: Reporter | None = None,
    dry_run: bool = False,
) -> CloneOutcome:
    """Clones a remote-only repository. Never raises.

    Args:
        remote (RemoteRepo): The repository to clone.
        target (Path): Destination directory.
        reporter (Reporter | None): Destination for progress lines.
        dry_run (bool): Report the clone without running it.

    Returns:
        CloneOutcome: `Cloned`, `CloneSkipped` or `CloneFailed`.
    """
    reporter = reporter or Reporter()

    if dry_run:
        reporter.log(f"  [DRY RUN] Would clone {remote.name} into {target}")
        return CloneSkipped(target)

    if target.exists():
        reporter.log(f"  {remote.name}: Clone failed - {target} already exists", "error")
        return CloneFailed(f"{target} already exists")

    reporter.log(f"  Cloning {remote.name}...")
    try:
        GitRepo.clone(remote.clone_url, target)
    except Exception as e:
        reporter.log(f"  {remote.name}: Clone failed - {e}", "error")
        return CloneFailed(str(e))

    reporter.log(f"  {remote.name}: Cloned successfully", "success")
    return Cloned(target)
