import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .conflicts import count_outcomes, detect_conflicts, resolve_conflicts
from .constants import APP_NAME, DATE_TOKEN, GIT_LOCK_FILES
from .git_wrapper import EMPTY_TREE, GitRepo
from .reporter import Reporter

logger = logging.getLogger(APP_NAME)


# --- Pull outcomes ---


@dataclass(frozen=True)
class Pulled:
    """The remote was integrated.

    Attributes:
        files (int): Files changed by the pull.
        conflicts (int): Conflicting files found before pulling.
        resolved (int): Conflicts decided (identical, local-newer or remote-newer).
        skipped (int): Conflicts left alone because their backup failed.
        failed (int): Conflicts whose resolution raised.
    """

    files: int = 0
    conflicts: int = 0
    resolved: int = 0
    skipped: int = 0
    failed: int = 0


@dataclass(frozen=True)
class UpToDate:
    """The local branch already contained the remote."""


@dataclass(frozen=True)
class PullFailed:
    """The pull could not be completed."""

    reason: str


PullOutcome = Pulled | UpToDate | PullFailed


# --- Push outcomes ---


@dataclass(frozen=True)
class Pushed:
    """Local changes were committed and pushed.

    Attributes:
        files (int): Files included in the auto-commit.
        retried (bool): Whether the first push was rejected and retried.
    """

    files: int = 0
    retried: bool = False


@dataclass(frozen=True)
class NoChanges:
    """The working tree was clean; nothing was pushed."""


@dataclass(frozen=True)
class PushFailed:
    """The push could not be completed.

    Attributes:
        reason (str): What went wrong.
        pull (PullOutcome | None): The pull attempted on the way, if any.
    """

    reason: str
    pull: PullOutcome | None = None


PushOutcome = Pushed | NoChanges | PushFailed


def is_repo_busy(repo_path: Path) -> bool:
    """Determines if a repository is mid-merge, mid-rebase or locked.

    Args:
        repo_path (Path): The path to the repository.

    Returns:
        bool: True if git reports an operation in progress.
    """
    git_dir = repo_path / ".git"
    return any((git_dir / f).exists() for f in GIT_LOCK_FILES)


def render_commit_message(template: str, now: datetime | None = None) -> str:
    """Substitutes the current date for `{date}` in a commit message template."""
    date = (now or datetime.now()).strftime("%Y-%m-%d")
    return template.replace(DATE_TOKEN, date)


def _count_pulled_files(repo: GitRepo, before: str | None) -> int | None:
    """Counts files changed between `before` and the new HEAD.

    Returns:
        int | None: The count, or None if HEAD did not move.
    """
    after = repo.rev_parse("HEAD")
    if after is None or after == before:
        return None
    return len(repo.diff_names(before or EMPTY_TREE, after, since_fork=False))


def _pull_with_stash(repo: GitRepo, dirty: bool, reporter: Reporter) -> None:
    """Pulls, parking uncommitted changes in a stash for the duration.

    The stash is re-applied afterwards, whether or not the pull succeeded. If
    re-applying fails the stash entry is kept and a warning is reported.
    """
    if dirty:
        reporter.log(
            f"  {repo.name}: Uncommitted changes, stashing before pull", "warn"
        )
        repo.stash_push("Auto-stash before pull")

    try:
        repo.pull()
    except RuntimeError:
        if repo.is_merging():
            repo.merge_abort()
        raise
    finally:
        if dirty:
            try:
                repo.stash_pop()
            except RuntimeError as e:
                reporter.log(
                    f"  {repo.name}: Local changes kept in stash (could not re-apply: {e})",
                    "warn",
                )


def safe_pull(
    repo_path: Path,
    reporter: Reporter | None = None,
    remote: str = "origin",
    fail_closed: bool = False,
) -> PullOutcome:
    """Pulls remote changes without losing uncommitted local work.

    Conflicting files are resolved with the keep-both policy of
    `conflicts.resolve_conflicts`. Other uncommitted changes are stashed around
    the pull. This function never raises.

    Args:
        repo_path (Path): The working copy to update.
        reporter (Reporter | None): Destination for progress lines.
        remote (str): The remote holding the tracking branch.
        fail_closed (bool): Treat a conflict-detection failure as a pull failure.

    Returns:
        PullOutcome: `Pulled`, `UpToDate` or `PullFailed`.
    """
    reporter = reporter or Reporter()
    name = repo_path.name

    try:
        if is_repo_busy(repo_path):
            raise RuntimeError("repository busy (merge, rebase or lock in progress)")

        repo = GitRepo(repo_path)
        before = repo.rev_parse("HEAD")
        dirty = bool(repo.changed_files())

        check = detect_conflicts(repo, remote, fail_closed=fail_closed)
        if check.error is not None:
            raise RuntimeError(f"conflict detection failed: {check.error}")

        if check.has_conflicts:
            reporter.log(f"  {name}: Conflict detection triggered")
            resolutions = resolve_conflicts(repo, check.conflicts, reporter)
            resolved, skipped, failed = count_outcomes(resolutions)

            if failed:
                reporter.log(
                    f"  {name}: {failed} conflict(s) failed, "
                    f"{skipped} skipped, {resolved} resolved",
                    "warn",
                )
            if not resolved and not skipped:
                return PullFailed(f"all {failed} conflict(s) failed to resolve")

            return Pulled(
                files=_count_pulled_files(repo, before) or 0,
                conflicts=len(check.conflicts),
                resolved=resolved,
                skipped=skipped,
                failed=failed,
            )

        _pull_with_stash(repo, dirty, reporter)

        files = _count_pulled_files(repo, before)
        if files is None:
            reporter.log(f"  {name}: Already up to date")
            return UpToDate()

        reporter.log(f"  {name}: Pulled {files} file(s)", "success")
        return Pulled(files=files)

    except Exception as e:
        reporter.log(f"  {name}: Pull failed - {e}", "error")
        return PullFailed(str(e))


def safe_push(
    repo_path: Path,
    commit_message: str,
    reporter: Reporter | None = None,
    remote: str = "origin",
    now: datetime | None = None,
) -> PushOutcome:
    """Commits every local change and pushes it, pulling first when needed.

    If the remote branch moved, `safe_pull` runs before committing. A rejected
    push triggers one more `safe_pull` and exactly one retry. This function
    never raises.

    Args:
        repo_path (Path): The working copy to publish.
        commit_message (str): Commit message template (`{date}` is substituted).
        reporter (Reporter | None): Destination for progress lines.
        remote (str): The remote to push to.
        now (datetime | None): Clock override for the commit message date.

    Returns:
        PushOutcome: `Pushed`, `NoChanges` or `PushFailed`.
    """
    reporter = reporter or Reporter()
    name = repo_path.name

    try:
        if is_repo_busy(repo_path):
            raise RuntimeError("repository busy (merge, rebase or lock in progress)")

        repo = GitRepo(repo_path)
        changes = repo.changed_files()
        if not changes:
            reporter.log(f"  {name}: No changes to push")
            return NoChanges()

        reporter.log(f"  {name}: {len(changes)} file(s) changed")

        branch = repo.current_branch()
        if not branch:
            raise RuntimeError("HEAD is detached")

        # 1. Bring in remote commits before committing on top of them.
        repo.fetch(remote)
        upstream = repo.rev_parse(f"{remote}/{branch}")
        if upstream is not None and upstream != repo.rev_parse("HEAD"):
            reporter.log(f"  {name}: Remote has new commits, pulling first...")
            pull = safe_pull(repo_path, reporter, remote)
            if isinstance(pull, PullFailed):
                reporter.log(f"  {name}: Push skipped (pull failed)", "error")
                return PushFailed("pull failed before push", pull)

        # 2. Commit.
        repo.add_all()
        repo.commit(render_commit_message(commit_message, now))

        # 3. Push, retrying once after a rejection.
        push_args = {"remote": remote, "branch": branch, "set_upstream": upstream is None}
        try:
            repo.push(**push_args)
        except RuntimeError as e:
            reporter.log(f"  {name}: Push rejected, retrying with pull... ({e})", "warn")
            pull = safe_pull(repo_path, reporter, remote)
            if isinstance(pull, PullFailed):
                reporter.log(f"  {name}: Push failed - rejected and pull failed", "error")
                return PushFailed("push rejected and pull failed", pull)

            repo.push(**push_args)
            reporter.log(f"  {name}: Pushed after conflict resolution", "success")
            return Pushed(files=len(changes), retried=True)

        reporter.log(f"  {name}: Committed and pushed", "success")
        return Pushed(files=len(changes))

    except Exception as e:
        reporter.log(f"  {name}: Push failed - {e}", "error")
        return PushFailed(str(e))
