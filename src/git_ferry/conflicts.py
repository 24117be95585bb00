"""Detection and keep-both resolution of files changed on both sides.

A conflict is a file with uncommitted local modifications that the remote
tracking branch has also changed since the last common commit. Resolution is
not a merge: one version is kept at the original path by comparing
modification times, and every divergent version is preserved beside it under a
timestamped backup name.
"""

import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from .constants import APP_NAME, LOCAL_MARKER, REMOTE_MARKER
from .fingerprint import fingerprint
from .git_wrapper import GitRepo
from .reporter import Reporter

logger = logging.getLogger(APP_NAME)


class ResolutionOutcome(str, Enum):
    """How a single conflicting file was reconciled."""

    IDENTICAL = "identical"
    LOCAL_NEWER = "local-newer"
    REMOTE_NEWER = "remote-newer"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ConflictDescriptor:
    """A locally modified file that the remote has also changed.

    Attributes:
        file (str): Path relative to the repository root.
        path (Path): Absolute path on disk.
        local_mtime_ms (float): Local modification time at detection.
        local_digest (str | None): Local content digest at detection.
    """

    file: str
    path: Path
    local_mtime_ms: float
    local_digest: str | None


@dataclass
class ConflictCheck:
    """Result of a conflict detection pass.

    Attributes:
        has_conflicts (bool): Whether any conflict was found.
        conflicts (list[ConflictDescriptor]): The conflicting files, in status order.
        error (str | None): Set when detection failed and the caller asked to
            be told (fail-closed mode).
    """

    has_conflicts: bool = False
    conflicts: list[ConflictDescriptor] = field(default_factory=list)
    error: str | None = None


@dataclass
class Resolution:
    """The decision taken for one conflicting file."""

    file: str
    outcome: ResolutionOutcome
    backup_paths: list[Path] = field(default_factory=list)
    reason: str = ""


def backup_timestamp(now: datetime | None = None) -> str:
    """Formats an ISO-8601 UTC timestamp that is safe to use in filenames.

    Example: ``2026-10-18T14-03-12-123Z``.
    """
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    iso = now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
    return iso.replace(":", "-").replace(".", "-")


def backup_path(path: Path, marker: str, stamp: str) -> Path:
    """Builds the backup name `<file>.<marker>.<stamp>` beside `path`."""
    return path.with_name(f"{path.name}.{marker}.{stamp}")


def _backup(path: Path, marker: str, stamp: str) -> Path | None:
    """Copies `path` to its backup name, returning None if the copy fails."""
    target = backup_path(path, marker, stamp)
    try:
        shutil.copy2(path, target)
    except OSError as e:
        logger.warning(f"Backup of {path} failed: {e}")
        return None
    return target


def detect_conflicts(
    repo: GitRepo, remote: str = "origin", fail_closed: bool = False
) -> ConflictCheck:
    """Finds locally modified files that the remote tracking branch also changed.

    The working tree is never modified. If nothing is modified locally, no
    network call is made. Any failure while fetching or diffing is reported as
    "no conflicts" so the pull can proceed, unless `fail_closed` is set, in
    which case the failure is returned in `ConflictCheck.error`.

    Args:
        repo (GitRepo): The repository to inspect.
        remote (str): The remote holding the tracking branch.
        fail_closed (bool): Report detection failures instead of ignoring them.

    Returns:
        ConflictCheck: The detected conflicts.
    """
    try:
        local_changes = repo.changed_files()
        if not local_changes:
            return ConflictCheck()

        branch = repo.current_branch()
        if not branch:
            raise RuntimeError("HEAD is detached")

        repo.fetch(remote)
        remote_changes = set(repo.diff_names(branch, f"{remote}/{branch}"))
    except Exception as e:
        if fail_closed:
            logger.warning(f"Conflict detection failed for {repo.name}: {e}")
            return ConflictCheck(error=str(e))
        logger.warning(
            f"Conflict detection failed for {repo.name}, assuming none: {e}"
        )
        return ConflictCheck()

    conflicts = []
    for file in local_changes:
        if file not in remote_changes:
            continue
        full_path = repo.path / file
        snapshot = fingerprint(full_path)
        conflicts.append(
            ConflictDescriptor(
                file=file,
                path=full_path,
                local_mtime_ms=snapshot.mtime_ms if snapshot else 0.0,
                local_digest=snapshot.digest if snapshot else None,
            )
        )

    return ConflictCheck(has_conflicts=bool(conflicts), conflicts=conflicts)


def _decide(
    conflict: ConflictDescriptor, local_backup: Path, stamp: str, reporter: Reporter
) -> Resolution:
    """Picks the surviving version of one file once the remote has been pulled."""
    snapshot = fingerprint(conflict.path)
    remote_mtime = snapshot.mtime_ms if snapshot else 0.0
    remote_digest = snapshot.digest if snapshot else None

    if conflict.local_mtime_ms > remote_mtime:
        backups = [local_backup]
        if snapshot and (remote_backup := _backup(conflict.path, REMOTE_MARKER, stamp)):
            backups.append(remote_backup)
        shutil.copy2(local_backup, conflict.path)
        reporter.log(
            f"  {conflict.file}: Local newer (kept local, backed up remote)", "warn"
        )
        return Resolution(conflict.file, ResolutionOutcome.LOCAL_NEWER, backups)

    if conflict.local_digest == remote_digest:
        local_backup.unlink(missing_ok=True)
        reporter.log(f"  {conflict.file}: Identical content (no conflict)")
        return Resolution(conflict.file, ResolutionOutcome.IDENTICAL)

    backups = [local_backup]
    if snapshot and (remote_backup := _backup(conflict.path, REMOTE_MARKER, stamp)):
        backups.append(remote_backup)
    reporter.log(
        f"  {conflict.file}: Remote newer (kept remote, backed up local)", "warn"
    )
    return Resolution(conflict.file, ResolutionOutcome.REMOTE_NEWER, backups)


def _restore_local_versions(repo: GitRepo, stashed: bool, reporter: Reporter) -> bool:
    """Puts the stashed conflicting files back after a failed pull.

    Returns:
        bool: True if the working tree holds the local versions again.
    """
    try:
        if repo.is_merging():
            repo.merge_abort()
        if stashed:
            repo.stash_pop()
    except Exception as e:
        reporter.log(
            f"  {repo.name}: Local versions kept in stash and backups "
            f"(could not re-apply: {e})",
            "warn",
        )
        return False
    return True


def resolve_conflicts(
    repo: GitRepo,
    conflicts: list[ConflictDescriptor],
    reporter: Reporter | None = None,
    now: datetime | None = None,
) -> list[Resolution]:
    """Keeps one version of each conflicting file and preserves the other.

    The pass runs in three steps, each visiting files in the given order:

    1. Every conflicting file is copied to `<file>.local.<stamp>`. A file whose
       copy fails is `skipped`.
    2. The index is reset to HEAD, the backed-up files are stashed together,
       leaving every other local change in the working tree, and the remote
       branch is pulled once. The stash is not popped; its content is what
       the local backups hold. If the stash or the pull fails, any merge is
       aborted, the stash is re-applied, the now redundant backups are
       removed and every backed-up file is `failed`.
    3. Each backed-up file is decided:
       a. local mtime newer than the pulled file: back up the remote version
          and restore the local one (`local-newer`);
       b. identical digests: keep the file and discard the local backup
          (`identical`);
       c. otherwise: keep the remote version and back it up too (`remote-newer`).
       The decided path is staged immediately.

    Args:
        repo (GitRepo): The repository being resolved.
        conflicts (list[ConflictDescriptor]): Output of `detect_conflicts`.
        reporter (Reporter | None): Destination for progress lines.
        now (datetime | None): Clock override for the backup timestamp.

    Returns:
        list[Resolution]: One entry per conflict, in input order.
    """
    reporter = reporter or Reporter()
    stamp = backup_timestamp(now)
    results: dict[str, Resolution] = {}
    backed_up: list[tuple[ConflictDescriptor, Path]] = []

    reporter.log(
        f"  {repo.name}: {len(conflicts)} potential conflict(s) detected", "warn"
    )

    for conflict in conflicts:
        local_backup = _backup(conflict.path, LOCAL_MARKER, stamp)
        if local_backup is None:
            reporter.log(f"  {conflict.file}: Skipping (backup failed)", "warn")
            results[conflict.file] = Resolution(
                conflict.file, ResolutionOutcome.SKIPPED, reason="backup failed"
            )
            continue
        backed_up.append((conflict, local_backup))

    if backed_up:
        stashed = False
        try:
            # A merge refuses to start while the index differs from HEAD.
            repo.reset_index()
            repo.stash_push(
                f"Auto-stash for conflict resolution {stamp}",
                paths=[conflict.file for conflict, _ in backed_up],
            )
            stashed = True
            repo.pull()
        except Exception as e:
            reporter.log(f"  {repo.name}: Could not pull remote version - {e}", "error")
            restored = _restore_local_versions(repo, stashed, reporter)
            for conflict, local_backup in backed_up:
                backups = [local_backup]
                if restored:
                    local_backup.unlink(missing_ok=True)
                    backups = []
                results[conflict.file] = Resolution(
                    conflict.file, ResolutionOutcome.FAILED, backups, str(e)
                )
            backed_up = []

    for conflict, local_backup in backed_up:
        try:
            resolution = _decide(conflict, local_backup, stamp, reporter)
            repo.add(conflict.file)
        except Exception as e:
            reporter.log(f"  {conflict.file}: Resolution failed - {e}", "error")
            resolution = Resolution(
                conflict.file, ResolutionOutcome.FAILED, [local_backup], str(e)
            )
        results[conflict.file] = resolution

    return [results[conflict.file] for conflict in conflicts]


def count_outcomes(resolutions: list[Resolution]) -> tuple[int, int, int]:
    """Tallies a resolution batch.

    Returns:
        tuple[int, int, int]: (resolved, skipped, failed).
    """
    skipped = sum(r.outcome is ResolutionOutcome.SKIPPED for r in resolutions)
    failed = sum(r.outcome is ResolutionOutcome.FAILED for r in resolutions)
    return len(resolutions) - skipped - failed, skipped, failed
