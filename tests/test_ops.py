import os
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

from conftest import git, publish

from git_ferry import ops
from git_ferry.conflicts import ConflictCheck


def test_render_commit_message_replaces_every_token() -> None:
    """Verifies that all `{date}` tokens are substituted."""
    now = datetime(2026, 10, 18, 9, 30)
    assert ops.render_commit_message("Auto-sync: {date}", now) == "Auto-sync: 2026-10-18"
    assert ops.render_commit_message("{date}/{date}", now) == "2026-10-18/2026-10-18"
    assert ops.render_commit_message("no token", now) == "no token"


def test_is_repo_busy_detects_merge(tmp_path: Path) -> None:
    """Verifies that an in-progress merge marks the repository busy."""
    (tmp_path / ".git").mkdir()
    assert not ops.is_repo_busy(tmp_path)

    (tmp_path / ".git" / "MERGE_HEAD").touch()
    assert ops.is_repo_busy(tmp_path)


# Pull Tests


def test_safe_pull_up_to_date(remote_pair: tuple[Path, Path, Path]) -> None:
    """Verifies that pulling with nothing new reports UpToDate."""
    _, _, local = remote_pair

    assert ops.safe_pull(local) == ops.UpToDate()
    assert not list(local.glob("*.local.*"))
    assert not list(local.glob("*.remote.*"))


def test_safe_pull_fast_forward(remote_pair: tuple[Path, Path, Path]) -> None:
    """Verifies that a clean clone integrates new remote commits."""
    _, upstream, local = remote_pair
    publish(upstream, "plan.txt", "step one\n")

    result = ops.safe_pull(local)

    assert result == ops.Pulled(files=1)
    assert (local / "plan.txt").read_text() == "step one\n"

    # A second pull with nothing new changes nothing.
    assert ops.safe_pull(local) == ops.UpToDate()
    assert sorted(p.name for p in local.iterdir()) == [".git", "notes.txt", "plan.txt"]


def test_safe_pull_stashes_unrelated_changes(
    remote_pair: tuple[Path, Path, Path],
) -> None:
    """Verifies that non-conflicting local edits survive the pull in place."""
    _, upstream, local = remote_pair
    publish(upstream, "plan.txt", "step one\n")
    (local / "notes.txt").write_text("local edit\n")
    (local / "scratch.txt").write_text("untracked\n")

    result = ops.safe_pull(local)

    assert isinstance(result, ops.Pulled)
    assert result.conflicts == 0
    assert (local / "notes.txt").read_text() == "local edit\n"
    assert (local / "scratch.txt").read_text() == "untracked\n"
    assert (local / "plan.txt").exists()
    assert git(local, "stash", "list") == ""


def test_safe_pull_resolves_remote_newer(remote_pair: tuple[Path, Path, Path]) -> None:
    """Verifies the keep-both outcome when the remote edit is newer."""
    _, upstream, local = remote_pair
    publish(upstream, "notes.txt", "upstream edit\n")
    (local / "notes.txt").write_text("local edit\n")
    os.utime(local / "notes.txt", (1_000_000, 1_000_000))

    result = ops.safe_pull(local)

    assert isinstance(result, ops.Pulled)
    assert (result.conflicts, result.resolved, result.failed) == (1, 1, 0)
    assert (local / "notes.txt").read_text() == "upstream edit\n"
    backups = sorted(p.name for p in local.glob("notes.txt.*"))
    assert len(backups) == 2
    assert backups[0].startswith("notes.txt.local.")
    assert backups[1].startswith("notes.txt.remote.")


def test_safe_pull_conflict_keeps_unrelated_edits(
    remote_pair: tuple[Path, Path, Path],
) -> None:
    """Verifies that only conflicting files are set aside during resolution."""
    _, upstream, local = remote_pair
    publish(upstream, "notes.txt", "upstream edit\n")
    (local / "notes.txt").write_text("local edit\n")
    os.utime(local / "notes.txt", (1_000_000, 1_000_000))
    (local / "scratch.txt").write_text("work in progress\n")

    result = ops.safe_pull(local)

    assert isinstance(result, ops.Pulled)
    assert result.resolved == 1
    assert (local / "scratch.txt").read_text() == "work in progress\n"


def test_safe_pull_conflict_merges_past_staged_changes(
    remote_pair: tuple[Path, Path, Path],
) -> None:
    """Verifies that staged edits do not block merging a diverged branch."""
    _, upstream, local = remote_pair
    publish(upstream, "notes.txt", "upstream edit\n")
    (local / "other.txt").write_text("local commit\n")
    git(local, "add", "other.txt")
    git(local, "commit", "-m", "Local work")
    (local / "staged.txt").write_text("staged\n")
    git(local, "add", "staged.txt")
    (local / "notes.txt").write_text("local edit\n")
    os.utime(local / "notes.txt", (1_000_000, 1_000_000))

    result = ops.safe_pull(local)

    assert isinstance(result, ops.Pulled)
    assert (result.resolved, result.failed) == (1, 0)
    assert (local / "notes.txt").read_text() == "upstream edit\n"
    assert (local / "staged.txt").read_text() == "staged\n"
    assert (local / "other.txt").exists()
    git(local, "merge-base", "--is-ancestor", "origin/main", "HEAD")

    # Pulling again finds nothing new and writes no further backups.
    assert ops.safe_pull(local) == ops.UpToDate()
    assert len(list(local.glob("notes.txt.*"))) == 2


def test_safe_pull_refuses_busy_repo(tmp_path: Path) -> None:
    """Verifies that a repository mid-merge is not touched."""
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "MERGE_HEAD").touch()

    result = ops.safe_pull(tmp_path)

    assert isinstance(result, ops.PullFailed)
    assert "busy" in result.reason


def test_safe_pull_aborts_failed_merge(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies merge abort and stash restore when the pull itself fails.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    mock_cls = mocker.patch("git_ferry.ops.GitRepo")
    repo = mock_cls.return_value
    repo.name = tmp_path.name
    repo.changed_files.return_value = ["notes.txt"]
    repo.pull.side_effect = RuntimeError("Git error: Automatic merge failed")
    repo.is_merging.return_value = True
    mocker.patch("git_ferry.ops.detect_conflicts", return_value=ConflictCheck())

    result = ops.safe_pull(tmp_path)

    assert isinstance(result, ops.PullFailed)
    repo.merge_abort.assert_called_once()
    repo.stash_push.assert_called_once()
    repo.stash_pop.assert_called_once()


def test_safe_pull_fail_closed(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that fail-closed detection errors stop the pull.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    mock_cls = mocker.patch("git_ferry.ops.GitRepo")
    repo = mock_cls.return_value
    repo.changed_files.return_value = ["notes.txt"]
    repo.current_branch.return_value = "main"
    repo.fetch.side_effect = RuntimeError("Git error: offline")

    result = ops.safe_pull(tmp_path, fail_closed=True)

    assert isinstance(result, ops.PullFailed)
    assert "conflict detection failed" in result.reason
    repo.pull.assert_not_called()


# Push Tests


def test_safe_push_clean_tree(remote_pair: tuple[Path, Path, Path]) -> None:
    """Verifies that a clean working tree is reported as NoChanges."""
    _, _, local = remote_pair

    assert ops.safe_push(local, "Auto-sync: {date}") == ops.NoChanges()


def test_safe_push_commits_and_pushes(remote_pair: tuple[Path, Path, Path]) -> None:
    """Verifies that every local change lands on the remote in one commit."""
    bare, _, local = remote_pair
    (local / "notes.txt").write_text("local edit\n")
    (local / "new.txt").write_text("new\n")

    result = ops.safe_push(local, "Auto-sync: {date}", now=datetime(2026, 10, 18))

    assert result == ops.Pushed(files=2)
    assert git(bare, "rev-parse", "main") == git(local, "rev-parse", "HEAD")
    assert git(local, "log", "-1", "--format=%s") == "Auto-sync: 2026-10-18"


def test_safe_push_pulls_first_when_remote_moved(
    remote_pair: tuple[Path, Path, Path],
) -> None:
    """Verifies that remote commits are integrated before committing."""
    bare, upstream, local = remote_pair
    publish(upstream, "plan.txt", "step one\n")
    (local / "new.txt").write_text("new\n")

    result = ops.safe_push(local, "Auto-sync: {date}")

    assert isinstance(result, ops.Pushed)
    assert (local / "plan.txt").exists()
    assert git(bare, "rev-parse", "main") == git(local, "rev-parse", "HEAD")


def _mock_push_repo(mocker: MagicMock) -> MagicMock:
    mock_cls = mocker.patch("git_ferry.ops.GitRepo")
    repo = mock_cls.return_value
    repo.changed_files.return_value = ["a.txt"]
    repo.current_branch.return_value = "main"
    repo.rev_parse.return_value = "abc123"
    return repo


def test_safe_push_retries_once_after_rejection(
    mocker: MagicMock, tmp_path: Path
) -> None:
    """Verifies the pull-then-retry path after a rejected push.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    repo = _mock_push_repo(mocker)
    repo.push.side_effect = [RuntimeError("Git error: rejected"), None]
    mock_pull = mocker.patch("git_ferry.ops.safe_pull", return_value=ops.UpToDate())

    result = ops.safe_push(tmp_path, "msg")

    assert result == ops.Pushed(files=1, retried=True)
    assert repo.push.call_count == 2
    mock_pull.assert_called_once()


def test_safe_push_gives_up_after_second_rejection(
    mocker: MagicMock, tmp_path: Path
) -> None:
    """Verifies that the retry is bounded to a single attempt.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    repo = _mock_push_repo(mocker)
    repo.push.side_effect = RuntimeError("Git error: rejected")
    mocker.patch("git_ferry.ops.safe_pull", return_value=ops.UpToDate())

    result = ops.safe_push(tmp_path, "msg")

    assert isinstance(result, ops.PushFailed)
    assert repo.push.call_count == 2


def test_safe_push_reports_failed_pull(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that a failed pull after rejection is carried in the outcome.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    repo = _mock_push_repo(mocker)
    repo.push.side_effect = RuntimeError("Git error: rejected")
    failed = ops.PullFailed("network down")
    mocker.patch("git_ferry.ops.safe_pull", return_value=failed)

    result = ops.safe_push(tmp_path, "msg")

    assert result == ops.PushFailed("push rejected and pull failed", failed)
    assert repo.push.call_count == 1


def test_safe_push_sets_upstream_for_new_branch(
    mocker: MagicMock, tmp_path: Path
) -> None:
    """Verifies that a branch without a remote counterpart is pushed with -u.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    repo = _mock_push_repo(mocker)
    repo.rev_parse.side_effect = lambda rev: None if rev == "origin/main" else "abc"

    result = ops.safe_push(tmp_path, "msg")

    assert result == ops.Pushed(files=1)
    repo.push.assert_called_once_with(remote="origin", branch="main", set_upstream=True)


def test_safe_push_detached_head(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that a detached HEAD is reported as a failure.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    repo = _mock_push_repo(mocker)
    repo.current_branch.return_value = ""

    result = ops.safe_push(tmp_path, "msg")

    assert result == ops.PushFailed("HEAD is detached")
    repo.commit.assert_not_called()
