"""Shared fixtures: throwaway git repositories wired to a local bare remote."""

import subprocess
from pathlib import Path

import pytest


def git(cwd: Path, *args: str) -> str:
    """Runs a git command in `cwd` and returns its stripped stdout."""
    res = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    )
    return res.stdout.strip()


@pytest.fixture
def git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolates git from the user's configuration and pins an identity."""
    gitconfig = tmp_path / "gitconfig"
    gitconfig.write_text(
        "[user]\n"
        "\tname = Test User\n"
        "\temail = test@example.com\n"
        "[init]\n"
        "\tdefaultBranch = main\n"
        "[commit]\n"
        "\tgpgsign = false\n"
    )
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(gitconfig))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")


@pytest.fixture
def git_repo(tmp_path: Path, git_env: None) -> Path:
    """A fresh repository with no commits."""
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-b", "main")
    return repo


@pytest.fixture
def remote_pair(tmp_path: Path, git_env: None) -> tuple[Path, Path, Path]:
    """Two working copies of one bare remote, both at the same first commit.

    Returns:
        tuple[Path, Path, Path]: (bare remote, upstream author clone, clone under test).
    """
    bare = tmp_path / "remote.git"
    git(tmp_path, "init", "--bare", "-b", "main", str(bare))

    upstream = tmp_path / "upstream"
    upstream.mkdir()
    git(upstream, "init", "-b", "main")
    (upstream / "notes.txt").write_text("first draft\n")
    git(upstream, "add", ".")
    git(upstream, "commit", "-m", "Initial commit")
    git(upstream, "remote", "add", "origin", str(bare))
    git(upstream, "push", "-u", "origin", "main")

    local = tmp_path / "local"
    git(tmp_path, "clone", str(bare), str(local))

    return bare, upstream, local


def publish(repo: Path, file: str, content: str, message: str = "Upstream edit") -> None:
    """Commits `content` to `file` and pushes it to origin."""
    (repo / file).write_text(content)
    git(repo, "add", file)
    git(repo, "commit", "-m", message)
    git(repo, "push")
