import logging
import subprocess
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)

EMPTY_TREE = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"
"""str: The object id of git's empty tree, used to diff against an unborn branch."""


def parse_porcelain_z(output: str) -> list[str]:
    """Extracts the changed paths from `git status --porcelain -z` output.

    Renamed and copied entries contribute their destination path only; the
    source path that follows them is consumed and discarded.

    Args:
        output (str): Raw NUL-separated porcelain output.

    Returns:
        list[str]: Changed paths in the order git reported them, without duplicates.
    """
    entries = output.split("\0")
    paths: list[str] = []
    i = 0
    while i < len(entries):
        entry = entries[i]
        i += 1
        if len(entry) < 4:
            continue
        status, path = entry[:2], entry[3:]
        if "R" in status or "C" in status:
            i += 1  # Skip the rename/copy source.
        if path not in paths:
            paths.append(path)
    return paths


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    This class provides methods to execute the Git operations used by the sync
    engine using `subprocess`, abstracting away the command construction and
    output handling. Every failing command raises `RuntimeError`.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            ValueError: If the specified path does not contain a .git directory.
        """
        self.path = path
        if not (self.path / ".git").exists():
            raise ValueError(f"Not a git repository: {self.path}")

    @property
    def name(self) -> str:
        """The directory name of the repository."""
        return self.path.name

    def _run(
        self,
        args: list[str],
        capture: bool = True,
        strip: bool = True,
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to capture and return stdout.
                                        Defaults to True.
            strip (bool, optional): Whether to strip surrounding whitespace from
                                    the output. Disable for column-sensitive
                                    formats. Defaults to True.

        Returns:
            str:    The stdout of the command if capture is True,
                    otherwise an empty string.

        Raises:
            RuntimeError: If the git command returns a non-zero exit code.
        """
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=True,
                text=True,
                check=True,
            )
            if not capture:
                return ""
            return res.stdout.strip() if strip else res.stdout
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            raise RuntimeError(f"Git error: {stderr or e}") from e

    @staticmethod
    def clone(url: str, target: Path) -> "GitRepo":
        """Clones a remote repository into `target`.

        Args:
            url (str): The clone URL.
            target (Path): The destination directory (must not exist yet).

        Returns:
            GitRepo: A wrapper around the new working copy.

        Raises:
            RuntimeError: If the clone fails.
        """
        try:
            subprocess.run(
                ["git", "clone", url, str(target)],
                capture_output=True,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            raise RuntimeError(f"Git error: {stderr or e}") from e
        return GitRepo(target)

    def current_branch(self) -> str:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str: The name of the current branch (empty when HEAD is detached).
        """
        return self._run(["branch", "--show-current"])

    def changed_files(self) -> list[str]:
        """Lists every locally modified, staged, deleted or untracked path.

        Untracked directories are expanded into their individual files.

        Returns:
            list[str]: Paths relative to the repository root.
        """
        output = self._run(
            ["status", "--porcelain", "-z", "--untracked-files=all"], strip=False
        )
        return parse_porcelain_z(output)

    def fetch(self, remote: str = "origin") -> None:
        """Downloads remote refs without touching the working tree.

        Args:
            remote (str): The remote to fetch from.
        """
        self._run(["fetch", remote])

    def diff_names(self, base: str, target: str, since_fork: bool = True) -> list[str]:
        """Lists paths that differ between two revisions.

        Args:
            base (str): The base revision (e.g., 'main').
            target (str): The revision to compare (e.g., 'origin/main').
            since_fork (bool): Compare `target` against its merge base with `base`
                               (`base...target`) instead of `base` itself.
                               Disable to diff arbitrary tree-ish objects.

        Returns:
            list[str]: Changed paths.
        """
        revs = [f"{base}...{target}"] if since_fork else [base, target]
        output = self._run(["diff", "--name-only", *revs])
        return output.splitlines() if output else []

    def stash_push(
        self,
        message: str,
        include_untracked: bool = True,
        paths: list[str] | None = None,
    ) -> None:
        """Sets aside working-tree modifications.

        Args:
            message (str): The stash description.
            include_untracked (bool): Whether untracked files are stashed too.
            paths (list[str] | None): Limit the stash to these paths. Everything
                                      else stays in the working tree.
        """
        cmd = ["stash", "push"]
        if include_untracked:
            cmd.append("-u")
        cmd.extend(["-m", message])
        if paths:
            cmd.extend(["--", *paths])
        self._run(cmd)

    def reset_index(self) -> None:
        """Unstages everything so the index matches HEAD.

        Working-tree files are left as they are.
        """
        self._run(["reset", "-q"])

    def stash_pop(self) -> None:
        """Re-applies and drops the most recent stash entry."""
        self._run(["stash", "pop"])

    def pull(self) -> None:
        """Pulls the upstream branch into the current branch.

        Local commits that the upstream lacks are combined with a merge commit
        rather than rebased.
        """
        self._run(["pull", "--no-rebase", "--no-edit"])

    def merge_abort(self) -> None:
        """Abandons an in-progress merge, restoring the pre-merge state."""
        self._run(["merge", "--abort"])

    def is_merging(self) -> bool:
        """Whether a merge is waiting to be concluded."""
        return (self.path / ".git" / "MERGE_HEAD").exists()

    def add(self, *paths: str) -> None:
        """Stages specific paths.

        Args:
            *paths (str): Paths relative to the repository root.
        """
        if not paths:
            return
        self._run(["add", "--", *paths], capture=False)

    def add_all(self) -> None:
        """
        Stages all changes (modified, deleted, and untracked files)
        in the working directory.
        """
        self._run(["add", "."], capture=False)

    def commit(self, message: str) -> None:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.
        """
        self._run(["commit", "-m", message], capture=False)

    def push(
        self, remote: str | None = None, branch: str | None = None, set_upstream: bool = False
    ) -> None:
        """Pushes the current branch.

        Args:
            remote (str | None): The remote name. Defaults to the upstream.
            branch (str | None): The branch to push. Requires `remote`.
            set_upstream (bool): Record `remote/branch` as the upstream.
        """
        cmd = ["push"]
        if set_upstream:
            cmd.append("-u")
        if remote:
            cmd.append(remote)
            if branch:
                cmd.append(branch)
        self._run(cmd)

    def rev_parse(self, rev: str) -> str | None:
        """Resolves a revision (tag, branch, relative ref) to a full SHA-1 hash.

        Args:
            rev (str): The revision to parse (e.g., 'HEAD', 'origin/main').

        Returns:
            Optional[str]:  The full SHA-1 hash,
                            or None if the revision could not be resolved.
        """
        try:
            return self._run(["rev-parse", "--verify", "--quiet", rev])
        except Exception as e:
            logger.debug(f"rev-parse failed for '{rev}': {e}")
            return None

    def commit_count(self) -> int:
        """Counts the commits reachable from HEAD.

        Returns:
            int: The number of commits, 0 for an unborn branch.
        """
        if self.rev_parse("HEAD") is None:
            return 0
        return int(self._run(["rev-list", "--count", "HEAD"]))

    def list_tree(self, rev: str = "HEAD") -> list[str]:
        """Lists the top-level entry names of a commit's tree.

        Args:
            rev (str): The commit to inspect.

        Returns:
            list[str]: Entry names.
        """
        output = self._run(["ls-tree", "--name-only", rev])
        return output.splitlines() if output else []
