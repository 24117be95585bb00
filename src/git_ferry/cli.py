import argparse
import logging
import sys
from dataclasses import replace
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.table import Table

from . import ops
from .config import CONFIG_FILE, Config, ConfigError
from .constants import APP_NAME, LOG_FILE
from .git_wrapper import GitRepo
from .inventory import find_local_repos, is_repo_empty
from .orchestrator import SyncCounters, SyncError, run_sync

logger = logging.getLogger(APP_NAME)
console = Console()


def setup_logging(unattended: bool, max_log_size: int, verbose: bool = False) -> None:
    """Configures the logging subsystem.

    Args:
        unattended (bool): If True, logs to stderr and a rotating log file.
                           Otherwise logs to stdout only.
        max_log_size (int): Bytes before the log file rotates.
        verbose (bool): Include DEBUG records.
    """
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    stream_handler = logging.StreamHandler(sys.stderr if unattended else sys.stdout)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if unattended:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=max_log_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def _load_config(args: argparse.Namespace) -> Config:
    """Loads the config file named on the command line and applies flag overrides."""
    config = Config.load(Path(args.config).expanduser() if args.config else None)
    if getattr(args, "dry_run", False):
        config.sync = replace(config.sync, dry_run=True)
    if getattr(args, "dashboard", None):
        config.dashboard = replace(config.dashboard, enabled=True, url=args.dashboard)
    return config


def show_summary(counters: SyncCounters) -> None:
    """Renders the run counters as a table."""
    table = Table(title="Sync Summary", show_header=True, header_style="bold magenta")
    table.add_column("Result", style="cyan")
    table.add_column("Count", justify="right")

    table.add_row("Pulled", str(counters.pulled))
    table.add_row("Pushed", str(counters.pushed))
    table.add_row("Cloned", str(counters.cloned))
    table.add_row("Conflicts resolved", str(counters.conflicts_resolved))
    table.add_row("Deleted empty", str(counters.empty_deleted))
    table.add_row("Up to date", str(counters.up_to_date))
    failed_style = "bold red" if counters.failed else "green"
    table.add_row("Failed", f"[{failed_style}]{counters.failed}[/{failed_style}]")
    table.add_row("Total", str(counters.total), style="bold")

    console.print(table)


def run_sync_command(args: argparse.Namespace) -> int:
    """Executes a full account sync. Returns the process exit code."""
    config = _load_config(args)
    setup_logging(args.unattended, config.limits.max_log_size, args.verbose)

    try:
        counters = run_sync(config)
    except ConfigError as e:
        console.print("[bold red]ERROR:[/bold red] Configuration is incomplete:")
        for problem in e.problems:
            console.print(f"   - {problem}")
        console.print(f"   Edit [cyan]{args.config or CONFIG_FILE}[/cyan] and retry.")
        return 1
    except SyncError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        return 1

    if not args.unattended:
        show_summary(counters)
    return 0


def run_pull_command(args: argparse.Namespace) -> int:
    """Safely pulls a single repository."""
    config = _load_config(args)
    setup_logging(False, 0, args.verbose)
    repo_path = Path(args.path).resolve()
    remote = args.remote or config.sync.remote_name
    result = ops.safe_pull(repo_path, remote=remote)

    if isinstance(result, ops.Pulled):
        console.print(
            f"[bold green]SUCCESS:[/bold green] {repo_path.name}: "
            f"pulled {result.files} file(s)."
        )
        if result.conflicts:
            console.print(
                f"   Conflicts: {result.resolved} resolved, "
                f"{result.skipped} skipped, {result.failed} failed."
            )
        return 0
    if isinstance(result, ops.UpToDate):
        console.print(f"[green]{repo_path.name}: already up to date.[/green]")
        return 0
    console.print(f"[bold red]ERROR:[/bold red] Pull failed: {result.reason}")
    return 1


def run_push_command(args: argparse.Namespace) -> int:
    """Safely commits and pushes a single repository."""
    config = _load_config(args)
    setup_logging(False, 0, args.verbose)
    repo_path = Path(args.path).resolve()
    message = args.message or config.sync.commit_message
    result = ops.safe_push(repo_path, message, remote=config.sync.remote_name)

    if isinstance(result, ops.Pushed):
        retried = " (after one retry)" if result.retried else ""
        console.print(
            f"[bold green]SUCCESS:[/bold green] {repo_path.name}: "
            f"pushed {result.files} file(s){retried}."
        )
        return 0
    if isinstance(result, ops.NoChanges):
        console.print(f"[green]{repo_path.name}: no changes to push.[/green]")
        return 0
    console.print(f"[bold red]ERROR:[/bold red] Push failed: {result.reason}")
    return 1


def run_check(args: argparse.Namespace) -> int:
    """Validates the configuration and prints the effective settings."""
    config = _load_config(args)
    path = Path(args.config).expanduser() if args.config else CONFIG_FILE

    console.print(f"[bold]Checking {APP_NAME} setup[/bold] ([cyan]{path}[/cyan])\n")

    if problems := config.validate():
        for problem in problems:
            console.print(f"[bold red]✘[/bold red] {problem}")
        if not config.account.token:
            console.print(
                "\n   Create a token at https://github.com/settings/tokens with the\n"
                "   `repo` and `delete_repo` scopes, then set [account].token or\n"
                "   the GITHUB_TOKEN environment variable."
            )
        return 1

    console.print("[green]✔[/green] GitHub token: Configured")
    console.print(f"[green]✔[/green] Username: {config.account.username}")
    for root in config.search_paths:
        if root.is_dir():
            console.print(f"[green]✔[/green] Search dir: {root}")
        else:
            console.print(f"[yellow]![/yellow] Search dir missing: {root}")
    console.print(
        "[green]✔[/green] Delete empty repos: "
        + ("Enabled" if config.sync.delete_empty_repos else "Disabled")
    )
    console.print(
        "[green]✔[/green] Dry run: "
        + ("ON (testing mode)" if config.sync.dry_run else "OFF (live mode)")
    )
    if config.dashboard.enabled:
        console.print(f"[green]✔[/green] Dashboard: {config.dashboard.url}")
    console.print(f"\n[bold green]Setup complete![/bold green] Run '{APP_NAME} sync'.")
    return 0


def list_repos(args: argparse.Namespace) -> int:
    """Lists the local repositories found under the search directories."""
    config = _load_config(args)
    if not config.scan.search_dirs:
        console.print("[yellow]No search directories configured.[/yellow]")
        return 1

    repos = find_local_repos(config.search_paths, config.scan.exclude)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Repository", style="cyan")
    table.add_column("Path", style="dim")
    table.add_column("Changes", justify="right")
    table.add_column("Empty")

    for path in repos.values():
        display_path = str(path).replace(str(Path.home()), "~")
        try:
            changes = str(len(GitRepo(path).changed_files()))
        except Exception as e:
            logger.debug(f"Failed to read status for {path}: {e}")
            changes = "[bold red]Error[/bold red]"
        empty = "[yellow]yes[/yellow]" if is_repo_empty(path) else "no"
        table.add_row(path.name, display_path, changes, empty)

    console.print(table)
    console.print(f"[dim]{len(repos)} local repositories.[/dim]")
    return 0


def show_config_reference(args: argparse.Namespace) -> int:
    """Displays the config file location and every available option."""
    console.print(f"Config file: [cyan]{args.config or CONFIG_FILE}[/cyan]\n")

    table = Table(title="Git Ferry Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    table.add_row("account", "username", "str", '""', "Account whose repos are synced.")
    table.add_row(
        "", "token", "str", '""', "API token (GIT_FERRY_TOKEN / GITHUB_TOKEN override)."
    )
    table.add_row(
        "scan",
        "search_dirs",
        "list",
        "[]",
        "Directories whose children are repos. New clones go to the first.",
    )
    table.add_row("", "exclude", "list", "[]", "Directory names to skip.")
    table.add_row(
        "sync",
        "commit_message",
        "str",
        '"Auto-sync: {date}"',
        "Auto-commit message; {date} becomes today's date.",
    )
    table.add_row(
        "", "delete_empty_repos", "bool", "false", "Delete empty hosted repositories."
    )
    table.add_row(
        "", "dry_run", "bool", "false", "Report clones and deletions without running them."
    )
    table.add_row("", "remote_name", "str", '"origin"', "The remote paired with GitHub.")
    table.add_row(
        "dashboard", "enabled", "bool", "false", "Post progress to a dashboard process."
    )
    table.add_row("", "url", "str", '"http://localhost:3737"', "Dashboard base URL.")
    table.add_row(
        "", "task_id", "str", '"git-sync-bidirectional"', "Dashboard task identifier."
    )
    table.add_row(
        "limits",
        "max_log_size",
        "int | str",
        '"5mb"',
        "Max size for log files before rotation (e.g., '5mb', '1gb').",
    )

    console.print(table)
    return 0


class FerryHelpFormatter(argparse.HelpFormatter):
    """Help formatter that groups the subcommands under category headers."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []

            groups = {
                "Synchronization": ["sync", "pull", "push"],
                "Setup": ["check", "repos", "config"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")

                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def build_parser() -> argparse.ArgumentParser:
    """Builds the argument parser for all subcommands."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Keep local working copies and a GitHub account in sync.",
        formatter_class=FerryHelpFormatter,
    )
    parser.add_argument(
        "--config", "-c", help=f"Path to the config file (default: {CONFIG_FILE})"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Show debug output"
    )

    subparsers = parser.add_subparsers(dest="command")

    sync_parser = subparsers.add_parser("sync", help="Sync every repository")
    sync_parser.add_argument(
        "--dry-run", action="store_true", help="Report clones and deletions only"
    )
    sync_parser.add_argument("--dashboard", metavar="URL", help="Post progress here")
    sync_parser.add_argument(
        "--unattended",
        action="store_true",
        help="Log to stderr and the rotating log file (for schedulers)",
    )

    pull_parser = subparsers.add_parser("pull", help="Safely pull one repository")
    pull_parser.add_argument("path", nargs="?", default=".", help="Repository path")
    pull_parser.add_argument(
        "--remote", help="Remote name (defaults to [sync].remote_name)"
    )

    push_parser = subparsers.add_parser("push", help="Commit and push one repository")
    push_parser.add_argument("path", nargs="?", default=".", help="Repository path")
    push_parser.add_argument("--message", "-m", help="Commit message template")

    subparsers.add_parser("check", help="Validate the configuration")
    subparsers.add_parser("repos", help="List local repositories")
    subparsers.add_parser("config", help="Show config location and options")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Git Ferry CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    handlers = {
        "sync": run_sync_command,
        "pull": run_pull_command,
        "push": run_push_command,
        "check": run_check,
        "repos": list_repos,
        "config": show_config_reference,
    }

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    sys.exit(handlers[args.command](args))


if __name__ == "__main__":
    main()
