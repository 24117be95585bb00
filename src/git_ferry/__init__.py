"""Git Ferry: conflict-safe two-way synchronization of git repositories.

This package provides the command-line interface, the per-repository pull and
push operations with keep-both conflict resolution, and the orchestrator that
reconciles a whole GitHub account with the working copies on this machine.
"""

from . import (
    cli,
    config,
    conflicts,
    constants,
    fingerprint,
    git_wrapper,
    github,
    inventory,
    ops,
    orchestrator,
    reporter,
)

__all__ = [
    "cli",
    "config",
    "conflicts",
    "constants",
    "fingerprint",
    "git_wrapper",
    "github",
    "inventory",
    "ops",
    "orchestrator",
    "reporter",
]
