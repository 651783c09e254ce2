"""git-vault-sync: Save-triggered version control for document vaults.

This package provides the command-line interface, the watching session, and
the commit scheduler that stages every edit, coalesces bursts of edits into
single commits, and keeps a vault synchronized with its git remote.
"""

from . import (
    cli,
    coalescer,
    config,
    constants,
    errors,
    git_wrapper,
    lifecycle,
    ops,
    policy,
    system,
    timer,
    watcher,
)

__all__ = [
    "cli",
    "coalescer",
    "config",
    "constants",
    "errors",
    "git_wrapper",
    "lifecycle",
    "ops",
    "policy",
    "system",
    "timer",
    "watcher",
]
