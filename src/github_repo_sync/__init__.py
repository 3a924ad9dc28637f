"""github-repo-sync: keep local mirrors of a GitHub account's repositories.

This package provides the service entry point, the run loop, and the
concurrent sync machinery that lists an account's repositories and clones or
fast-forwards a local mirror of each one.
"""

from . import (
    cli,
    config,
    constants,
    daemon,
    exceptions,
    git_wrapper,
    github,
    pool,
    sync,
    updater,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "daemon",
    "exceptions",
    "git_wrapper",
    "github",
    "pool",
    "sync",
    "updater",
]
