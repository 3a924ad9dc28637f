"""Brings a single local mirror in line with its remote.

A missing mirror is cloned; an existing one is fetched and fast-forwarded.
Local history is never rewritten, so a mirror whose branch has diverged from
the remote is reported and left alone.
"""

import enum
import logging
from pathlib import Path

from .config import Config
from .constants import APP_NAME, GIT_USERNAME
from .exceptions import CloneError, PullError
from .git_wrapper import GitRepo, basic_auth_header, redact
from .github import Repository

logger = logging.getLogger(APP_NAME)


class UpdateResult(enum.Enum):
    """Terminal outcome of a successful update."""

    CLONED = "cloned"
    UPDATED = "updated"
    UP_TO_DATE = "up to date"
    DIVERGED = "diverged"


class RepoUpdater:
    """Clones or fast-forwards mirrors using the configured credentials."""

    def __init__(self, config: Config):
        self.auth_header = (
            basic_auth_header(GIT_USERNAME, config.github_token)
            if config.transport_auth
            else None
        )
        self._secrets = [config.github_token]

    def update(self, local_path: Path, repo: Repository) -> UpdateResult:
        """Clones `repo` into `local_path`, or updates the existing mirror there.

        Args:
            local_path (Path): The mirror directory.
            repo (Repository): The remote repository descriptor.

        Returns:
            UpdateResult: What happened to the mirror.

        Raises:
            CloneError: If the mirror was missing and cloning failed.
            PullError: If the mirror exists but could not be updated.
        """
        if not local_path.exists():
            return self._clone(local_path, repo)
        return self._pull(local_path, repo)

    def _clone(self, local_path: Path, repo: Repository) -> UpdateResult:
        try:
            GitRepo.clone(repo.clone_url, local_path, self.auth_header)
        except (RuntimeError, ValueError, OSError) as e:
            raise CloneError(
                f"Failed to clone {repo.name}: {redact(str(e), self._secrets)}"
            ) from e
        return UpdateResult.CLONED

    def _pull(self, local_path: Path, repo: Repository) -> UpdateResult:
        try:
            git = GitRepo(local_path, self.auth_header)
        except ValueError as e:
            raise PullError(f"Failed to open {repo.name}: {e}") from e

        try:
            git.fetch()

            head = git.rev_parse("HEAD")
            target = git.upstream() or f"origin/{repo.default_branch}"
            remote = git.rev_parse(target)
            if head is None or remote is None:
                # Empty remote or unborn branch: nothing to fast-forward to.
                logger.debug(f"{repo.name}: nothing to compare against {target}")
                return UpdateResult.UP_TO_DATE

            if head == remote or git.is_ancestor(remote, head):
                return UpdateResult.UP_TO_DATE

            if not git.is_ancestor(head, remote):
                return UpdateResult.DIVERGED

            git.merge_ff_only(target)
        except (RuntimeError, OSError) as e:
            raise PullError(
                f"Failed to pull {repo.name}: {redact(str(e), self._secrets)}"
            ) from e

        return UpdateResult.UPDATED
