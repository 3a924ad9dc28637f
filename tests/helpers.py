"""Fakes shared by the orchestrator, pool and property tests."""

import threading
from collections.abc import Iterator
from pathlib import Path

from github_repo_sync.exceptions import ListError
from github_repo_sync.github import Repository
from github_repo_sync.pool import SyncTask
from github_repo_sync.updater import UpdateResult


def make_repos(
    count: int, owner: str = "octo", prefix: str = "repo"
) -> list[Repository]:
    """Builds `count` distinct repository descriptors."""
    return [
        Repository(
            name=f"{prefix}-{i:03d}",
            clone_url=f"https://github.com/{owner}/{prefix}-{i:03d}.git",
            default_branch="main",
            owner=owner,
        )
        for i in range(count)
    ]


class FakeLister:
    """Stands in for GitHubClient, serving fixed pages lazily.

    Attributes:
        requests (int): Number of pages actually requested.
        closed (bool): Whether close() was called.
    """

    def __init__(
        self,
        repos: list[Repository],
        page_size: int = 100,
        fail_on_page: int | None = None,
    ):
        self.pages = [
            repos[i : i + page_size] for i in range(0, len(repos), page_size)
        ] or [[]]
        self.fail_on_page = fail_on_page
        self.requests = 0
        self.closed = False

    def iter_pages(self, account: str) -> Iterator[list[Repository]]:
        for number, page in enumerate(self.pages, start=1):
            self.requests += 1
            if number == self.fail_on_page:
                raise ListError(f"page {number} failed")
            yield page

    def close(self) -> None:
        self.closed = True


class RecordingUpdater:
    """Records every update call; optionally fails chosen repositories."""

    def __init__(
        self,
        fail: dict[str, Exception] | None = None,
        result: UpdateResult = UpdateResult.CLONED,
    ):
        self.fail = fail or {}
        self.result = result
        self.calls: list[tuple[Path, Repository]] = []
        self._lock = threading.Lock()

    def update(self, local_path: Path, repo: Repository) -> UpdateResult:
        with self._lock:
            self.calls.append((local_path, repo))
        if repo.name in self.fail:
            raise self.fail[repo.name]
        return self.result

    @property
    def names(self) -> list[str]:
        return [repo.name for _, repo in self.calls]


def tasks_for(
    repos: list[Repository], root: Path = Path("/mirrors")
) -> list[SyncTask]:
    return [SyncTask(repo, root / repo.name) for repo in repos]
