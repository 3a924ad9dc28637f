import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from .config import Config
from .constants import APP_NAME
from .exceptions import DirectoryError, ListError
from .github import GitHubClient, Repository
from .pool import SyncTask, WorkerPool
from .updater import RepoUpdater, UpdateResult

logger = logging.getLogger(APP_NAME)


def mirror_path(root: Path, repo: Repository) -> Path:
    """Resolves the local mirror directory for a repository.

    Args:
        root (Path): The configured repositories directory.
        repo (Repository): The remote repository.

    Returns:
        Path: `root / repo.name`.

    Raises:
        ValueError: If the name would escape `root`.
    """
    name = repo.name
    if not isinstance(name, str) or not name or name in (".", ".."):
        raise ValueError(f"Unsafe repository name: {name!r}")
    if "/" in name or "\\" in name:
        raise ValueError(f"Unsafe repository name: {name!r}")
    return root / name


@dataclass
class CycleReport:
    """Aggregated outcome of one sync cycle.

    Workers record into it concurrently, so mutation goes through `record`.

    Attributes:
        pages (int): Listing pages fetched.
        discovered (int): Repositories found on those pages.
        submitted (int): Tasks handed to the worker pool.
        outcomes (Counter): Successful results keyed by UpdateResult.
        failed (list[str]): Names of repositories whose task failed.
        list_error (ListError | None): Listing failure that cut the cycle short.
        cancelled (bool): Whether a shutdown signal cut pagination short.
        duration (float): Wall-clock seconds for the cycle.
    """

    pages: int = 0
    discovered: int = 0
    submitted: int = 0
    outcomes: Counter = field(default_factory=Counter)
    failed: list[str] = field(default_factory=list)
    list_error: ListError | None = None
    cancelled: bool = False
    duration: float = 0.0
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    @property
    def completed(self) -> int:
        return sum(self.outcomes.values()) + len(self.failed)

    def record(
        self, task: SyncTask, result: UpdateResult | None, error: Exception | None
    ) -> None:
        if error is not None or result is None:
            self.record_failure(task.repo.name)
            return
        with self._lock:
            self.outcomes[result] += 1

    def record_failure(self, name: str) -> None:
        with self._lock:
            self.failed.append(name)

    def summary(self) -> str:
        return (
            f"{self.discovered} found, "
            f"{self.outcomes[UpdateResult.CLONED]} cloned, "
            f"{self.outcomes[UpdateResult.UPDATED]} updated, "
            f"{self.outcomes[UpdateResult.UP_TO_DATE]} up to date, "
            f"{self.outcomes[UpdateResult.DIVERGED]} diverged, "
            f"{len(self.failed)} failed in {self.duration:.1f}s"
        )


class SyncOrchestrator:
    """Runs sync cycles: list every repository, update every mirror.

    One orchestrator is reused across cycles; each cycle gets a fresh worker
    pool bound to the shared shutdown event.
    """

    def __init__(
        self,
        config: Config,
        client: GitHubClient | None = None,
        updater: RepoUpdater | None = None,
        stop_event: threading.Event | None = None,
    ):
        self.config = config
        self.client = client or GitHubClient(config)
        self.updater = updater or RepoUpdater(config)
        self.stop_event = stop_event or threading.Event()
        self.last_report: CycleReport | None = None

    def close(self) -> None:
        self.client.close()

    def run_cycle(self) -> CycleReport:
        """Performs one full sync cycle.

        Every task that was enqueued reaches a terminal outcome before this
        returns or raises. Individual task failures are only recorded.

        Returns:
            CycleReport: Counts and failures for the cycle.

        Raises:
            DirectoryError: If the repositories directory cannot be created.
            ListError: If listing failed part-way; raised after queued work
                has drained.
        """
        report = CycleReport()
        self.last_report = report
        started = time.monotonic()

        root = self.config.repos_dir
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DirectoryError(f"Failed to create repos directory {root}: {e}") from e

        pool = WorkerPool(
            self.updater.update,
            worker_count=self.config.worker_count,
            queue_size=self.config.queue_size,
            rate_limit=self.config.rate_limit,
            stop_event=self.stop_event,
            on_done=report.record,
        )
        with pool:
            try:
                self._produce(pool, report)
            except ListError as e:
                report.list_error = e
                logger.error(f"LIST ERROR: {e}. Finishing already queued work.")

        report.duration = time.monotonic() - started
        logger.info(f"Found {report.discovered} repositories")
        logger.info(f"CYCLE: {report.summary()}")
        if report.failed:
            logger.warning(f"CYCLE: failed repositories: {', '.join(report.failed)}")

        if report.list_error is not None:
            raise report.list_error
        return report

    def _produce(self, pool: WorkerPool, report: CycleReport) -> None:
        """Feeds listing pages into the pool until exhausted or cancelled."""
        root = self.config.repos_dir
        pages = iter(self.client.iter_pages(self.config.github_user))

        while True:
            # No new page is requested once shutdown has been signalled.
            if self.stop_event.is_set():
                report.cancelled = True
                break
            page = next(pages, None)
            if page is None:
                break
            report.pages += 1
            report.discovered += len(page)

            for repo in page:
                try:
                    path = mirror_path(root, repo)
                except ValueError as e:
                    logger.error(f"SKIPPED {repo.name!r}: {e}")
                    report.record_failure(repo.name)
                    continue

                if self.stop_event.is_set() or not pool.submit(SyncTask(repo, path)):
                    report.cancelled = True
                    break
                report.submitted += 1

            if report.cancelled:
                break

        if report.cancelled:
            logger.info("Shutdown requested: pagination stopped, draining queue.")
