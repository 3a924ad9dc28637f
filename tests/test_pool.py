"""Tests for the worker pool, rate limiter and outstanding-task counter."""

import logging
import queue
import threading
import time
from pathlib import Path

import pytest

from github_repo_sync.exceptions import CloneError, PullError
from github_repo_sync.github import Repository
from github_repo_sync.pool import RateLimiter, SyncTask, TaskCounter, WorkerPool
from github_repo_sync.updater import UpdateResult
from helpers import RecordingUpdater, make_repos, tasks_for


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# --- TaskCounter ---


def test_task_counter_add_done_wait() -> None:
    counter = TaskCounter()
    counter.add()
    counter.add(2)
    assert counter.value == 3

    assert counter.wait(timeout=0.01) is False

    for _ in range(3):
        counter.done()
    assert counter.value == 0
    assert counter.wait(timeout=0.01) is True


def test_task_counter_never_goes_negative() -> None:
    """Verifies that an extra done() is rejected and leaves the count intact."""
    counter = TaskCounter()
    counter.add()
    counter.done()

    with pytest.raises(ValueError, match="negative"):
        counter.done()
    assert counter.value == 0


def test_task_counter_wakes_waiter_at_zero() -> None:
    counter = TaskCounter()
    counter.add()
    released = threading.Event()

    def waiter() -> None:
        counter.wait()
        released.set()

    thread = threading.Thread(target=waiter)
    thread.start()
    assert not released.wait(0.05)

    counter.done()

    assert released.wait(2)
    thread.join(2)


# --- RateLimiter ---


def test_rate_limiter_fixed_cadence() -> None:
    """Verifies that consecutive ticks are spaced one interval apart."""
    clock = FakeClock()
    limiter = RateLimiter(10, clock=clock, sleep=clock.sleep)

    limiter.wait()
    limiter.wait()
    clock.now += 0.03  # work done between ticks
    limiter.wait()

    assert clock.sleeps == pytest.approx([0.1, 0.1, 0.07])


def test_rate_limiter_drops_missed_ticks() -> None:
    """Verifies that a slow task does not earn a burst of immediate ticks."""
    clock = FakeClock()
    limiter = RateLimiter(10, clock=clock, sleep=clock.sleep)
    limiter.wait()

    clock.now += 1.0  # far longer than the interval
    assert limiter.wait() == 0.0
    assert limiter.wait() == pytest.approx(0.1)


def test_rate_limiter_rejects_non_positive_rate() -> None:
    with pytest.raises(ValueError):
        RateLimiter(0)


# --- WorkerPool ---


def test_pool_processes_every_task_exactly_once() -> None:
    """Verifies exactly-once processing with more tasks than queue slots."""
    repos = make_repos(60)
    updater = RecordingUpdater()

    pool = WorkerPool(updater.update, worker_count=4, queue_size=3, rate_limit=1000)
    with pool:
        for task in tasks_for(repos):
            assert pool.submit(task) is True

    assert sorted(updater.names) == [r.name for r in repos]
    assert pool.counter.value == 0
    assert sum(w.processed for w in pool.workers) == 60
    assert not any(w.is_alive() for w in pool.workers)


def test_pool_passes_resolved_path() -> None:
    updater = RecordingUpdater()
    repo = make_repos(1)[0]

    with WorkerPool(updater.update, 1, 1, 1000) as pool:
        pool.submit(SyncTask(repo, Path("/data/repo-000")))

    assert updater.calls == [(Path("/data/repo-000"), repo)]


def test_pool_task_failures_do_not_stop_workers(
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Verifies that failing tasks are logged and the rest still complete."""
    caplog.set_level(logging.INFO)
    repos = make_repos(20)
    updater = RecordingUpdater(
        fail={
            "repo-003": CloneError("clone blew up"),
            "repo-007": PullError("pull blew up"),
            "repo-011": KeyError("surprise"),
        }
    )
    outcomes: dict[str, tuple] = {}
    lock = threading.Lock()

    def on_done(task, result, error) -> None:
        with lock:
            outcomes[task.repo.name] = (result, error)

    with WorkerPool(updater.update, 2, 5, 1000, on_done=on_done) as pool:
        for task in tasks_for(repos):
            pool.submit(task)

    assert len(outcomes) == 20
    assert isinstance(outcomes["repo-003"][1], CloneError)
    assert isinstance(outcomes["repo-011"][1], KeyError)
    assert outcomes["repo-000"] == (UpdateResult.CLONED, None)
    assert "CLONE ERROR repo-003" in caplog.text
    assert "PULL ERROR repo-007" in caplog.text
    assert "TASK ERROR repo-011" in caplog.text
    assert "CLONED repo-000" in caplog.text


def test_pool_logs_diverged_as_warning(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)
    updater = RecordingUpdater(result=UpdateResult.DIVERGED)

    with WorkerPool(updater.update, 1, 1, 1000) as pool:
        pool.submit(tasks_for(make_repos(1))[0])

    [record] = [r for r in caplog.records if "DIVERGED" in r.getMessage()]
    assert record.levelno == logging.WARNING


def test_pool_enqueue_blocks_when_full() -> None:
    """Verifies backpressure: a full queue blocks submit instead of dropping."""
    gate = threading.Event()
    handled: list[str] = []

    def slow_update(path: Path, repo: Repository) -> UpdateResult:
        gate.wait(5)
        handled.append(repo.name)
        return UpdateResult.UP_TO_DATE

    pool = WorkerPool(slow_update, worker_count=1, queue_size=2, rate_limit=1000)
    pool.start()
    tasks = tasks_for(make_repos(5))
    submitter = threading.Thread(target=lambda: [pool.submit(t) for t in tasks])
    submitter.start()

    # One task is held by the worker, two fill the queue, the producer waits.
    time.sleep(0.3)
    assert submitter.is_alive()
    assert pool.tasks.qsize() == 2

    gate.set()
    submitter.join(5)
    pool.close()
    assert pool.wait(timeout=5)
    pool.join(5)

    assert handled == [t.repo.name for t in tasks]


def test_pool_submit_abandons_on_shutdown_while_full() -> None:
    """Verifies that a blocked submit gives up on shutdown and rolls back the count."""
    gate = threading.Event()
    stop = threading.Event()

    def slow_update(path: Path, repo: Repository) -> UpdateResult:
        gate.wait(5)
        return UpdateResult.UP_TO_DATE

    pool = WorkerPool(slow_update, 1, 1, 1000, stop_event=stop)
    pool.start()
    first, second, third = tasks_for(make_repos(3))
    assert pool.submit(first)
    time.sleep(0.2)  # worker picks up `first`
    assert pool.submit(second)

    stop.set()
    assert pool.submit(third) is False
    assert pool.counter.value == 2

    gate.set()
    pool.close()
    assert pool.wait(timeout=5)
    pool.join(5)
    assert pool.counter.value == 0


def test_pool_drains_queue_after_shutdown_signal() -> None:
    """Verifies that queued tasks still run after the shutdown signal fires."""
    stop = threading.Event()
    gate = threading.Event()
    updater = RecordingUpdater()

    def gated_update(path: Path, repo: Repository) -> UpdateResult:
        gate.wait(5)
        return updater.update(path, repo)

    pool = WorkerPool(gated_update, 2, 10, 1000, stop_event=stop)
    pool.start()
    for task in tasks_for(make_repos(10)):
        pool.submit(task)

    stop.set()
    pool.close()
    gate.set()

    assert pool.wait(timeout=5)
    pool.join(5)
    assert len(updater.calls) == 10


class HookedQueue(queue.Queue):
    """A queue that runs a one-shot callback the first time `get` times out."""

    def __init__(self, maxsize: int, on_empty):
        super().__init__(maxsize)
        self.on_empty = on_empty

    def get(self, block: bool = True, timeout: float | None = None):
        try:
            return super().get(block, timeout)
        except queue.Empty:
            hook, self.on_empty = self.on_empty, None
            if hook is not None:
                hook()
            raise


def test_pool_worker_keeps_task_put_just_before_close() -> None:
    """Verifies that a task enqueued between a worker's timeout and close() runs.

    The final submit and close() land after the worker's `get` has timed out
    but before it inspects the closed flag.
    """
    updater = RecordingUpdater()
    pool = WorkerPool(updater.update, 1, 1, 1000)
    [task] = tasks_for(make_repos(1))

    def submit_then_close() -> None:
        assert pool.submit(task)
        pool.close()

    pool.tasks = HookedQueue(1, submit_then_close)
    pool.start()

    assert pool.wait(timeout=5)
    pool.join(5)
    assert updater.names == ["repo-000"]
    assert pool.tasks.empty()
    assert not any(w.is_alive() for w in pool.workers)


def test_pool_bad_handler_result_is_a_task_failure(
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Verifies that a non-UpdateResult return is reported, not fatal to the worker."""
    caplog.set_level(logging.INFO)
    outcomes: list[tuple] = []

    def sloppy_update(path: Path, repo: Repository):
        return None if repo.name == "repo-000" else UpdateResult.UPDATED

    def on_done(task, result, error) -> None:
        outcomes.append((task.repo.name, result, error))

    with WorkerPool(sloppy_update, 1, 2, 1000, on_done=on_done) as pool:
        for task in tasks_for(make_repos(2)):
            pool.submit(task)

    first, second = outcomes
    assert first[0] == "repo-000"
    assert first[1] is None
    assert isinstance(first[2], TypeError)
    assert second == ("repo-001", UpdateResult.UPDATED, None)
    assert "TASK ERROR repo-000" in caplog.text
    assert pool.workers[0].processed == 2


def test_pool_rejects_submit_after_close() -> None:
    pool = WorkerPool(RecordingUpdater().update, 1, 1, 1000)

    pool.close()

    with pytest.raises(RuntimeError, match="closed"):
        pool.submit(tasks_for(make_repos(1))[0])


@pytest.mark.parametrize(("workers", "size"), [(0, 1), (1, 0)])
def test_pool_rejects_invalid_sizes(workers: int, size: int) -> None:
    with pytest.raises(ValueError):
        WorkerPool(RecordingUpdater().update, workers, size, 1000)


def test_pool_starts_exactly_n_workers() -> None:
    with WorkerPool(RecordingUpdater().update, 3, 1, 1000) as pool:
        assert len(pool.workers) == 3
        assert all(w.is_alive() for w in pool.workers)
