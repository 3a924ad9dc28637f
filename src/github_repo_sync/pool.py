"""Bounded worker pool that applies the repo updater to queued sync tasks.

Workers are plain threads sharing one bounded `queue.Queue`. The producer
blocks when the queue is full, and an outstanding-task counter tells it when
every submitted task has reached a terminal outcome.
"""

import logging
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME, QUEUE_POLL_SECONDS
from .exceptions import CloneError, PullError
from .github import Repository
from .updater import UpdateResult

logger = logging.getLogger(APP_NAME)

Handler = Callable[[Path, Repository], UpdateResult]
DoneCallback = Callable[["SyncTask", UpdateResult | None, Exception | None], None]


@dataclass(frozen=True)
class SyncTask:
    """A repository paired with the local path its mirror lives at."""

    repo: Repository
    path: Path


class RateLimiter:
    """Fixed-cadence ticker: at most `rate` ticks per second.

    The first tick fires one interval after the first call. Ticks missed while
    the caller was busy are dropped rather than delivered in a burst.
    """

    def __init__(
        self,
        rate: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        self.interval = 1.0 / rate
        self._clock = clock
        self._sleep = sleep
        self._next_tick: float | None = None

    def wait(self) -> float:
        """Blocks until the next tick.

        Returns:
            float: Seconds spent sleeping.
        """
        now = self._clock()
        if self._next_tick is None:
            self._next_tick = now + self.interval
        delay = self._next_tick - now
        if delay > 0:
            self._sleep(delay)
            now = self._next_tick
        self._next_tick = now + self.interval
        return max(delay, 0.0)


class TaskCounter:
    """Counts tasks submitted but not yet finished.

    Equivalent to a wait group: `add` before a task becomes visible, `done`
    exactly once when it finishes, `wait` until the count drops to zero.
    """

    def __init__(self) -> None:
        self._count = 0
        self._cond = threading.Condition()

    @property
    def value(self) -> int:
        with self._cond:
            return self._count

    def add(self, delta: int = 1) -> None:
        """Adjusts the counter, waking waiters when it reaches zero.

        Raises:
            ValueError: If the adjustment would make the counter negative.
        """
        with self._cond:
            if self._count + delta < 0:
                raise ValueError("TaskCounter would become negative")
            self._count += delta
            if self._count == 0:
                self._cond.notify_all()

    def done(self) -> None:
        self.add(-1)

    def wait(self, timeout: float | None = None) -> bool:
        """Blocks until the counter is zero.

        Returns:
            bool: False if `timeout` elapsed first.
        """
        with self._cond:
            return self._cond.wait_for(lambda: self._count == 0, timeout)


class Worker(threading.Thread):
    """Consumes tasks from the pool queue until the pool is closed and drained.

    Each worker owns its rate limiter. A failing task is logged and counted;
    it never stops the worker.
    """

    def __init__(self, worker_id: int, pool: "WorkerPool", rate_limiter: RateLimiter):
        super().__init__(name=f"sync-worker-{worker_id}", daemon=True)
        self.worker_id = worker_id
        self.pool = pool
        self.rate_limiter = rate_limiter
        self.processed = 0

    def run(self) -> None:
        # Exit only on closed-and-empty; the shutdown signal reaches workers
        # through the producer, which closes the pool as soon as it sees it.
        while True:
            try:
                task = self.pool.tasks.get(timeout=QUEUE_POLL_SECONDS)
            except queue.Empty:
                # close() follows the producer's last put, so re-checking the
                # queue after seeing `closed` cannot miss a task.
                if self.pool.closed.is_set() and self.pool.tasks.empty():
                    logger.debug(f"Worker {self.worker_id}: queue drained, exiting")
                    return
                continue

            try:
                self.rate_limiter.wait()
                self._process(task)
            finally:
                self.processed += 1
                self.pool.tasks.task_done()
                self.pool.counter.done()

    def _process(self, task: SyncTask) -> None:
        name = task.repo.name
        result: UpdateResult | None = None
        error: Exception | None = None
        try:
            result = self.pool.handler(task.path, task.repo)
            if not isinstance(result, UpdateResult):
                raise TypeError(f"Handler returned {result!r}, not an UpdateResult")
            if result is UpdateResult.DIVERGED:
                logger.warning(
                    f"DIVERGED {name} (worker {self.worker_id}): local history "
                    "cannot be fast-forwarded. Mirror left as-is."
                )
            else:
                logger.info(
                    f"{result.value.upper()} {name} (worker {self.worker_id})"
                )
        except CloneError as e:
            result, error = None, e
            logger.error(f"CLONE ERROR {name} (worker {self.worker_id}): {e}")
        except PullError as e:
            result, error = None, e
            logger.error(f"PULL ERROR {name} (worker {self.worker_id}): {e}")
        except Exception as e:
            result, error = None, e
            logger.exception(f"TASK ERROR {name} (worker {self.worker_id})")

        if self.pool.on_done is not None:
            try:
                self.pool.on_done(task, result, error)
            except Exception:
                logger.exception(f"Result callback failed for {name}")


class WorkerPool:
    """A fixed set of workers bound to one bounded queue.

    Used as a context manager: entering starts the workers; leaving closes the
    queue, waits for every outstanding task, and joins the threads.

    Attributes:
        tasks (queue.Queue): The shared bounded task queue.
        counter (TaskCounter): Outstanding (submitted, unfinished) tasks.
        closed (threading.Event): Set once no more tasks will be submitted.
        stop_event (threading.Event): The shared cancellation signal.
    """

    def __init__(
        self,
        handler: Handler,
        worker_count: int,
        queue_size: int,
        rate_limit: float,
        stop_event: threading.Event | None = None,
        on_done: DoneCallback | None = None,
    ):
        if worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {worker_count}")
        if queue_size < 1:
            raise ValueError(f"queue_size must be >= 1, got {queue_size}")
        self.handler = handler
        self.on_done = on_done
        self.stop_event = stop_event or threading.Event()
        self.tasks: queue.Queue[SyncTask] = queue.Queue(maxsize=queue_size)
        self.counter = TaskCounter()
        self.closed = threading.Event()
        self.workers = [
            Worker(i, self, RateLimiter(rate_limit)) for i in range(worker_count)
        ]

    def __enter__(self) -> "WorkerPool":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
        self.wait()
        self.join()

    def start(self) -> None:
        for worker in self.workers:
            worker.start()

    def submit(self, task: SyncTask) -> bool:
        """Enqueues a task, blocking while the queue is full.

        The counter is incremented before the task becomes visible to workers.
        If the shutdown signal fires while blocked, the task is abandoned and
        the increment is rolled back.

        Returns:
            bool: True if the task was enqueued, False if abandoned.

        Raises:
            RuntimeError: If the pool is already closed.
        """
        if self.closed.is_set():
            raise RuntimeError("Cannot submit to a closed worker pool")
        self.counter.add()
        while True:
            try:
                self.tasks.put(task, timeout=QUEUE_POLL_SECONDS)
                return True
            except queue.Full:
                if self.stop_event.is_set():
                    self.counter.done()
                    return False

    def close(self) -> None:
        """Marks the queue closed; workers exit once it is drained."""
        self.closed.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Blocks until every submitted task has finished."""
        return self.counter.wait(timeout)

    def join(self, timeout: float | None = None) -> None:
        for worker in self.workers:
            if worker.is_alive():
                worker.join(timeout)
