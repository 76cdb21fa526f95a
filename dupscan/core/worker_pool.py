#!/usr/bin/env python3
"""
Bounded worker pool for parallel file hashing

A fixed number of worker loops pull (position, task) pairs from one shared
queue and push results into a lock-protected collector keyed by position.
Every input task yields exactly one HashResult: a record, a per-file error,
or a cancelled/timeout marker for tasks that never produced a result.
"""

import logging
import os
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, List, Optional, Tuple

from .errors import (
    CancelledHashError,
    ConfigurationError,
    HashError,
    IOFailureHashError,
    TimeoutHashError,
)
from .hasher import FileHasher
from .models import FileRecord, FileTask, HashResult

logger = logging.getLogger(__name__)


def default_workers() -> int:
    return os.cpu_count() or 4


# ---------------------------
# Shared counters
# ---------------------------

class AtomicCounter:
    """Integer counter safe for concurrent increments"""

    def __init__(self, initial: int = 0):
        self._value = initial
        self._lock = threading.Lock()

    def increment(self, amount: int = 1) -> int:
        with self._lock:
            self._value += amount
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


# ---------------------------
# Progress
# ---------------------------

@dataclass(frozen=True)
class ProgressEvent:
    completed: int
    failed: int
    total: int
    bytes_hashed: int
    elapsed: float

    @property
    def rate(self) -> float:
        return self.completed / self.elapsed if self.elapsed > 0 else 0.0

    @property
    def percent(self) -> float:
        return (self.completed / self.total) * 100 if self.total else 100.0


ProgressCallback = Callable[[ProgressEvent], None]


class ProgressTracker:
    """Count completions and emit rate-limited progress events"""

    def __init__(self, total: int, callback: Optional[ProgressCallback] = None,
                 interval: float = 2.0, every: int = 100):
        self.total = total
        self.callback = callback
        self.interval = interval
        self.every = max(1, every)
        self.completed = AtomicCounter()
        self.failed = AtomicCounter()
        self.bytes_hashed = AtomicCounter()
        self.start_time = time.time()
        self.last_update = self.start_time
        self.last_count = 0
        self._emit_lock = threading.Lock()

    def record(self, result: HashResult) -> None:
        self.completed.increment()
        if result.ok:
            self.bytes_hashed.increment(result.record.size_bytes)
        else:
            self.failed.increment()
        self.update()

    def snapshot(self) -> ProgressEvent:
        return ProgressEvent(
            completed=self.completed.value,
            failed=self.failed.value,
            total=self.total,
            bytes_hashed=self.bytes_hashed.value,
            elapsed=time.time() - self.start_time,
        )

    def update(self, force: bool = False) -> None:
        if self.callback is None:
            return

        # Workers never wait on each other to report progress
        acquired = self._emit_lock.acquire(timeout=1.0) if force else self._emit_lock.acquire(blocking=False)
        if not acquired:
            return

        try:
            now = time.time()
            count = self.completed.value
            if not force and count - self.last_count < self.every and now - self.last_update < self.interval:
                return

            self.last_update = now
            self.last_count = count
            try:
                self.callback(self.snapshot())
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")
        finally:
            self._emit_lock.release()


# ---------------------------
# Result collection
# ---------------------------

class ResultCollector:
    """Position-keyed result slots; closed once the pool stops waiting"""

    def __init__(self, size: int):
        self._results: List[Optional[HashResult]] = [None] * size
        self._lock = threading.Lock()
        self._closed = False

    def add(self, position: int, result: HashResult) -> bool:
        with self._lock:
            if self._closed or self._results[position] is not None:
                return False
            self._results[position] = result
            return True

    def close(self) -> List[Optional[HashResult]]:
        with self._lock:
            self._closed = True
            return list(self._results)


class _Scope:
    abandoned = False


@contextmanager
def worker_threads(max_workers: int, stop_event: threading.Event) -> Iterator[Tuple[ThreadPoolExecutor, _Scope]]:
    """
    Executor that is always shut down on exit.

    Normally waits for every worker to finish. If the scope is marked
    abandoned (timeout), workers are told to stop and not waited for; any
    read already in progress completes on its own thread.
    """
    executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="dupscan-hash")
    scope = _Scope()
    try:
        yield executor, scope
    finally:
        stop_event.set()
        executor.shutdown(wait=not scope.abandoned, cancel_futures=True)


# ---------------------------
# Worker pool
# ---------------------------

class HashWorkerPool:
    """Hash a batch of FileTasks with a fixed number of worker threads"""

    def __init__(self, hasher: FileHasher, workers: Optional[int] = None,
                 timeout: Optional[float] = None,
                 progress_callback: Optional[ProgressCallback] = None,
                 progress_interval: float = 2.0, progress_every: int = 100):
        workers = default_workers() if workers is None else workers
        if workers < 1:
            raise ConfigurationError(f"Workers must be >= 1, got {workers}")
        if timeout is not None and timeout <= 0:
            raise ConfigurationError(f"Timeout must be > 0 seconds, got {timeout}")

        self.hasher = hasher
        self.workers = workers
        self.timeout = timeout
        self.progress_callback = progress_callback
        self.progress_interval = progress_interval
        self.progress_every = progress_every
        self.last_progress: Optional[ProgressEvent] = None
        self._closed = False

    def __enter__(self) -> "HashWorkerPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._closed = True

    def process(self, tasks: Iterable[FileTask],
                cancel_event: Optional[threading.Event] = None) -> List[HashResult]:
        """
        Hash every task and return one result per task, in submission order.

        Blocks until all workers have drained the queue, the cancel event
        stops them, or the timeout expires.
        """
        if self._closed:
            raise ConfigurationError("Worker pool is closed")

        tasks = list(tasks)
        if not tasks:
            return []

        task_queue: queue.Queue = queue.Queue()
        for item in enumerate(tasks):
            task_queue.put(item)

        collector = ResultCollector(len(tasks))
        tracker = ProgressTracker(len(tasks), self.progress_callback,
                                  self.progress_interval, self.progress_every)
        stop_event = threading.Event()
        worker_count = min(self.workers, len(tasks))
        timed_out = False

        logger.debug(f"Hashing {len(tasks):,} files with {worker_count} workers ({self.hasher.algorithm})")

        with worker_threads(worker_count, stop_event) as (executor, scope):
            futures = [
                executor.submit(self._worker_loop, task_queue, collector, tracker, stop_event, cancel_event)
                for _ in range(worker_count)
            ]
            done, pending = wait(futures, timeout=self.timeout)
            if pending:
                timed_out = True
                scope.abandoned = True
                logger.warning(
                    f"Hashing exceeded {self.timeout}s timeout; abandoning {len(pending)} busy worker(s)"
                )
            slots = collector.close()
            for future in done:
                future.result()

        cancelled = cancel_event is not None and cancel_event.is_set()
        results = []
        for task, result in zip(tasks, slots):
            if result is None:
                if timed_out:
                    error: HashError = TimeoutHashError(task.path, f"No result within {self.timeout}s")
                else:
                    error = CancelledHashError(task.path, "Cancelled before hashing started")
                result = HashResult(task, error=error)
            results.append(result)

        if cancelled and not timed_out:
            logger.info(f"Hashing cancelled after {tracker.completed.value:,}/{len(tasks):,} files")

        tracker.update(force=True)
        self.last_progress = tracker.snapshot()
        return results

    def _worker_loop(self, task_queue: queue.Queue, collector: ResultCollector,
                     tracker: ProgressTracker, stop_event: threading.Event,
                     cancel_event: Optional[threading.Event]) -> int:
        processed = 0
        while not stop_event.is_set():
            if cancel_event is not None and cancel_event.is_set():
                break
            try:
                position, task = task_queue.get_nowait()
            except queue.Empty:
                break

            result = self._hash_task(task)
            if collector.add(position, result):
                tracker.record(result)
            processed += 1
        return processed

    def _hash_task(self, task: FileTask) -> HashResult:
        try:
            digest = self.hasher.hash_file(task.path)
        except HashError as e:
            logger.debug(f"Failed to hash {task.path}: {e}")
            return HashResult(task, error=e)
        except Exception as e:
            logger.warning(f"Unexpected error hashing {task.path}: {e}", exc_info=True)
            return HashResult(task, error=IOFailureHashError(task.path, f"Hash error: {e}"))

        try:
            record = FileRecord.from_task(task, digest)
        except (ValueError, OverflowError, OSError) as e:
            # mtime outside the platform's datetime range
            logger.debug(f"Unusable modification time for {task.path}: {e}")
            return HashResult(task, error=IOFailureHashError(
                task.path, f"Invalid modification time {task.mtime!r}: {e}"))
        return HashResult(task, record=record)
