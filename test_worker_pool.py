#!/usr/bin/env python3
"""
Tests for HashWorkerPool
"""

import os
import threading
import time
from collections import Counter

import pytest

from dupscan.core.errors import ConfigurationError
from dupscan.core.hasher import FileHasher
from dupscan.core.index import DuplicateIndex
from dupscan.core.models import FileTask
from dupscan.core.worker_pool import AtomicCounter, HashWorkerPool


def make_tasks(root, contents):
    tasks = []
    for name, data in contents.items():
        path = root / name
        path.write_bytes(data)
        st = os.stat(path)
        tasks.append(FileTask(path=str(path), size=st.st_size, mtime=st.st_mtime))
    return tasks


def sample_contents(n=24):
    # file i and file i + 8 share content for i < 8; files from 16 on are unique
    return {f"file{i:02d}.bin": f"content-{i % 8}".encode() * (1 + i // 16)
            for i in range(n)}


class RecordingHasher:
    """Stand-in hasher that records calls and can block or cancel"""
    algorithm = "fake"

    def __init__(self, delay=0.0, release=None, on_call=None):
        self.delay = delay
        self.release = release
        self.on_call = on_call
        self.calls = Counter()
        self._lock = threading.Lock()

    def hash_file(self, path):
        with self._lock:
            self.calls[path] += 1
        if self.on_call is not None:
            self.on_call(path)
        if self.release is not None:
            self.release.wait(timeout=5)
        if self.delay:
            time.sleep(self.delay)
        return "f" * 32


def test_one_result_per_task_in_submission_order(tmp_path):
    tasks = make_tasks(tmp_path, sample_contents())

    with HashWorkerPool(FileHasher("md5"), workers=4) as pool:
        results = pool.process(tasks)

    assert len(results) == len(tasks)
    assert [r.task for r in results] == tasks
    assert all(r.ok for r in results)
    assert all(r.record.size_bytes == r.task.size for r in results)


def test_concurrency_equivalence(tmp_path):
    tasks = make_tasks(tmp_path, sample_contents())
    hasher = FileHasher("sha256")

    def run(workers):
        with HashWorkerPool(hasher, workers=workers) as pool:
            results = pool.process(tasks)
        index = DuplicateIndex()
        for result in results:
            index.upsert(result.record)
        records = {(r.record.path, r.record.digest, r.record.size_bytes) for r in results}
        groups = [(g.digest, g.paths) for g in index.all_groups()]
        return records, groups

    single_records, single_groups = run(1)
    multi_records, multi_groups = run(6)

    assert single_records == multi_records
    assert single_groups == multi_groups
    assert len(single_groups) > 0


def test_failures_are_isolated(tmp_path):
    tasks = make_tasks(tmp_path, {"a.txt": b"same", "b.txt": b"same", "c.txt": b"other"})
    missing = FileTask(path=str(tmp_path / "missing.txt"), size=10, mtime=0.0)
    tasks.insert(1, missing)

    with HashWorkerPool(FileHasher("md5"), workers=3) as pool:
        results = pool.process(tasks)

    assert [r.ok for r in results] == [True, False, True, True]
    assert results[1].error.kind == "not_found"
    assert results[1].error.path == missing.path


def test_no_task_is_processed_twice(tmp_path):
    tasks = [FileTask(path=f"/virtual/{i}", size=1, mtime=0.0) for i in range(200)]
    hasher = RecordingHasher(delay=0.001)

    with HashWorkerPool(hasher, workers=8) as pool:
        results = pool.process(tasks)

    assert len(results) == 200
    assert all(r.ok for r in results)
    assert set(hasher.calls) == {t.path for t in tasks}
    assert set(hasher.calls.values()) == {1}


def test_empty_input():
    with HashWorkerPool(FileHasher(), workers=2) as pool:
        assert pool.process([]) == []


def test_cancel_before_start_reports_every_task_cancelled():
    tasks = [FileTask(path=f"/virtual/{i}", size=1, mtime=0.0) for i in range(5)]
    hasher = RecordingHasher()
    cancel = threading.Event()
    cancel.set()

    with HashWorkerPool(hasher, workers=2) as pool:
        results = pool.process(tasks, cancel_event=cancel)

    assert len(results) == 5
    assert all(r.error.kind == "cancelled" for r in results)
    assert not hasher.calls


def test_cancel_lets_in_flight_work_finish():
    tasks = [FileTask(path=f"/virtual/{i}", size=1, mtime=0.0) for i in range(10)]
    cancel = threading.Event()
    hasher = RecordingHasher(on_call=lambda path: cancel.set())

    with HashWorkerPool(hasher, workers=1) as pool:
        results = pool.process(tasks, cancel_event=cancel)

    assert results[0].ok
    assert [r.error.kind for r in results[1:]] == ["cancelled"] * 9
    assert sum(hasher.calls.values()) == 1


def test_timeout_abandons_stragglers():
    tasks = [FileTask(path=f"/virtual/{i}", size=1, mtime=0.0) for i in range(6)]
    release = threading.Event()
    hasher = RecordingHasher(release=release)

    try:
        with HashWorkerPool(hasher, workers=2, timeout=0.2) as pool:
            start = time.monotonic()
            results = pool.process(tasks)
            elapsed = time.monotonic() - start
    finally:
        release.set()

    assert elapsed < 3
    assert len(results) == 6
    assert all(r.error.kind == "timeout" for r in results)


def test_progress_callback_receives_final_event(tmp_path):
    tasks = make_tasks(tmp_path, sample_contents(12))
    events = []

    with HashWorkerPool(FileHasher(), workers=3, progress_callback=events.append,
                        progress_every=1) as pool:
        pool.process(tasks)

    assert events
    assert events[-1].completed == 12
    assert events[-1].total == 12
    assert events[-1].failed == 0
    assert events[-1].bytes_hashed == sum(t.size for t in tasks)
    assert pool.last_progress.completed == 12


def test_failing_progress_callback_does_not_affect_results(tmp_path):
    tasks = make_tasks(tmp_path, sample_contents(6))

    def explode(event):
        raise RuntimeError("display broke")

    with HashWorkerPool(FileHasher(), workers=2, progress_callback=explode, progress_every=1) as pool:
        results = pool.process(tasks)

    assert all(r.ok for r in results)


@pytest.mark.parametrize("kwargs", [{"workers": 0}, {"workers": -2}, {"timeout": 0}, {"timeout": -1.0}])
def test_invalid_configuration(kwargs):
    with pytest.raises(ConfigurationError):
        HashWorkerPool(FileHasher(), **kwargs)


def test_closed_pool_rejects_work():
    pool = HashWorkerPool(FileHasher(), workers=1)
    with pool:
        pass
    with pytest.raises(ConfigurationError):
        pool.process([FileTask(path="/x", size=0, mtime=0.0)])


def test_atomic_counter_under_contention():
    counter = AtomicCounter()

    def bump():
        for _ in range(1000):
            counter.increment()

    threads = [threading.Thread(target=bump) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert counter.value == 8000


def test_unusable_mtime_fails_only_that_file(tmp_path):
    tasks = make_tasks(tmp_path, {"a.txt": b"same", "b.txt": b"same", "c.txt": b"other"})
    odd = tmp_path / "far_future.txt"
    odd.write_bytes(b"same")
    tasks.insert(2, FileTask(path=str(odd), size=4, mtime=1e12))

    with HashWorkerPool(FileHasher("md5"), workers=1) as pool:
        results = pool.process(tasks)

    assert len(results) == 4
    assert [r.ok for r in results] == [True, True, False, True]
    assert results[2].error.kind == "io_failure"
    assert results[2].error.path == str(odd)


def test_progress_is_rate_limited(tmp_path):
    tasks = make_tasks(tmp_path, sample_contents(12))
    events = []

    with HashWorkerPool(FileHasher(), workers=3, progress_callback=events.append,
                        progress_every=100, progress_interval=3600.0) as pool:
        pool.process(tasks)

    assert len(events) == 1
    assert events[0].completed == 12
    assert events[0].total == 12
