#!/usr/bin/env python3
"""
Pipeline orchestrator: scan -> parallel hash -> index -> group

Stages run strictly in order. Only hashing is parallel; the index is built
on this thread after the worker pool has fully drained. A traversal failure
ends the run in FAILED without touching later stages; per-file hash failures
are counted and the run continues with the files that did hash.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .config import ScanConfig
from .errors import ConfigurationError, DupScanError, TraversalError
from .grouping import find_duplicate_groups
from .hasher import FileHasher
from .index import DuplicateIndex, IndexStatistics
from .models import DuplicateGroup, FileTask, HashResult
from .scanner import FileScanner
from .worker_pool import HashWorkerPool, ProgressCallback

logger = logging.getLogger(__name__)

PHASES = ("scanning", "hashing", "indexing")


class PipelineState(Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    HASHING = "hashing"
    INDEXING = "indexing"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    PipelineState.IDLE: {PipelineState.SCANNING, PipelineState.FAILED},
    PipelineState.SCANNING: {PipelineState.HASHING, PipelineState.FAILED},
    PipelineState.HASHING: {PipelineState.INDEXING, PipelineState.FAILED},
    PipelineState.INDEXING: {PipelineState.DONE, PipelineState.FAILED},
    PipelineState.DONE: set(),
    PipelineState.FAILED: set(),
}


# ---------------------------
# Statistics
# ---------------------------

@dataclass
class ScanStats:
    """Counters and stage timings for one run"""
    files_discovered: int = 0
    files_hashed: int = 0
    files_failed: int = 0
    files_removed: int = 0

    bytes_discovered: int = 0
    bytes_hashed: int = 0

    start_time: float = field(default_factory=time.time)
    phase_times: Dict[str, float] = field(default_factory=dict)

    failures_by_kind: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    error_count: int = 0

    def add_error(self, msg: str) -> None:
        self.error_count += 1
        timestamp = datetime.now().strftime("%H:%M:%S")
        self.errors.append(f"[{timestamp}] {msg}")
        if len(self.errors) > 100:  # Keep last 100
            self.errors = self.errors[-100:]

    def get_duration(self) -> float:
        return time.time() - self.start_time

    def get_rate(self, metric: str = "files_hashed", phase: Optional[str] = None) -> float:
        """Rate per second over the whole run, or over one phase"""
        duration = self.phase_duration(phase) if phase else self.get_duration()
        if not duration or duration <= 0:
            return 0.0
        return getattr(self, metric, 0) / duration

    def start_phase(self, phase: str) -> None:
        self.phase_times[f"{phase}_start"] = time.time()

    def end_phase(self, phase: str) -> None:
        start_key = f"{phase}_start"
        if start_key in self.phase_times:
            self.phase_times[f"{phase}_duration"] = time.time() - self.phase_times[start_key]

    def phase_duration(self, phase: str) -> Optional[float]:
        return self.phase_times.get(f"{phase}_duration")


@dataclass(frozen=True)
class FailureDetail:
    path: str
    kind: str
    message: str


@dataclass
class PipelineResult:
    """Terminal state of a run, consumed by reporting"""
    state: PipelineState
    stats: ScanStats
    processed: int = 0
    failed: int = 0
    failures: List[FailureDetail] = field(default_factory=list)
    groups: List[DuplicateGroup] = field(default_factory=list)
    statistics: IndexStatistics = field(default_factory=IndexStatistics)
    error: Optional[DupScanError] = None
    root: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.DONE

    @property
    def timings(self) -> Dict[str, float]:
        return {
            phase: self.stats.phase_duration(phase)
            for phase in PHASES
            if self.stats.phase_duration(phase) is not None
        }


@dataclass(frozen=True)
class SpeedupResult:
    """Measured wall time of one worker against N workers"""
    workers: int
    files: int
    single_thread_seconds: float
    multi_thread_seconds: float

    @property
    def speedup(self) -> float:
        if self.multi_thread_seconds <= 0:
            return 0.0
        return self.single_thread_seconds / self.multi_thread_seconds

    @property
    def efficiency(self) -> float:
        return self.speedup / self.workers * 100 if self.workers else 0.0


# ---------------------------
# Orchestrator
# ---------------------------

class DuplicatePipeline:
    """Run the scan/hash/index/group stages and collect their statistics"""

    def __init__(self, config: ScanConfig, scanner: Optional[FileScanner] = None,
                 progress_callback: Optional[ProgressCallback] = None):
        config.validate()
        self.config = config
        self.hasher = FileHasher(
            config.hash_algorithm,
            config.chunk_size,
            config.retry_attempts,
            config.retry_backoff,
        )
        self.scanner = scanner or FileScanner(
            config.build_filter(),
            follow_symlinks=config.follow_symlinks,
            max_depth=config.max_depth,
        )
        self.progress_callback = progress_callback
        self.index = DuplicateIndex()
        self.state = PipelineState.IDLE
        self.stats = ScanStats()
        self.last_result: Optional[PipelineResult] = None

    def _transition(self, new_state: PipelineState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise DupScanError(f"Invalid pipeline transition {self.state.value} -> {new_state.value}")
        logger.debug(f"Pipeline: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def _new_pool(self, workers: Optional[int] = None,
                  progress_callback: Optional[ProgressCallback] = None) -> HashWorkerPool:
        return HashWorkerPool(
            self.hasher,
            workers=workers or self.config.workers,
            timeout=self.config.timeout,
            progress_callback=progress_callback,
            progress_interval=self.config.progress_interval,
            progress_every=self.config.progress_every,
        )

    def run(self, root: Optional[str] = None,
            cancel_event: Optional[threading.Event] = None) -> PipelineResult:
        """Execute the complete pipeline from a fresh index"""
        root = root or self.config.root
        self.state = PipelineState.IDLE
        self.stats = ScanStats()
        self.index.clear()

        logger.info(f"Algorithm: {self.hasher.algorithm} | Workers: {self.config.workers}")

        try:
            self._transition(PipelineState.SCANNING)
            logger.info("Phase 1: Scanning files...")
            self.stats.start_phase("scanning")
            try:
                tasks = self.scanner.scan(root)
            except TraversalError as e:
                self.stats.end_phase("scanning")
                return self._fail(e, root)
            self.stats.end_phase("scanning")
            self.stats.files_discovered = len(tasks)
            self.stats.bytes_discovered = sum(t.size for t in tasks)
            for err in getattr(self.scanner, "errors", []):
                self.stats.add_error(err)

            results = self._hash_stage(tasks, cancel_event)
            return self._index_stage(results, root)
        except BaseException:
            self.state = PipelineState.FAILED
            raise

    def refresh(self, cancel_event: Optional[threading.Event] = None) -> PipelineResult:
        """
        Re-hash files modified since the last run and drop deleted ones.

        Only valid after a completed run. The staleness check takes the
        place of the scanning stage.
        """
        if self.last_result is None or not self.last_result.succeeded:
            raise ConfigurationError("refresh requires a completed run")

        root = self.last_result.root
        self.state = PipelineState.IDLE
        self.stats = ScanStats()

        try:
            self._transition(PipelineState.SCANNING)
            logger.info("Checking indexed files for changes...")
            self.stats.start_phase("scanning")
            stale, missing = self.index.stale_paths()
            for path in missing:
                self.index.remove(path)
            tasks = self.scanner.restat(stale)
            # Stale paths that vanished before they could be re-stat'd
            restated = {t.path for t in tasks}
            vanished = [path for path in stale if path not in restated]
            for path in vanished:
                self.index.remove(path)
            missing = list(missing) + vanished
            self.stats.end_phase("scanning")
            self.stats.files_removed = len(missing)
            self.stats.files_discovered = len(tasks)
            self.stats.bytes_discovered = sum(t.size for t in tasks)
            logger.info(f"{len(stale):,} modified, {len(missing):,} removed")

            results = self._hash_stage(tasks, cancel_event)
            return self._index_stage(results, root)
        except BaseException:
            self.state = PipelineState.FAILED
            raise

    def _hash_stage(self, tasks: List[FileTask],
                    cancel_event: Optional[threading.Event]) -> List[HashResult]:
        self._transition(PipelineState.HASHING)
        logger.info(f"Phase 2: Hashing {len(tasks):,} files...")
        self.stats.start_phase("hashing")
        with self._new_pool(progress_callback=self.progress_callback) as pool:
            results = pool.process(tasks, cancel_event)
        self.stats.end_phase("hashing")
        return results

    def _index_stage(self, results: List[HashResult], root: Optional[str]) -> PipelineResult:
        self._transition(PipelineState.INDEXING)
        self.stats.start_phase("indexing")

        failures = []
        for result in results:
            if result.ok:
                self.index.upsert(result.record)
                self.stats.files_hashed += 1
                self.stats.bytes_hashed += result.record.size_bytes
            else:
                err = result.error
                # A file that no longer hashes cannot keep an old digest
                self.index.remove(result.task.path)
                failures.append(FailureDetail(err.path, err.kind, err.message))
                self.stats.files_failed += 1
                self.stats.failures_by_kind[err.kind] = self.stats.failures_by_kind.get(err.kind, 0) + 1
                self.stats.add_error(str(err))

        if logger.isEnabledFor(logging.DEBUG):
            self.index.check_consistency()

        groups = find_duplicate_groups(self.index)
        statistics = self.index.statistics()
        self.stats.end_phase("indexing")
        self._transition(PipelineState.DONE)

        logger.info(
            f"Phase 3 complete: {self.stats.files_hashed:,} hashed, {self.stats.files_failed:,} failed, "
            f"{statistics.duplicate_group_count} duplicate sets "
            f"({statistics.duplicate_bytes / (1024**2):.2f} MB reclaimable)"
        )

        self.last_result = PipelineResult(
            state=self.state,
            stats=self.stats,
            processed=self.stats.files_hashed,
            failed=self.stats.files_failed,
            failures=failures,
            groups=groups,
            statistics=statistics,
            root=root,
        )
        return self.last_result

    def _fail(self, error: DupScanError, root: Optional[str]) -> PipelineResult:
        self._transition(PipelineState.FAILED)
        logger.error(f"Scan failed: {error}")
        self.stats.add_error(f"Fatal: {error}")
        self.last_result = PipelineResult(state=self.state, stats=self.stats, error=error, root=root)
        return self.last_result

    def compare_performance(self, tasks: Sequence[FileTask]) -> SpeedupResult:
        """
        Time the hashing stage with one worker, then with the configured count.

        The second pass reads from a warmer page cache, so the measured
        speedup is an upper bound on cold-disk gains.
        """
        tasks = list(tasks)
        logger.info(f"Comparing 1 vs {self.config.workers} workers on {len(tasks):,} files...")

        with self._new_pool(workers=1) as pool:
            start = time.perf_counter()
            pool.process(tasks)
            single = time.perf_counter() - start

        with self._new_pool() as pool:
            start = time.perf_counter()
            pool.process(tasks)
            multi = time.perf_counter() - start

        result = SpeedupResult(self.config.workers, len(tasks), single, multi)
        logger.info(
            f"Single: {single:.2f}s | Multi: {multi:.2f}s | "
            f"Speedup: {result.speedup:.2f}x | Efficiency: {result.efficiency:.1f}%"
        )
        return result
