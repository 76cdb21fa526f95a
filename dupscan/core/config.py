#!/usr/bin/env python3
"""
Scan configuration with smart defaults
"""

from dataclasses import dataclass, field
from typing import List, Optional, Set

from .errors import ConfigurationError
from .hasher import ALGORITHMS, DEFAULT_ALGORITHM, DEFAULT_CHUNK_SIZE
from .scanner import DEFAULT_EXCLUDED_DIRS, PathFilter
from .worker_pool import default_workers


@dataclass
class ScanConfig:
    """Pipeline configuration"""
    # Paths
    root: str = "."

    # Hashing
    hash_algorithm: str = DEFAULT_ALGORITHM
    chunk_size: int = DEFAULT_CHUNK_SIZE
    retry_attempts: int = 3
    retry_backoff: float = 0.2

    # Performance
    workers: int = field(default_factory=default_workers)
    timeout: Optional[float] = None  # seconds, None = wait for all workers
    progress_interval: float = 2.0
    progress_every: int = 100

    # Traversal
    follow_symlinks: bool = False
    max_depth: Optional[int] = None
    min_size: int = 0
    max_size: Optional[int] = None
    scan_hidden: bool = False
    excluded_dirs: Set[str] = field(default_factory=lambda: set(DEFAULT_EXCLUDED_DIRS))
    excluded_extensions: Set[str] = field(default_factory=set)
    include_patterns: List[str] = field(default_factory=list)

    def validate(self) -> None:
        """Validate configuration"""
        if self.hash_algorithm.lower() not in ALGORITHMS:
            raise ConfigurationError(f"Unsupported hash algorithm: {self.hash_algorithm!r}")
        if self.workers < 1:
            raise ConfigurationError("Workers must be >= 1")
        if self.chunk_size < 1:
            raise ConfigurationError("Chunk size must be >= 1 byte")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError("Timeout must be > 0 seconds")
        if self.retry_attempts < 1:
            raise ConfigurationError("Retry attempts must be >= 1")
        if self.min_size < 0:
            raise ConfigurationError("Min size cannot be negative")
        if self.max_size is not None and self.max_size < self.min_size:
            raise ConfigurationError("Max size cannot be below min size")
        if self.max_depth is not None and self.max_depth < 0:
            raise ConfigurationError("Max depth cannot be negative")

    def build_filter(self) -> PathFilter:
        return PathFilter(
            min_size=self.min_size,
            max_size=self.max_size,
            excluded_dirs=self.excluded_dirs,
            excluded_extensions=self.excluded_extensions,
            include_patterns=self.include_patterns,
            scan_hidden=self.scan_hidden,
        )
