#!/usr/bin/env python3
"""
Value types shared by the scanner, worker pool, index and pipeline
"""

import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .errors import HashError, IndexViolation


def normalize_path(path) -> str:
    """Absolute, normalized string form used as the index key"""
    return os.path.normpath(os.path.abspath(os.fspath(path)))


@dataclass(frozen=True)
class FileTask:
    """A single file awaiting hashing, as produced by traversal"""
    path: str
    size: int
    mtime: float

    @property
    def modified_at(self) -> datetime:
        return datetime.fromtimestamp(self.mtime)

    @property
    def file_name(self) -> str:
        return os.path.basename(self.path)


@dataclass(frozen=True)
class FileRecord:
    """Fingerprinted file. Superseded, never mutated, on re-indexing."""
    path: str
    digest: str
    size_bytes: int
    modified_at: datetime
    indexed_at: datetime = field(default_factory=datetime.now, compare=False)

    @classmethod
    def from_task(cls, task: FileTask, digest: str) -> "FileRecord":
        return cls(
            path=task.path,
            digest=digest,
            size_bytes=task.size,
            modified_at=task.modified_at,
        )

    def validate(self) -> None:
        if not self.path or not self.path.strip():
            raise IndexViolation("FileRecord path must not be empty")
        if not self.digest or not self.digest.strip():
            raise IndexViolation(f"FileRecord digest must not be empty: {self.path}")
        if self.size_bytes < 0:
            raise IndexViolation(
                f"FileRecord size must be >= 0, got {self.size_bytes}: {self.path}"
            )

    def needs_reindexing(self, current_mtime: float) -> bool:
        """True if the file was modified after this record was taken"""
        return datetime.fromtimestamp(current_mtime) > self.modified_at

    @property
    def file_name(self) -> str:
        return os.path.basename(self.path)

    def __str__(self) -> str:
        return f"FileRecord({self.file_name}, {self.size_bytes} bytes, {self.digest[:8]}...)"


@dataclass
class HashResult:
    """Outcome of hashing one task: exactly one of record or error is set"""
    task: FileTask
    record: Optional[FileRecord] = None
    error: Optional[HashError] = None

    @property
    def ok(self) -> bool:
        return self.record is not None


@dataclass(frozen=True)
class DuplicateGroup:
    """Files sharing one digest, at least two members"""
    digest: str
    size: int
    records: List[FileRecord]

    @property
    def count(self) -> int:
        return len(self.records)

    @property
    def paths(self) -> List[str]:
        return [r.path for r in self.records]

    @property
    def wasted_space(self) -> int:
        return self.size * (self.count - 1)
