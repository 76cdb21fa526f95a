#!/usr/bin/env python3
"""
In-memory duplicate index

Two views over one record set: by_path (authoritative) and by_digest
(secondary). Every public mutation updates both views before returning, so
between calls each indexed path sits in exactly one bucket, the one matching
its current record's digest.

Single writer: the pipeline only mutates the index after the worker pool has
drained, so there is no locking here.
"""

import logging
import os
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, Tuple

from .errors import IndexViolation
from .models import DuplicateGroup, FileRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexStatistics:
    total_files: int = 0
    total_bytes: int = 0
    duplicate_group_count: int = 0
    duplicate_file_count: int = 0
    duplicate_bytes: int = 0

    @property
    def potential_savings(self) -> int:
        return self.duplicate_bytes


class DuplicateIndex:
    """Content-addressed index of fingerprinted files"""

    def __init__(self):
        self._by_path: Dict[str, FileRecord] = {}
        self._by_digest: Dict[str, Set[str]] = {}

    def __len__(self) -> int:
        return len(self._by_path)

    def __contains__(self, path: str) -> bool:
        return path in self._by_path

    # ---------------------------
    # Mutation
    # ---------------------------

    def upsert(self, record: FileRecord) -> None:
        """Insert or replace the record for record.path, moving buckets if needed"""
        if not isinstance(record, FileRecord):
            raise IndexViolation(f"Expected FileRecord, got {type(record).__name__}")
        record.validate()

        existing = self._by_path.get(record.path)
        if existing is not None and existing.digest != record.digest:
            self._discard_from_bucket(existing.digest, record.path)

        self._by_path[record.path] = record
        self._by_digest.setdefault(record.digest, set()).add(record.path)

    def remove(self, path: str) -> bool:
        record = self._by_path.pop(path, None)
        if record is None:
            return False
        self._discard_from_bucket(record.digest, path)
        return True

    def clear(self) -> None:
        self._by_path.clear()
        self._by_digest.clear()

    def _discard_from_bucket(self, digest: str, path: str) -> None:
        bucket = self._by_digest.get(digest)
        if bucket is None:
            return
        bucket.discard(path)
        if not bucket:
            del self._by_digest[digest]

    # ---------------------------
    # Queries
    # ---------------------------

    def get(self, path: str) -> Optional[FileRecord]:
        return self._by_path.get(path)

    def records(self) -> List[FileRecord]:
        return [self._by_path[p] for p in sorted(self._by_path)]

    def paths_for_digest(self, digest: str) -> Set[str]:
        return set(self._by_digest.get(digest, ()))

    def duplicates_of(self, path: str) -> List[FileRecord]:
        """Other indexed files sharing path's current digest"""
        record = self._by_path.get(path)
        if record is None:
            return []
        bucket = self._by_digest.get(record.digest, set())
        if len(bucket) <= 1:
            return []
        return [self._by_path[p] for p in sorted(bucket) if p != path]

    def all_groups(self) -> List[DuplicateGroup]:
        """
        Every bucket with two or more members.

        Sorted by member count descending, then digest ascending; members
        are sorted by path.
        """
        groups = []
        for digest, paths in self._by_digest.items():
            if len(paths) < 2:
                continue
            records = [self._by_path[p] for p in sorted(paths)]
            groups.append(DuplicateGroup(digest=digest, size=records[0].size_bytes, records=records))

        groups.sort(key=lambda g: (-g.count, g.digest))
        return groups

    def statistics(self) -> IndexStatistics:
        group_count = 0
        dup_files = 0
        dup_bytes = 0
        for digest, paths in self._by_digest.items():
            if len(paths) < 2:
                continue
            first = self._by_path[min(paths)]
            group_count += 1
            dup_files += len(paths) - 1
            dup_bytes += first.size_bytes * (len(paths) - 1)

        return IndexStatistics(
            total_files=len(self._by_path),
            total_bytes=sum(r.size_bytes for r in self._by_path.values()),
            duplicate_group_count=group_count,
            duplicate_file_count=dup_files,
            duplicate_bytes=dup_bytes,
        )

    def stale_paths(self, stat: Callable = os.stat) -> Tuple[List[str], List[str]]:
        """
        Single staleness check against the filesystem.

        Returns (stale, missing): paths modified since they were indexed and
        paths that no longer exist.
        """
        stale = []
        missing = []
        for path in sorted(self._by_path):
            try:
                st = stat(path)
            except FileNotFoundError:
                missing.append(path)
                continue
            except OSError as e:
                logger.debug(f"Cannot stat {path}: {e}")
                continue
            if self._by_path[path].needs_reindexing(st.st_mtime):
                stale.append(path)
        return stale, missing

    def check_consistency(self) -> None:
        """Raise IndexViolation if the two views disagree"""
        seen: Set[str] = set()
        for digest, paths in self._by_digest.items():
            if not paths:
                raise IndexViolation(f"Empty bucket left for digest {digest}")
            for path in paths:
                record = self._by_path.get(path)
                if record is None:
                    raise IndexViolation(f"Bucket {digest} holds unindexed path {path}")
                if record.digest != digest:
                    raise IndexViolation(
                        f"{path} is in bucket {digest} but its record has digest {record.digest}"
                    )
                if path in seen:
                    raise IndexViolation(f"{path} appears in more than one bucket")
                seen.add(path)

        if seen != set(self._by_path):
            orphans = sorted(set(self._by_path) - seen)
            raise IndexViolation(f"Paths missing from digest buckets: {orphans[:5]}")
