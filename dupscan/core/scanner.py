#!/usr/bin/env python3
"""
Directory traversal

Walks a tree and yields a FileTask (path, size, mtime) for every regular file
accepted by the filter. Symlink following and depth limits are handled here
and are invisible to the hashing pipeline.
"""

import logging
import os
import stat
from collections import defaultdict
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .errors import DirectoryNotFoundError, NotADirectoryError_
from .models import FileTask, normalize_path

logger = logging.getLogger(__name__)

FileFilter = Callable[[Path, int], bool]

DEFAULT_EXCLUDED_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv"}


# ---------------------------
# Path Filter
# ---------------------------

class PathFilter:
    """Filter paths by size, extension, directory and include rules"""

    def __init__(self, min_size: int = 0, max_size: Optional[int] = None,
                 excluded_dirs: Iterable[str] = (), excluded_extensions: Iterable[str] = (),
                 include_patterns: Iterable[str] = (), scan_hidden: bool = False):
        self.min_size = min_size
        self.max_size = max_size
        self.excluded_dirs = self._normalize_dirs(excluded_dirs)
        self.excluded_extensions = {self._normalize_ext(ext) for ext in excluded_extensions}
        self.include_patterns = [p.lower() for p in include_patterns]
        self.scan_hidden = scan_hidden
        self.exclusions: Dict[str, int] = defaultdict(int)

    @staticmethod
    def _normalize_ext(ext: str) -> str:
        ext = ext.lower()
        return ext if ext.startswith(".") else f".{ext}"

    @staticmethod
    def _normalize_dirs(dirs: Iterable[str]) -> Set[str]:
        normalized = set()
        for d in dirs:
            if os.path.isabs(d):
                normalized.add(os.path.normcase(os.path.normpath(d)).rstrip(os.sep))
            else:
                normalized.add(os.path.normcase(d))
        return normalized

    def is_excluded_dir(self, path: str, relative_to: Optional[str] = None) -> bool:
        """
        Absolute exclusions match by prefix; bare names match any path
        component below relative_to (or anywhere when it is None).
        """
        norm_path = os.path.normcase(os.path.normpath(path))
        parts_source = os.path.relpath(norm_path, os.path.normcase(relative_to)) if relative_to else norm_path
        path_parts = parts_source.split(os.sep)

        for excluded in self.excluded_dirs:
            if os.path.isabs(excluded):
                if norm_path == excluded or norm_path.startswith(excluded + os.sep):
                    return True
            elif excluded in path_parts:
                return True
        return False

    def should_process_file(self, path: Path, size: int) -> Tuple[bool, Optional[str]]:
        if size < self.min_size:
            return False, f"below_min_size:{self.min_size}"

        if self.max_size is not None and size > self.max_size:
            return False, f"above_max_size:{self.max_size}"

        if path.suffix.lower() in self.excluded_extensions:
            return False, f"excluded_extension:{path.suffix.lower()}"

        if self.include_patterns:
            path_lower = str(path).lower()
            if not any(pattern in path_lower for pattern in self.include_patterns):
                return False, "not_in_include_patterns"

        if not self.scan_hidden and path.name.startswith("."):
            return False, "hidden_file"

        return True, None

    def __call__(self, path: Path, size: int) -> bool:
        accepted, reason = self.should_process_file(path, size)
        if not accepted:
            self.exclusions[reason] += 1
        return accepted


class Filters:
    """Small composable file filters"""

    @staticmethod
    def accept_all() -> FileFilter:
        return lambda path, size: True

    @staticmethod
    def by_extensions(*extensions: str) -> FileFilter:
        suffixes = tuple(ext.lower() for ext in extensions)
        return lambda path, size: path.name.lower().endswith(suffixes)

    @staticmethod
    def min_size(min_bytes: int) -> FileFilter:
        return lambda path, size: size >= min_bytes

    @staticmethod
    def max_size(max_bytes: int) -> FileFilter:
        return lambda path, size: size <= max_bytes

    @staticmethod
    def exclude_hidden() -> FileFilter:
        return lambda path, size: not path.name.startswith(".")

    @staticmethod
    def all_of(*filters: FileFilter) -> FileFilter:
        return lambda path, size: all(f(path, size) for f in filters)


# ---------------------------
# File Scanner
# ---------------------------

class FileScanner:
    """Collect FileTasks for every accepted regular file under a root"""

    def __init__(self, file_filter: Optional[FileFilter] = None, follow_symlinks: bool = False,
                 max_depth: Optional[int] = None):
        self.file_filter = file_filter or Filters.accept_all()
        self.follow_symlinks = follow_symlinks
        self.max_depth = max_depth
        self.files_visited = 0
        self.files_skipped = 0
        self.errors: List[str] = []

    def scan(self, root) -> List[FileTask]:
        """
        Walk root and return its files as tasks.

        Raises DirectoryNotFoundError or NotADirectoryError_ for an invalid
        root. Entries that cannot be stat'ed are skipped and recorded.
        """
        root_path = normalize_path(root)
        if not os.path.exists(root_path):
            raise DirectoryNotFoundError(root_path)
        if not os.path.isdir(root_path):
            raise NotADirectoryError_(root_path)

        self.files_visited = 0
        self.files_skipped = 0
        self.errors = []
        tasks: List[FileTask] = []
        seen_dirs: Set[Tuple[int, int]] = set()
        exclude_dir = getattr(self.file_filter, "is_excluded_dir", None)

        logger.info(f"Scanning: {root_path}")

        for current, dirs, files in os.walk(root_path, topdown=True, followlinks=self.follow_symlinks,
                                            onerror=self._on_walk_error):
            if self.follow_symlinks:
                try:
                    st = os.stat(current)
                except OSError as e:
                    self._on_walk_error(e)
                    dirs.clear()
                    continue
                key = (st.st_dev, st.st_ino)
                if key in seen_dirs:
                    dirs.clear()
                    continue
                seen_dirs.add(key)

            depth = 0 if current == root_path else os.path.relpath(current, root_path).count(os.sep) + 1
            if self.max_depth is not None and depth >= self.max_depth:
                dirs.clear()
            elif exclude_dir is not None:
                dirs[:] = [d for d in dirs if not exclude_dir(os.path.join(current, d), relative_to=root_path)]

            for filename in files:
                task = self._make_task(os.path.join(current, filename))
                if task is not None:
                    tasks.append(task)

        logger.info(
            f"Scan complete: {len(tasks):,} files found "
            f"({self.files_skipped:,} skipped, {len(self.errors):,} errors)"
        )
        return tasks

    def restat(self, paths: Iterable[str]) -> List[FileTask]:
        """Fresh tasks for already-known paths, bypassing the filter"""
        tasks = []
        for path in paths:
            try:
                st = os.stat(path)
            except OSError as e:
                logger.debug(f"Cannot stat {path}: {e}")
                continue
            tasks.append(FileTask(path=normalize_path(path), size=st.st_size, mtime=st.st_mtime))
        return tasks

    def _make_task(self, path: str) -> Optional[FileTask]:
        self.files_visited += 1
        try:
            st = os.stat(path) if self.follow_symlinks else os.lstat(path)
        except OSError as e:
            self.errors.append(f"{path}: {e}")
            logger.debug(f"Cannot stat {path}: {e}")
            return None

        if not stat.S_ISREG(st.st_mode):
            return None

        if not self.file_filter(Path(path), st.st_size):
            self.files_skipped += 1
            return None

        return FileTask(path=normalize_path(path), size=st.st_size, mtime=st.st_mtime)

    def _on_walk_error(self, error: OSError) -> None:
        self.errors.append(str(error))
        logger.debug(f"Walk error: {error}")
