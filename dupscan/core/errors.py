#!/usr/bin/env python3
"""
Error taxonomy for dupscan

Configuration and index errors are fatal and propagate to the caller.
Traversal errors abort a run before hashing starts. Hash errors are local
to a single file and are collected as per-task results.
"""

from typing import Optional


class DupScanError(Exception):
    """Base class for all dupscan errors"""


class ConfigurationError(DupScanError, ValueError):
    """Invalid algorithm, worker count, timeout or other setting"""


class IndexViolation(DupScanError):
    """Structurally invalid record or inconsistent index views"""


# ---------------------------
# Traversal
# ---------------------------

class TraversalError(DupScanError):
    """Scan root cannot be walked"""

    def __init__(self, path: str, message: str):
        super().__init__(f"{message}: {path}")
        self.path = path


class DirectoryNotFoundError(TraversalError):
    def __init__(self, path: str):
        super().__init__(path, "Directory does not exist")


class NotADirectoryError_(TraversalError):
    def __init__(self, path: str):
        super().__init__(path, "Path is not a directory")


# ---------------------------
# Per-file hashing
# ---------------------------

class HashError(DupScanError):
    """Failure to fingerprint a single file"""

    kind = "hash_error"

    def __init__(self, path: str, message: Optional[str] = None):
        self.path = path
        self.message = message or self.kind.replace("_", " ")
        super().__init__(f"{self.message}: {path}")


class FileNotFoundHashError(HashError):
    kind = "not_found"


class PermissionDeniedHashError(HashError):
    kind = "permission_denied"


class IOFailureHashError(HashError):
    kind = "io_failure"


class TimeoutHashError(HashError):
    kind = "timeout"


class CancelledHashError(HashError):
    kind = "cancelled"
