"""
dupscan - Parallel Duplicate File Finder

Hashes every file under a directory tree with a bounded worker pool, indexes
the results by content digest and reports duplicate sets with the space they
waste.
"""

__version__ = "1.0.0"
__author__ = "dupscan Team"
__email__ = "info@dupscan.dev"
__license__ = "MIT"

from .core import config, errors, grouping, hasher, index, models, pipeline, scanner, worker_pool

__all__ = [
    "config",
    "errors",
    "grouping",
    "hasher",
    "index",
    "models",
    "pipeline",
    "scanner",
    "worker_pool",
]
