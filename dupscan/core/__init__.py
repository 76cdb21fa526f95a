"""
dupscan Core Modules

Fingerprinting, the parallel hashing pool, the duplicate index, grouping,
traversal and the pipeline that ties them together.
"""

from . import errors
from . import models
from . import hasher
from . import worker_pool
from . import index
from . import grouping
from . import scanner
from . import config
from . import pipeline

__all__ = [
    "errors",
    "models",
    "hasher",
    "worker_pool",
    "index",
    "grouping",
    "scanner",
    "config",
    "pipeline",
]
