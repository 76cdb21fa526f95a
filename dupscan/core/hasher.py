#!/usr/bin/env python3
"""
File fingerprinting with selectable digest families

hashlib digests (md5, sha1, sha256, sha512, blake2b) are cryptographic and
collisions between distinct contents are treated as impossible. The xxHash
families are much faster but non-cryptographic: since duplicates are never
verified byte-by-byte, choosing them accepts a small false-positive risk.
"""

import errno
import hashlib
import logging
import time
from pathlib import Path
from typing import BinaryIO, Callable, Dict, Union

import xxhash

from .errors import (
    ConfigurationError,
    FileNotFoundHashError,
    HashError,
    IOFailureHashError,
    PermissionDeniedHashError,
)

logger = logging.getLogger(__name__)

DEFAULT_ALGORITHM = "md5"
DEFAULT_CHUNK_SIZE = 8 * 1024

ALGORITHMS: Dict[str, Callable] = {
    "md5": hashlib.md5,
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
    "blake2b": hashlib.blake2b,
    "xxhash": xxhash.xxh64,
    "xxh3": xxhash.xxh3_128,
}

NON_CRYPTOGRAPHIC = {"xxhash", "xxh3"}


class FileHasher:
    """Compute content digests by streaming files in fixed-size chunks"""

    def __init__(self, algorithm: str = DEFAULT_ALGORITHM, chunk_size: int = DEFAULT_CHUNK_SIZE,
                 retry_attempts: int = 3, retry_backoff: float = 0.2):
        algorithm = (algorithm or "").lower()
        if algorithm not in ALGORITHMS:
            raise ConfigurationError(
                f"Unsupported hash algorithm: {algorithm!r} "
                f"(choose from {', '.join(sorted(ALGORITHMS))})"
            )
        if chunk_size < 1:
            raise ConfigurationError(f"Chunk size must be >= 1, got {chunk_size}")
        if retry_attempts < 1:
            raise ConfigurationError(f"Retry attempts must be >= 1, got {retry_attempts}")

        self.algorithm = algorithm
        self.chunk_size = chunk_size
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self._factory = ALGORITHMS[algorithm]
        self.digest_length = len(self._factory().hexdigest())

        if algorithm in NON_CRYPTOGRAPHIC:
            logger.debug(f"{algorithm} is non-cryptographic; equal digests are trusted without verification")

    @property
    def is_cryptographic(self) -> bool:
        return self.algorithm not in NON_CRYPTOGRAPHIC

    def hash_stream(self, stream: BinaryIO) -> str:
        hasher = self._factory()
        while chunk := stream.read(self.chunk_size):
            hasher.update(chunk)
        return hasher.hexdigest()

    def hash_bytes(self, data: bytes) -> str:
        hasher = self._factory()
        hasher.update(data)
        return hasher.hexdigest()

    def hash_file(self, path: Union[str, Path]) -> str:
        """
        Hash a file's full content.

        Raises a HashError subclass on failure. Only generic I/O failures are
        retried; missing or unreadable files fail immediately.
        """
        path = Path(path)
        for attempt in range(self.retry_attempts):
            try:
                with path.open("rb") as f:
                    return self.hash_stream(f)
            except FileNotFoundError as e:
                raise FileNotFoundHashError(str(path), e.strerror) from e
            except PermissionError as e:
                raise PermissionDeniedHashError(str(path), e.strerror) from e
            except OSError as e:
                if e.errno == errno.EISDIR or attempt >= self.retry_attempts - 1:
                    raise IOFailureHashError(str(path), f"Hash error: {e}") from e
                logger.debug(f"Retrying {path} after I/O error: {e}")
                time.sleep(self.retry_backoff * (2 ** attempt))

        raise HashError(str(path), "Hash attempts exhausted")
