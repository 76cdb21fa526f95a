#!/usr/bin/env python3
"""
Tests for FileHasher
"""

import hashlib
from pathlib import Path

import pytest

from dupscan.core.errors import (
    ConfigurationError,
    FileNotFoundHashError,
    IOFailureHashError,
    PermissionDeniedHashError,
)
from dupscan.core.hasher import ALGORITHMS, FileHasher


def test_identical_content_gives_identical_digest(tmp_path):
    first = tmp_path / "first.bin"
    second = tmp_path / "nested" / "second.bin"
    second.parent.mkdir()
    payload = bytes(range(256)) * 100
    first.write_bytes(payload)
    second.write_bytes(payload)

    for algorithm in ALGORITHMS:
        hasher = FileHasher(algorithm)
        assert hasher.hash_file(first) == hasher.hash_file(second)


def test_different_content_gives_different_digest(tmp_path):
    a = tmp_path / "a.txt"
    b = tmp_path / "b.txt"
    a.write_text("alpha")
    b.write_text("beta")

    hasher = FileHasher("sha256")
    assert hasher.hash_file(a) != hasher.hash_file(b)


def test_known_digests(tmp_path):
    path = tmp_path / "hello.txt"
    path.write_bytes(b"hello")
    empty = tmp_path / "empty"
    empty.write_bytes(b"")

    assert FileHasher("md5").hash_file(path) == "5d41402abc4b2a76b9719d911017c592"
    assert FileHasher("sha256").hash_file(empty) == hashlib.sha256(b"").hexdigest()
    assert FileHasher("md5").hash_bytes(b"hello") == "5d41402abc4b2a76b9719d911017c592"


@pytest.mark.parametrize("algorithm,length", [
    ("md5", 32),
    ("sha1", 40),
    ("sha256", 64),
    ("xxhash", 16),
    ("xxh3", 32),
])
def test_digest_is_fixed_length_lowercase_hex(tmp_path, algorithm, length):
    path = tmp_path / "data.bin"
    path.write_bytes(b"\x00\xffSome Mixed CASE content" * 50)

    hasher = FileHasher(algorithm)
    digest = hasher.hash_file(path)

    assert hasher.digest_length == length
    assert len(digest) == length
    assert digest == digest.lower()
    int(digest, 16)


def test_chunk_size_does_not_change_digest(tmp_path):
    path = tmp_path / "big.bin"
    path.write_bytes(b"0123456789" * 10_000)

    assert FileHasher("sha1", chunk_size=3).hash_file(path) == FileHasher("sha1").hash_file(path)


def test_unsupported_algorithm_fails_at_construction():
    with pytest.raises(ConfigurationError):
        FileHasher("crc32")


def test_invalid_chunk_size_fails_at_construction():
    with pytest.raises(ConfigurationError):
        FileHasher("md5", chunk_size=0)


def test_algorithm_name_is_case_insensitive():
    assert FileHasher("SHA256").algorithm == "sha256"


def test_xxhash_is_flagged_non_cryptographic():
    assert FileHasher("md5").is_cryptographic
    assert not FileHasher("xxhash").is_cryptographic


def test_missing_file_raises_not_found(tmp_path):
    with pytest.raises(FileNotFoundHashError) as excinfo:
        FileHasher().hash_file(tmp_path / "nope.txt")
    assert excinfo.value.kind == "not_found"
    assert excinfo.value.path.endswith("nope.txt")


def test_directory_raises_io_failure(tmp_path):
    with pytest.raises(IOFailureHashError) as excinfo:
        FileHasher(retry_backoff=0).hash_file(tmp_path)
    assert excinfo.value.kind == "io_failure"


def test_permission_error_is_not_retried(tmp_path, monkeypatch):
    path = tmp_path / "locked.txt"
    path.write_text("secret")
    calls = []

    def denied(self, *args, **kwargs):
        calls.append(self)
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(Path, "open", denied)

    with pytest.raises(PermissionDeniedHashError):
        FileHasher(retry_attempts=3, retry_backoff=0).hash_file(path)
    assert len(calls) == 1


def test_transient_io_error_is_retried(tmp_path):
    path = tmp_path / "flaky.txt"
    path.write_text("flaky")
    hasher = FileHasher("md5", retry_attempts=3, retry_backoff=0)
    real_hash_stream = hasher.hash_stream
    attempts = []

    def flaky(stream):
        attempts.append(1)
        if len(attempts) < 3:
            raise OSError(5, "Input/output error")
        return real_hash_stream(stream)

    hasher.hash_stream = flaky

    assert hasher.hash_file(path) == hashlib.md5(b"flaky").hexdigest()
    assert len(attempts) == 3


def test_persistent_io_error_gives_up(tmp_path):
    path = tmp_path / "broken.txt"
    path.write_text("broken")
    hasher = FileHasher("md5", retry_attempts=2, retry_backoff=0)

    def broken(stream):
        raise OSError(5, "Input/output error")

    hasher.hash_stream = broken

    with pytest.raises(IOFailureHashError):
        hasher.hash_file(path)
