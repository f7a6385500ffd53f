#!/usr/bin/env python3
"""
Content hashing with bounded, chunked reads
"""

import hashlib
import logging
import os
import time
from pathlib import Path
from typing import Optional, Tuple, Union

from .progress import CancelToken

# Optional imports
try:
    import xxhash
    XXHASH_AVAILABLE = True
except ImportError:
    XXHASH_AVAILABLE = False

try:
    import blake3
    BLAKE3_AVAILABLE = True
except ImportError:
    BLAKE3_AVAILABLE = False

logger = logging.getLogger(__name__)

# Errors that will not go away on a second attempt
PERMANENT_ERRORS = (FileNotFoundError, PermissionError, IsADirectoryError, NotADirectoryError)

HashOutcome = Tuple[Optional[str], Optional[str], int]


class FileChangedError(OSError):
    """The file was modified while it was being read"""


class HashComputer:
    """Compute file hashes with multiple algorithms"""

    def __init__(self, algorithm: str = "sha256", chunk_size: int = 1024 * 1024,
                 retry_attempts: int = 2, retry_backoff: float = 0.2):
        self.algorithm = algorithm
        self.chunk_size = chunk_size
        self.retry_attempts = max(1, retry_attempts)
        self.retry_backoff = retry_backoff

    def _get_hasher(self):
        """Get hasher for algorithm"""
        if self.algorithm == "md5":
            return hashlib.md5()
        elif self.algorithm == "sha1":
            return hashlib.sha1()
        elif self.algorithm == "blake2b":
            return hashlib.blake2b()
        elif self.algorithm == "xxhash" and XXHASH_AVAILABLE:
            return xxhash.xxh3_128()
        elif self.algorithm == "blake3" and BLAKE3_AVAILABLE:
            return blake3.blake3()
        else:
            return hashlib.sha256()

    def compute_full_hash(self, path: Union[str, Path],
                          expected_size: Optional[int] = None,
                          expected_mtime: Optional[float] = None,
                          cancel_token: Optional[CancelToken] = None) -> HashOutcome:
        """Compute full file hash with retries.

        Returns (hash, error, bytes_read); exactly one of hash/error is set.
        When expected_size/expected_mtime are given (the values recorded at
        scan time) a file whose metadata or length no longer agrees, before
        or after the read, is reported as changed rather than hashed.
        """
        path = Path(path)
        bytes_read = 0

        for attempt in range(self.retry_attempts):
            try:
                digest, read = self._read_and_hash(path, expected_size, expected_mtime, cancel_token)
                bytes_read += read
                if digest is None:
                    return None, "cancelled", bytes_read
                return digest, None, bytes_read

            except FileChangedError as e:
                return None, f"File changed during hashing: {e}", bytes_read
            except PERMANENT_ERRORS as e:
                return None, f"Hash error: {e}", bytes_read
            except OSError as e:
                if attempt < self.retry_attempts - 1:
                    logger.debug(f"Retrying {path} after read error: {e}")
                    time.sleep(self.retry_backoff * (2 ** attempt))
                    continue
                return None, f"Hash error: {e}", bytes_read

        return None, "Hash error: no attempts made", bytes_read

    def _read_and_hash(self, path: Path, expected_size: Optional[int],
                       expected_mtime: Optional[float],
                       cancel_token: Optional[CancelToken]) -> Tuple[Optional[str], int]:
        hasher = self._get_hasher()
        bytes_read = 0

        with path.open("rb") as f:
            before = os.fstat(f.fileno())
            self._check_unchanged(before, expected_size, expected_mtime)

            while chunk := f.read(self.chunk_size):
                hasher.update(chunk)
                bytes_read += len(chunk)
                if cancel_token is not None and cancel_token.is_cancelled():
                    return None, bytes_read

            after = os.fstat(f.fileno())

        self._check_unchanged(after, before.st_size, before.st_mtime)
        if bytes_read != before.st_size:
            raise FileChangedError(f"read {bytes_read} bytes, expected {before.st_size}")

        return hasher.hexdigest(), bytes_read

    @staticmethod
    def _check_unchanged(st: os.stat_result, size: Optional[int], mtime: Optional[float]) -> None:
        if size is not None and st.st_size != size:
            raise FileChangedError(f"size {st.st_size} != {size}")
        if mtime is not None and st.st_mtime != mtime:
            raise FileChangedError("modification time changed")
