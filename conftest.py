"""Shared fixtures for the DiskReclaim test suite"""

import os
from pathlib import Path
from typing import Optional, Union

import pytest

from diskreclaim.core.config import ScanConfig


def write_file(base: Path, relative: str, content: Union[str, bytes] = b"",
               mtime: Optional[float] = None) -> Path:
    """Create base/relative with content, making parent directories"""
    path = base / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, str):
        content = content.encode("utf-8")
    path.write_bytes(content)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def tree(tmp_path):
    """Empty scan root kept apart from other test scratch space"""
    root = tmp_path / "tree"
    root.mkdir()
    return root


@pytest.fixture
def dup_tree(tree):
    """A, B identical; C same size different content; D same content, other size"""
    write_file(tree, "a.bin", b"x" * 1000)
    write_file(tree, "sub/b.bin", b"x" * 1000)
    write_file(tree, "c.bin", b"y" * 1000)
    write_file(tree, "d.bin", b"x" * 5)
    return tree


@pytest.fixture
def config():
    return ScanConfig(workers=4, retry_attempts=1, retry_backoff=0.0)


symlinks_supported = pytest.mark.skipif(
    not hasattr(os, "symlink") or os.name == "nt",
    reason="symlinks need a POSIX filesystem",
)
