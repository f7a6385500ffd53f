#!/usr/bin/env python3
"""
Scan configuration

Plain, already-validated values consumed by the scanner, duplicate finder
and cleaner. The core never parses configuration files itself; the JSON
helpers at the bottom exist for front ends that persist preferences.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Dict, Optional, Set, Union

from .cleaner import SEND2TRASH_AVAILABLE
from .errors import ConfigError
from .hashing import BLAKE3_AVAILABLE, XXHASH_AVAILABLE

logger = logging.getLogger(__name__)

HASH_ALGORITHMS = ("md5", "sha1", "sha256", "blake2b", "xxhash", "blake3")


def default_workers() -> int:
    """Hash pool size matching available parallelism"""
    return os.cpu_count() or 4


@dataclass
class ScanConfig:
    """Scanner configuration with smart defaults"""
    # Exclusions: absolute prefixes or bare directory names
    exclude_dirs: Set[str] = field(default_factory=lambda: {
        ".git",
        ".hg",
        ".svn",
        ".venv",
        "venv",
    })
    excluded_extensions: Set[str] = field(default_factory=set)

    # Size limits
    min_file_size: int = 0
    max_file_size: Optional[int] = None
    max_file_age_days: Optional[int] = None

    # Traversal
    follow_symlinks: bool = True
    include_hidden: bool = False

    # Hashing
    workers: int = field(default_factory=default_workers)
    chunk_size: int = 1024 * 1024  # 1 MB
    hash_algorithm: str = "sha256"
    retry_attempts: int = 2
    retry_backoff: float = 0.2

    # Cleanup
    safe_mode: bool = True
    backup_before_delete: bool = False
    backup_dir: str = "deletion_backup"
    use_trash: bool = False

    def validate(self) -> None:
        """Validate configuration"""
        if self.workers < 1:
            raise ConfigError("Workers must be >= 1")
        if self.chunk_size < 1024:
            raise ConfigError("Chunk size must be >= 1KB")
        if self.min_file_size < 0:
            raise ConfigError("Min size cannot be negative")
        if self.max_file_size is not None and self.max_file_size < 0:
            raise ConfigError("Max size cannot be negative")
        if self.max_file_age_days is not None and self.max_file_age_days < 0:
            raise ConfigError("Max age cannot be negative")
        if self.retry_attempts < 1:
            raise ConfigError("Retry attempts must be >= 1")
        if self.hash_algorithm not in HASH_ALGORITHMS:
            raise ConfigError(f"Unknown hash algorithm: {self.hash_algorithm}")
        if self.hash_algorithm == "xxhash" and not XXHASH_AVAILABLE:
            logger.warning("xxhash not available, falling back to sha256")
            self.hash_algorithm = "sha256"
        if self.hash_algorithm == "blake3" and not BLAKE3_AVAILABLE:
            logger.warning("blake3 not available, falling back to sha256")
            self.hash_algorithm = "sha256"
        if self.use_trash and not SEND2TRASH_AVAILABLE:
            logger.warning("send2trash not available, files will be deleted permanently")
            self.use_trash = False
        self.excluded_extensions = {_normalize_extension(ext) for ext in self.excluded_extensions}

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization"""
        data = asdict(self)
        data["exclude_dirs"] = sorted(self.exclude_dirs)
        data["excluded_extensions"] = sorted(self.excluded_extensions)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "ScanConfig":
        """Create from dictionary, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")

        values = {k: v for k, v in data.items() if k in known}
        for key in ("exclude_dirs", "excluded_extensions"):
            if key in values:
                values[key] = set(values[key])
        return cls(**values)


def _normalize_extension(ext: str) -> str:
    ext = ext.strip().lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext


def load_config(path: Union[str, Path]) -> ScanConfig:
    """Load and validate a JSON config file"""
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    config = ScanConfig.from_dict(data)
    config.validate()
    logger.info(f"Loaded configuration from: {path}")
    return config


def save_config(config: ScanConfig, path: Union[str, Path]) -> None:
    """Write config as pretty-printed JSON"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(config.to_dict(), f, indent=2, sort_keys=True)
    logger.info(f"Saved configuration to: {path}")
