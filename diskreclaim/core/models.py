#!/usr/bin/env python3
"""
Data model shared by the scan, duplicate and cleanup stages
"""

import os
from collections import Counter
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from .categorizer import Category


@dataclass
class FileRecord:
    """One scanned file; the content hash is written at most once"""
    path: str
    size: int
    mtime: float
    category: Category
    oversized: bool = False
    _content_hash: Optional[str] = field(default=None, repr=False, compare=False)

    @property
    def content_hash(self) -> Optional[str]:
        return self._content_hash

    @property
    def extension(self) -> str:
        return os.path.splitext(self.path)[1].lower()

    def assign_hash(self, value: str) -> None:
        """Set the content hash; a second, different value is an error"""
        if self._content_hash is not None and self._content_hash != value:
            raise ValueError(f"Content hash already assigned for {self.path}")
        self._content_hash = value


@dataclass(frozen=True)
class DuplicateGroup:
    """Files sharing size and content hash"""
    size: int
    content_hash: str
    paths: Tuple[str, ...]

    def __post_init__(self):
        if len(self.paths) < 2:
            raise ValueError("A duplicate group needs at least two members")

    @property
    def count(self) -> int:
        return len(self.paths)

    @property
    def wasted_space(self) -> int:
        return self.size * (self.count - 1)


class WarningKind(Enum):
    PERMISSION_DENIED = "permission-denied"
    BROKEN_LINK = "broken-link"
    VANISHED = "vanished"
    UNREADABLE = "unreadable"


@dataclass(frozen=True)
class ScanWarning:
    """Per-entry problem met during traversal; the scan continued"""
    path: str
    kind: WarningKind
    message: str

    @classmethod
    def from_os_error(cls, path: str, error: OSError) -> "ScanWarning":
        if isinstance(error, PermissionError):
            kind = WarningKind.PERMISSION_DENIED
        elif isinstance(error, FileNotFoundError):
            kind = WarningKind.BROKEN_LINK if os.path.islink(path) else WarningKind.VANISHED
        else:
            kind = WarningKind.UNREADABLE
        return cls(path=path, kind=kind, message=error.strerror or str(error))


@dataclass(frozen=True)
class HashFailure:
    """A file that could not be hashed and was left out of grouping"""
    path: str
    reason: str


class ScanStatus(Enum):
    COMPLETE = "complete"
    CANCELLED = "cancelled"


@dataclass
class ScanSummary:
    """Comprehensive scan statistics"""
    total_files: int = 0
    total_bytes: int = 0
    files_by_category: Dict[Category, int] = field(default_factory=dict)
    bytes_by_category: Dict[Category, int] = field(default_factory=dict)
    oversized_files: int = 0
    duplicate_groups: int = 0
    duplicate_files: int = 0
    reclaimable_duplicate_bytes: int = 0
    warnings: int = 0
    hash_failures: int = 0
    duration: float = 0.0


@dataclass(frozen=True)
class ScanResult:
    """Everything one scan session produced"""
    root: str
    records: Tuple[FileRecord, ...] = ()
    duplicate_groups: Tuple[DuplicateGroup, ...] = ()
    warnings: Tuple[ScanWarning, ...] = ()
    hash_failures: Tuple[HashFailure, ...] = ()
    status: ScanStatus = ScanStatus.COMPLETE
    duration: float = 0.0

    @property
    def cancelled(self) -> bool:
        return self.status is ScanStatus.CANCELLED

    def __iter__(self) -> Iterator[FileRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def by_path(self) -> Dict[str, FileRecord]:
        return {record.path: record for record in self.records}

    def get(self, path: str) -> Optional[FileRecord]:
        for record in self.records:
            if record.path == path:
                return record
        return None

    def records_in(self, category: Category) -> List[FileRecord]:
        return [r for r in self.records if r.category is category]

    def hashable_records(self) -> List[FileRecord]:
        return [r for r in self.records if not r.oversized]

    def with_duplicates(self, groups, failures, status: ScanStatus, duration: float) -> "ScanResult":
        """New result carrying duplicate analysis; this one is left as is"""
        return replace(
            self,
            duplicate_groups=tuple(groups),
            hash_failures=tuple(failures),
            status=status,
            duration=duration,
        )

    def summary(self) -> ScanSummary:
        files = Counter()
        sizes = Counter()
        for record in self.records:
            files[record.category] += 1
            sizes[record.category] += record.size

        return ScanSummary(
            total_files=len(self.records),
            total_bytes=sum(sizes.values()),
            files_by_category=dict(files),
            bytes_by_category=dict(sizes),
            oversized_files=sum(1 for r in self.records if r.oversized),
            duplicate_groups=len(self.duplicate_groups),
            duplicate_files=sum(g.count for g in self.duplicate_groups),
            reclaimable_duplicate_bytes=sum(g.wasted_space for g in self.duplicate_groups),
            warnings=len(self.warnings),
            hash_failures=len(self.hash_failures),
            duration=self.duration,
        )


class CleanupStatus(Enum):
    DELETED = "deleted"
    BACKED_UP_AND_DELETED = "backed-up-and-deleted"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class CleanupOutcome:
    """What happened to one requested path"""
    path: str
    status: CleanupStatus
    reason: Optional[str] = None
    bytes_freed: int = 0
    backup_path: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status in (CleanupStatus.DELETED, CleanupStatus.BACKED_UP_AND_DELETED)
