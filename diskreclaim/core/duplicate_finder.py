#!/usr/bin/env python3
"""
Duplicate Finder - size pre-filter, parallel full hash, hash sub-grouping

Phase 1 groups records by exact size and drops singleton sizes without
reading them. Phase 2 hashes the remaining candidates on a bounded thread
pool. Phase 3 splits each size group by hash and keeps sub-groups of two
or more. The result depends only on file contents, never on the order in
which workers finish.
"""

import logging
import os
import time
from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .hashing import HashComputer
from .models import DuplicateGroup, FileRecord, HashFailure, ScanStatus
from .progress import CancelToken, Phase, ProgressTracker

logger = logging.getLogger(__name__)


@dataclass
class DuplicateSearch:
    """Outcome of one duplicate pass"""
    groups: List[DuplicateGroup] = field(default_factory=list)
    failures: List[HashFailure] = field(default_factory=list)
    status: ScanStatus = ScanStatus.COMPLETE
    candidates: int = 0
    bytes_read: int = 0
    duration: float = 0.0

    @property
    def cancelled(self) -> bool:
        return self.status is ScanStatus.CANCELLED


def group_by_size(records: Iterable[FileRecord]) -> Dict[int, List[FileRecord]]:
    """Size groups with at least two members; oversized records never qualify"""
    by_size: Dict[int, List[FileRecord]] = defaultdict(list)
    for record in records:
        if record.oversized:
            continue
        by_size[record.size].append(record)
    return {size: members for size, members in by_size.items() if len(members) > 1}


def group_by_hash(size_groups: Dict[int, List[FileRecord]]) -> List[DuplicateGroup]:
    """Split size groups by content hash; unhashed records are ignored"""
    groups = []
    for size, members in size_groups.items():
        by_hash: Dict[str, List[str]] = defaultdict(list)
        for record in members:
            if record.content_hash is not None:
                by_hash[record.content_hash].append(record.path)
        for hash_val, paths in by_hash.items():
            if len(paths) > 1:
                groups.append(DuplicateGroup(size=size, content_hash=hash_val, paths=tuple(sorted(paths))))

    groups.sort(key=lambda g: (-g.size, g.content_hash))
    return groups


class DuplicateFinder:
    """Content-hash duplicate detection over a record set"""

    def __init__(self, hasher: Optional[HashComputer] = None, workers: Optional[int] = None):
        self.hasher = hasher or HashComputer()
        self.workers = workers or os.cpu_count() or 4

    def find_duplicates(self, records: Iterable[FileRecord],
                        progress: Optional[ProgressTracker] = None,
                        cancel_token: Optional[CancelToken] = None) -> DuplicateSearch:
        """Group records with identical size and content.

        Records already carrying a hash are reused rather than re-read, so
        a second pass over the same set yields the same groups. Files that
        cannot be read, or change while being read, are reported as
        HashFailures and left out.
        """
        if progress is None:
            progress = ProgressTracker(cancel_token)
        if cancel_token is None:
            cancel_token = progress.cancel_token

        start_time = time.time()
        records = list(records)
        size_groups = group_by_size(records)
        candidates = [r for members in size_groups.values() for r in members]

        logger.info(
            f"Duplicate search: {len(candidates):,} of {len(records):,} files share a size "
            f"({len(size_groups):,} size groups)"
        )

        result = DuplicateSearch(candidates=len(candidates))
        progress.start_phase(Phase.HASHING, total=len(candidates))

        pending = [r for r in candidates if r.content_hash is None]
        reused = len(candidates) - len(pending)
        if reused:
            progress.advance(Phase.HASHING, reused, 0)

        failed_paths = set()
        if pending:
            failed_paths = self._hash_all(pending, progress, cancel_token, result)

        if cancel_token.is_cancelled():
            result.status = ScanStatus.CANCELLED

        # Failed records never got a hash, so group_by_hash skips them
        result.groups = group_by_hash(size_groups)
        result.duration = time.time() - start_time

        wasted = sum(g.wasted_space for g in result.groups)
        logger.info(
            f"Duplicate search {'cancelled' if result.cancelled else 'complete'}: "
            f"{len(result.groups):,} groups, {wasted:,} reclaimable bytes, "
            f"{len(failed_paths):,} hash failures in {result.duration:.1f}s"
        )
        return result

    def _hash_all(self, pending: List[FileRecord], progress: ProgressTracker,
                  cancel_token: CancelToken, result: DuplicateSearch) -> set:
        failed_paths = set()

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures: Dict[Future, FileRecord] = {
                executor.submit(self._hash_record, record, progress, cancel_token): record
                for record in pending
            }

            try:
                for future in as_completed(futures):
                    record = futures[future]
                    if future.cancelled():
                        continue
                    error, bytes_read = future.result()
                    result.bytes_read += bytes_read

                    if error == "cancelled":
                        continue
                    if error is not None:
                        failed_paths.add(record.path)
                        result.failures.append(HashFailure(path=record.path, reason=error))
                        logger.warning(f"Cannot hash {record.path}: {error}")

                    if cancel_token.is_cancelled():
                        break
            finally:
                # Queued tasks are dropped; running ones finish their chunk and stop
                for future in futures:
                    future.cancel()

        result.failures.sort(key=lambda f: f.path)
        return failed_paths

    def _hash_record(self, record: FileRecord, progress: ProgressTracker,
                     cancel_token: CancelToken) -> Tuple[Optional[str], int]:
        """Worker task; the only writer of this record's hash"""
        if cancel_token.is_cancelled():
            return "cancelled", 0

        hash_val, error, bytes_read = self.hasher.compute_full_hash(
            record.path,
            expected_size=record.size,
            expected_mtime=record.mtime,
            cancel_token=cancel_token,
        )
        if hash_val is not None:
            record.assign_hash(hash_val)
            progress.advance(Phase.HASHING, 1, bytes_read)
        elif error != "cancelled":
            progress.advance(Phase.HASHING, 1, bytes_read)
        return error, bytes_read
