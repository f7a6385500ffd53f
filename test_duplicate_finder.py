#!/usr/bin/env python3
"""
Tests for size pre-filtering, parallel hashing and duplicate grouping
"""

import os
import threading

from conftest import write_file
from diskreclaim.core.categorizer import Category
from diskreclaim.core.duplicate_finder import DuplicateFinder, group_by_hash, group_by_size
from diskreclaim.core.hashing import HashComputer
from diskreclaim.core.models import FileRecord, ScanStatus
from diskreclaim.core.progress import CancelToken, Phase, ProgressTracker
from diskreclaim.core.scanner import Scanner


class RecordingHasher(HashComputer):
    """HashComputer that remembers which paths it was asked to read"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.requested = []
        self._lock = threading.Lock()

    def compute_full_hash(self, path, *args, **kwargs):
        with self._lock:
            self.requested.append(str(path))
        return super().compute_full_hash(path, *args, **kwargs)


def names(group):
    return sorted(os.path.basename(p) for p in group.paths)


def test_identical_files_form_one_group(dup_tree, config):
    """A and B identical, C same size, D same content but shorter"""
    records = Scanner(config).scan(dup_tree).records
    hasher = RecordingHasher(retry_attempts=1)

    search = DuplicateFinder(hasher, workers=4).find_duplicates(records)

    assert search.status is ScanStatus.COMPLETE
    assert len(search.groups) == 1
    group = search.groups[0]
    assert names(group) == ["a.bin", "b.bin"]
    assert group.size == 1000
    assert group.wasted_space == 1000
    assert search.failures == []
    # d.bin has a unique size and is never read
    assert sorted(os.path.basename(p) for p in hasher.requested) == ["a.bin", "b.bin", "c.bin"]


def test_oversized_files_are_never_grouped(tree, config):
    write_file(tree, "one.bin", b"q" * 1000)
    write_file(tree, "two.bin", b"q" * 1000)
    result = Scanner(config).scan(tree, max_file_size=500)
    hasher = RecordingHasher()

    search = DuplicateFinder(hasher).find_duplicates(result.records)

    assert search.groups == []
    assert hasher.requested == []
    assert len(result) == 2
    assert all(r.oversized for r in result)
    assert all(r.category is Category.EXECUTABLE for r in result)


def test_group_invariants(tree, config):
    for i in range(3):
        write_file(tree, f"x{i}.txt", "same-x")
    for i in range(2):
        write_file(tree, f"y{i}.txt", "same-y")
    write_file(tree, "z.txt", "unique")
    write_file(tree, "empty1", b"")
    write_file(tree, "empty2", b"")
    records = Scanner(config).scan(tree).records

    groups = DuplicateFinder(workers=3).find_duplicates(records).groups

    seen = set()
    for group in groups:
        assert group.count >= 2
        for path in group.paths:
            assert os.path.getsize(path) == group.size
            assert path not in seen
            seen.add(path)
    assert sorted(names(g) for g in groups) == [
        ["empty1", "empty2"],
        ["x0.txt", "x1.txt", "x2.txt"],
        ["y0.txt", "y1.txt"],
    ]


def test_results_do_not_depend_on_worker_count(tree, config):
    for i in range(20):
        write_file(tree, f"f{i:02d}.dat", f"content-{i % 4}")

    def groups_with(workers):
        records = Scanner(config).scan(tree).records
        return DuplicateFinder(workers=workers).find_duplicates(records).groups

    assert groups_with(1) == groups_with(8)


def test_second_pass_reuses_hashes(dup_tree, config):
    records = Scanner(config).scan(dup_tree).records
    first = DuplicateFinder().find_duplicates(records)

    hasher = RecordingHasher()
    second = DuplicateFinder(hasher).find_duplicates(records)

    assert second.groups == first.groups
    assert hasher.requested == []


def test_rescan_gives_same_groups(dup_tree, config):
    first = DuplicateFinder().find_duplicates(Scanner(config).scan(dup_tree).records)
    second = DuplicateFinder().find_duplicates(Scanner(config).scan(dup_tree).records)
    assert first.groups == second.groups


def test_vanished_file_becomes_hash_failure(dup_tree, config):
    write_file(dup_tree, "e.bin", b"x" * 1000)
    records = Scanner(config).scan(dup_tree).records
    os.remove(dup_tree / "e.bin")

    search = DuplicateFinder().find_duplicates(records)

    assert [names(g) for g in search.groups] == [["a.bin", "b.bin"]]
    assert [os.path.basename(f.path) for f in search.failures] == ["e.bin"]
    assert search.failures[0].reason.startswith("Hash error")


def test_file_modified_after_scan_is_not_grouped(dup_tree, config):
    write_file(dup_tree, "e.bin", b"x" * 1000)
    records = Scanner(config).scan(dup_tree).records
    changed = dup_tree / "e.bin"
    recorded_mtime = os.stat(changed).st_mtime
    write_file(dup_tree, "e.bin", b"x" * 1000, mtime=recorded_mtime + 60)

    search = DuplicateFinder().find_duplicates(records)

    assert [names(g) for g in search.groups] == [["a.bin", "b.bin"]]
    assert len(search.failures) == 1
    assert search.failures[0].path == str(changed)
    assert "changed" in search.failures[0].reason


def test_cancelled_search_reads_nothing(dup_tree, config):
    records = Scanner(config).scan(dup_tree).records
    token = CancelToken()
    token.cancel()
    hasher = RecordingHasher()

    search = DuplicateFinder(hasher).find_duplicates(records, cancel_token=token)

    assert search.cancelled
    assert search.groups == []
    assert hasher.requested == []


def test_hashing_progress_counts_candidates(dup_tree, config):
    records = Scanner(config).scan(dup_tree).records
    progress = ProgressTracker()

    DuplicateFinder(workers=2).find_duplicates(records, progress=progress)

    snapshot = progress.snapshot()
    assert snapshot.phase is Phase.HASHING
    assert snapshot.items_total == 3
    assert snapshot.items_processed == 3
    assert snapshot.bytes_processed == 3000


def test_grouping_helpers():
    def record(path, size, digest=None):
        rec = FileRecord(path=path, size=size, mtime=0.0, category=Category.OTHER)
        if digest:
            rec.assign_hash(digest)
        return rec

    records = [
        record("/r/a", 10, "h1"),
        record("/r/b", 10, "h1"),
        record("/r/c", 10, "h2"),
        record("/r/d", 20, "h3"),
        record("/r/e", 30),
        record("/r/f", 30),
    ]
    size_groups = group_by_size(records)
    assert sorted(size_groups) == [10, 30]

    groups = group_by_hash(size_groups)
    assert [(g.size, g.content_hash, g.paths) for g in groups] == [(10, "h1", ("/r/a", "/r/b"))]
