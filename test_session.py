#!/usr/bin/env python3
"""
Tests for the scan session boundary used by front ends
"""

import os

import pytest

from conftest import write_file
from diskreclaim import clean, get_results, poll_progress, request_cancel, start_scan
from diskreclaim.core.cleaner import Cleaner
from diskreclaim.core.config import ScanConfig
from diskreclaim.core.errors import ConfigError, ScanError, SessionError
from diskreclaim.core.models import CleanupStatus, ScanStatus
from diskreclaim.core.progress import Phase
from diskreclaim.core.session import ScanSession


def test_full_pipeline(dup_tree, config):
    session = start_scan(dup_tree, config)
    result = get_results(session, timeout=30)

    assert result.status is ScanStatus.COMPLETE
    assert len(result) == 4
    assert len(result.duplicate_groups) == 1
    assert sorted(os.path.basename(p) for p in result.duplicate_groups[0].paths) == ["a.bin", "b.bin"]
    assert not session.is_running()
    assert poll_progress(session).phase is Phase.IDLE


def test_summary(dup_tree, config):
    result = get_results(start_scan(dup_tree, config), timeout=30)
    summary = result.summary()
    assert summary.total_files == 4
    assert summary.total_bytes == 3005
    assert summary.duplicate_groups == 1
    assert summary.duplicate_files == 2
    assert summary.reclaimable_duplicate_bytes == 1000


def test_invalid_root_fails_synchronously(tmp_path, config):
    with pytest.raises(ScanError):
        start_scan(tmp_path / "does-not-exist", config)


def test_invalid_config_fails_synchronously(tree):
    with pytest.raises(ConfigError):
        start_scan(tree, ScanConfig(workers=0))


def test_results_before_start_is_an_error(tree, config):
    session = ScanSession(tree, config)
    with pytest.raises(SessionError):
        session.get_results()


def test_cancel_before_start_gives_cancelled_result(dup_tree, config):
    session = ScanSession(dup_tree, config)
    request_cancel(session)
    session.start()

    result = get_results(session, timeout=30)

    assert result.status is ScanStatus.CANCELLED
    assert len(result) == 0
    assert result.duplicate_groups == ()


def test_cancel_is_safe_after_completion(dup_tree, config):
    session = start_scan(dup_tree, config)
    result = get_results(session, timeout=30)
    request_cancel(session)
    request_cancel(session)
    assert get_results(session) is result


def test_clean_removes_selected_duplicate(dup_tree, config):
    session = start_scan(dup_tree, config)
    group = get_results(session, timeout=30).duplicate_groups[0]
    keeper, extra = group.paths

    outcomes = clean(session, [extra])

    assert [o.status for o in outcomes] == [CleanupStatus.DELETED]
    assert os.path.exists(keeper)
    assert not os.path.exists(extra)
    assert poll_progress(session).phase is Phase.IDLE


def test_clean_is_limited_to_scanned_root(tmp_path, dup_tree, config):
    outside = write_file(tmp_path, "elsewhere.bin", "keep me")
    session = start_scan(dup_tree, config)
    get_results(session, timeout=30)

    outcome, = clean(session, [outside])

    assert outcome.status is CleanupStatus.SKIPPED
    assert outside.exists()


def test_clean_after_cancelled_scan_still_runs(dup_tree, config):
    session = ScanSession(dup_tree, config)
    request_cancel(session)
    session.start()
    get_results(session, timeout=30)

    outcome, = clean(session, [dup_tree / "c.bin"])

    assert outcome.status is CleanupStatus.DELETED


def test_dry_run_clean(dup_tree, config):
    session = start_scan(dup_tree, config)
    get_results(session, timeout=30)

    outcome, = clean(session, [dup_tree / "a.bin"], dry_run=True)

    assert outcome.status is CleanupStatus.SKIPPED
    assert (dup_tree / "a.bin").exists()


def test_sessions_are_independent(dup_tree, config):
    first = start_scan(dup_tree, config)
    second = ScanSession(dup_tree, config)
    request_cancel(second)
    second.start()

    assert get_results(first, timeout=30).status is ScanStatus.COMPLETE
    assert get_results(second, timeout=30).status is ScanStatus.CANCELLED


def test_clean_refuses_directories_the_scan_skipped(tree, config):
    """Excluded and hidden directories under the root are never cleaned"""
    git_config = write_file(tree, ".git/config", "[core]\n")
    venv_file = write_file(tree, "app/venv/lib.py", "x = 1")
    hidden = write_file(tree, ".local/state.db", "state")
    scanned = write_file(tree, "app/run.log", "log")
    session = start_scan(tree, config)
    result = get_results(session, timeout=30)
    assert [os.path.basename(r.path) for r in result] == ["run.log"]

    outcomes = clean(session, [git_config, venv_file, hidden, scanned])

    assert [o.status for o in outcomes] == [
        CleanupStatus.SKIPPED,
        CleanupStatus.SKIPPED,
        CleanupStatus.SKIPPED,
        CleanupStatus.DELETED,
    ]
    assert all(o.reason == "protected" for o in outcomes[:3])
    assert git_config.exists() and venv_file.exists() and hidden.exists()


def test_cleanup_progress_not_cancelled_by_earlier_scan(dup_tree, config, monkeypatch):
    session = ScanSession(dup_tree, config)
    request_cancel(session)
    session.start()
    get_results(session, timeout=30)
    assert poll_progress(session).cancelled

    seen = []
    original = Cleaner._clean_one

    def observed_clean_one(cleaner, path):
        seen.append(poll_progress(session))
        return original(cleaner, path)

    monkeypatch.setattr(Cleaner, "_clean_one", observed_clean_one)
    outcome, = clean(session, [dup_tree / "c.bin"])

    assert outcome.status is CleanupStatus.DELETED
    assert len(seen) == 1
    assert seen[0].phase is Phase.CLEANING
    assert not seen[0].cancelled
