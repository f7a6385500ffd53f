#!/usr/bin/env python3
"""
Scan sessions - the boundary a front end drives

    session = start_scan(root, config)
    while session.is_running():
        show(poll_progress(session))
    result = get_results(session)
    outcomes = clean(session, chosen_paths)

Each session owns its trackers and cancel tokens; nothing is shared
between sessions.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .cleaner import Cleaner
from .config import ScanConfig
from .duplicate_finder import DuplicateFinder
from .errors import SessionError
from .hashing import HashComputer
from .models import CleanupOutcome, ScanResult, ScanStatus
from .progress import ProgressSnapshot, ProgressTracker
from .scanner import PathFilter, Scanner

logger = logging.getLogger(__name__)


class ScanSession:
    """Runs scan + duplicate search on a background thread"""

    def __init__(self, root: Union[str, Path], config: Optional[ScanConfig] = None):
        self.config = config or ScanConfig()
        self.config.validate()
        # Fail fast, before any thread starts
        self.root = Scanner.validate_root(root)
        self.progress = ProgressTracker()
        self._result: Optional[ScanResult] = None
        self._error: Optional[BaseException] = None
        self._done = threading.Event()
        self._clean_lock = threading.Lock()
        self._clean_progress: Optional[ProgressTracker] = None
        self._thread = threading.Thread(target=self._run, name="diskreclaim-scan", daemon=True)

    def start(self) -> "ScanSession":
        self._thread.start()
        return self

    def _run(self) -> None:
        try:
            self._result = self.run_pipeline()
        except Exception as e:  # surfaced to the caller by get_results()
            logger.error(f"Scan failed: {e}", exc_info=True)
            self._error = e
        finally:
            self.progress.finish()
            self._done.set()

    def run_pipeline(self) -> ScanResult:
        """Scan, then search for duplicates unless cancelled"""
        start_time = time.time()
        cancel_token = self.progress.cancel_token

        scanner = Scanner(self.config)
        scanned = scanner.scan(
            self.root,
            exclusions=self.config.exclude_dirs,
            max_file_size=self.config.max_file_size,
            progress=self.progress,
            cancel_token=cancel_token,
        )
        if scanned.cancelled:
            return scanned

        finder = DuplicateFinder(
            HashComputer(
                self.config.hash_algorithm,
                self.config.chunk_size,
                self.config.retry_attempts,
                self.config.retry_backoff,
            ),
            workers=self.config.workers,
        )
        search = finder.find_duplicates(scanned.hashable_records(), self.progress, cancel_token)

        return scanned.with_duplicates(
            search.groups,
            search.failures,
            status=ScanStatus.CANCELLED if search.cancelled else ScanStatus.COMPLETE,
            duration=time.time() - start_time,
        )

    def is_running(self) -> bool:
        return self._thread.is_alive() and not self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the pipeline finishes; False on timeout"""
        return self._done.wait(timeout)

    def poll_progress(self) -> ProgressSnapshot:
        # Cleanup reports through its own tracker so a cancelled scan
        # does not show up as a cancelled cleanup
        clean_progress = self._clean_progress
        if clean_progress is not None:
            return clean_progress.snapshot()
        return self.progress.snapshot()

    def request_cancel(self) -> None:
        logger.info("Cancellation requested")
        self.progress.cancel()
        clean_progress = self._clean_progress
        if clean_progress is not None:
            clean_progress.cancel()

    def get_results(self, timeout: Optional[float] = None) -> ScanResult:
        """Finished result; timeout=None waits for the pipeline to end"""
        if not self._thread.is_alive() and not self._done.is_set() and self._result is None:
            raise SessionError("Session was never started")
        if not self._done.wait(timeout):
            raise SessionError("Scan is still running")
        if self._error is not None:
            raise self._error
        return self._result

    def clean(self, selected_paths: Iterable[Union[str, Path]], dry_run: bool = False) -> List[CleanupOutcome]:
        """Delete selected paths under this session's config and root"""
        if not self._done.is_set():
            raise SessionError("Cannot clean while the scan is running")
        path_filter = PathFilter(self.config.exclude_dirs, self.config)
        with self._clean_lock:
            cleaner = Cleaner(
                safe_mode=self.config.safe_mode,
                backup_before_delete=self.config.backup_before_delete,
                allowed_roots=[self.root],
                backup_dir=self.config.backup_dir,
                use_trash=self.config.use_trash,
                dry_run=dry_run,
                covered=lambda path: path_filter.covers(self.root, path),
            )
            # Fresh token: a cancelled scan must not cancel a later cleanup
            clean_progress = ProgressTracker()
            self._clean_progress = clean_progress
            try:
                return cleaner.clean(selected_paths, progress=clean_progress)
            finally:
                self._clean_progress = None

# ---------------------------
# Functional boundary
# ---------------------------


def start_scan(root: Union[str, Path], config: Optional[ScanConfig] = None) -> ScanSession:
    """Validate root and start scanning in the background"""
    return ScanSession(root, config).start()


def poll_progress(session: ScanSession) -> ProgressSnapshot:
    return session.poll_progress()


def get_results(session: ScanSession, timeout: Optional[float] = None) -> ScanResult:
    return session.get_results(timeout)


def request_cancel(session: ScanSession) -> None:
    session.request_cancel()


def clean(session: ScanSession, selected_paths: Iterable[Union[str, Path]],
          dry_run: bool = False) -> List[CleanupOutcome]:
    return session.clean(selected_paths, dry_run=dry_run)
