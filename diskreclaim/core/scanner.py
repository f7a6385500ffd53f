#!/usr/bin/env python3
"""
Scanner - directory traversal, filtering and categorization

Walks one root on a single thread in a stable (sorted) order, applies
exclusion rules and size/age/hidden filters, and emits categorized
FileRecords. Per-entry problems become ScanWarnings; only an invalid root
raises.
"""

import logging
import os
import stat
import time
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple, Union

from .categorizer import categorize
from .config import ScanConfig
from .errors import ScanError
from .models import FileRecord, ScanResult, ScanStatus, ScanWarning, WarningKind
from .progress import CancelToken, Phase, ProgressTracker

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

# ---------------------------
# Path Filter
# ---------------------------


class PathFilter:
    """Filter paths based on rules"""

    def __init__(self, excluded_dirs: Iterable[str], config: ScanConfig):
        self.config = config
        self.excluded_prefixes, self.excluded_names = self._normalize_dirs(excluded_dirs)
        self.excluded_extensions = {ext.lower() for ext in config.excluded_extensions}
        self.age_cutoff = None
        if config.max_file_age_days is not None:
            self.age_cutoff = time.time() - config.max_file_age_days * SECONDS_PER_DAY

    @staticmethod
    def _normalize_dirs(dirs: Iterable[str]) -> Tuple[Tuple[str, ...], Set[str]]:
        """Split into absolute prefixes and bare component names"""
        prefixes = set()
        names = set()
        for d in dirs:
            if not d:
                continue
            expanded = os.path.expanduser(d)
            if os.path.isabs(expanded):
                norm = os.path.normcase(os.path.normpath(expanded))
                prefixes.add(norm)
                # Also match through symlinked prefixes such as /tmp -> /private/tmp
                prefixes.add(os.path.normcase(os.path.realpath(expanded)))
            else:
                names.add(os.path.normcase(d.strip("/\\")))
        return tuple(sorted(prefixes)), names

    def _under_prefix(self, norm_path: str) -> bool:
        for prefix in self.excluded_prefixes:
            if norm_path == prefix:
                return True
            boundary = prefix if prefix.endswith(os.sep) else prefix + os.sep
            if norm_path.startswith(boundary):
                return True
        return False

    def is_excluded(self, path: str, real_path: Optional[str] = None, check_name: bool = True) -> bool:
        """True when the visited or resolved path falls under an exclusion.

        Bare names are compared with the entry's own name only; the walk
        prunes excluded directories, so descendants never get here.
        """
        norm_path = os.path.normcase(os.path.normpath(path))
        if self._under_prefix(norm_path):
            return True
        if real_path is not None and self._under_prefix(os.path.normcase(real_path)):
            return True
        if check_name and os.path.basename(norm_path) in self.excluded_names:
            return True
        return False

    def is_hidden(self, name: str) -> bool:
        return not self.config.include_hidden and name.startswith(".")

    def covers(self, root: str, path: str) -> bool:
        """True when a walk of root under these rules would reach path.

        Replays the walk's directory and name checks on every component
        between root and path, so anything inside an excluded or hidden
        directory is not covered.
        """
        real_root = os.path.realpath(root)
        real_path = os.path.realpath(path)
        relative = os.path.relpath(real_path, real_root)
        if relative == os.curdir:
            return True
        if relative == os.pardir or relative.startswith(os.pardir + os.sep):
            return False
        if self.is_excluded(root, real_root, check_name=False):
            return False

        visited, real = root, real_root
        for name in relative.split(os.sep):
            visited = os.path.join(visited, name)
            real = os.path.join(real, name)
            if self.is_hidden(name) or self.is_excluded(visited, real):
                return False
        return True

    def should_process_file(self, path: str, size: int, mtime: float) -> Tuple[bool, Optional[str]]:
        """Check if file should be recorded"""
        if size < self.config.min_file_size:
            return False, f"below_min_size:{self.config.min_file_size}"

        ext = os.path.splitext(path)[1].lower()
        if ext and ext in self.excluded_extensions:
            return False, f"excluded_extension:{ext}"

        if self.age_cutoff is not None and mtime < self.age_cutoff:
            return False, f"older_than:{self.config.max_file_age_days}d"

        return True, None

# ---------------------------
# Scanner
# ---------------------------


class Scanner:
    """Single-threaded tree walker producing a ScanResult"""

    def __init__(self, config: Optional[ScanConfig] = None):
        self.config = config or ScanConfig()

    @staticmethod
    def validate_root(root: Union[str, Path]) -> str:
        """Absolute root path, or ScanError before any traversal"""
        root_str = os.path.abspath(os.path.expanduser(str(root)))
        if not os.path.exists(root_str):
            raise ScanError(root_str, "path does not exist")
        if not os.path.isdir(root_str):
            raise ScanError(root_str, "not a directory")
        return root_str

    def scan(self, root: Union[str, Path],
             exclusions: Optional[Iterable[str]] = None,
             max_file_size: Optional[int] = None,
             progress: Optional[ProgressTracker] = None,
             cancel_token: Optional[CancelToken] = None) -> ScanResult:
        """Walk root and return every recorded file plus warnings.

        exclusions and max_file_size default to the config's values. On
        cancellation the records gathered so far are returned with status
        CANCELLED.
        """
        root_str = self.validate_root(root)
        if exclusions is None:
            exclusions = self.config.exclude_dirs
        if max_file_size is None:
            max_file_size = self.config.max_file_size
        if progress is None:
            progress = ProgressTracker(cancel_token)
        if cancel_token is None:
            cancel_token = progress.cancel_token

        start_time = time.time()
        path_filter = PathFilter(exclusions, self.config)
        # Categorize relative to the root's parent so the location of the
        # scanned tree itself (e.g. under /tmp) does not colour every file
        category_base = os.path.dirname(root_str.rstrip(os.sep)) or root_str

        records: List[FileRecord] = []
        warnings: List[ScanWarning] = []
        visited_dirs: Set[str] = set()
        visited_files: Set[str] = set()
        excluded_count = 0
        status = ScanStatus.COMPLETE

        def on_walk_error(error: OSError) -> None:
            path = error.filename or root_str
            warnings.append(ScanWarning.from_os_error(path, error))
            logger.warning(f"Cannot read directory {path}: {error}")

        logger.info(f"Scanning: {root_str}")
        progress.start_phase(Phase.SCANNING)

        if path_filter.is_excluded(root_str, os.path.realpath(root_str), check_name=False):
            logger.info(f"Root {root_str} is excluded, nothing to scan")
        else:
            walker = os.walk(root_str, topdown=True, onerror=on_walk_error,
                             followlinks=self.config.follow_symlinks)
            for current, dirs, files in walker:
                if cancel_token.is_cancelled():
                    status = ScanStatus.CANCELLED
                    break

                real_current = os.path.realpath(current)
                if real_current in visited_dirs:
                    # Symlink cycle or second route to the same directory
                    dirs.clear()
                    continue
                visited_dirs.add(real_current)

                dirs[:] = self._filter_dirs(current, real_current, sorted(dirs), path_filter, visited_dirs)

                for filename in sorted(files):
                    if cancel_token.is_cancelled():
                        status = ScanStatus.CANCELLED
                        break

                    record, warning = self._visit_file(
                        os.path.join(current, filename), filename, real_current,
                        path_filter, visited_files, max_file_size, category_base, progress,
                    )
                    if warning is not None:
                        warnings.append(warning)
                    elif record is None:
                        excluded_count += 1
                    else:
                        records.append(record)

                if status is ScanStatus.CANCELLED:
                    break

        duration = time.time() - start_time
        if status is ScanStatus.CANCELLED:
            logger.warning(f"Scan cancelled after {len(records):,} files")
        logger.info(
            f"Scan complete: {len(records):,} files cataloged "
            f"({excluded_count:,} excluded, {len(warnings):,} warnings) in {duration:.1f}s"
        )

        return ScanResult(
            root=root_str,
            records=tuple(records),
            warnings=tuple(warnings),
            status=status,
            duration=duration,
        )

    def _filter_dirs(self, current: str, real_current: str, dirs: List[str],
                     path_filter: PathFilter, visited_dirs: Set[str]) -> List[str]:
        kept = []
        for name in dirs:
            if path_filter.is_hidden(name):
                continue
            full = os.path.join(current, name)
            is_link = os.path.islink(full)
            if is_link and not self.config.follow_symlinks:
                continue
            # The root or an ancestor may itself be a link; check where the entry really lives
            real = os.path.realpath(full) if is_link else os.path.join(real_current, name)
            if path_filter.is_excluded(full, real):
                logger.debug(f"Excluded directory: {full}")
                continue
            if real in visited_dirs:
                continue
            kept.append(name)
        return kept

    def _visit_file(self, path: str, name: str, real_dir: str, path_filter: PathFilter,
                    visited_files: Set[str], max_file_size: Optional[int],
                    category_base: str, progress: ProgressTracker
                    ) -> Tuple[Optional[FileRecord], Optional[ScanWarning]]:
        """Stat and record one file; (None, None) means filtered out"""
        if path_filter.is_hidden(name):
            return None, None

        try:
            lst = os.lstat(path)
        except OSError as e:
            return None, self._warn(path, e)

        is_link = stat.S_ISLNK(lst.st_mode)
        if is_link and not self.config.follow_symlinks:
            return None, None

        real_path = os.path.realpath(path) if is_link else os.path.join(real_dir, name)
        if path_filter.is_excluded(path, real_path):
            return None, None

        try:
            st = os.stat(path) if is_link else lst
        except OSError as e:
            return None, self._warn(path, e)

        if not stat.S_ISREG(st.st_mode):
            return None, None

        # One record per underlying file, whichever route reached it first
        key = os.path.normcase(real_path)
        if key in visited_files:
            return None, None
        visited_files.add(key)

        size = st.st_size
        progress.advance(Phase.SCANNING, 1, size)

        should_process, reason = path_filter.should_process_file(path, size, st.st_mtime)
        if not should_process:
            logger.debug(f"Excluded {path}: {reason}")
            return None, None

        if not os.access(path, os.R_OK):
            return None, ScanWarning(path=path, kind=WarningKind.PERMISSION_DENIED,
                                     message="file is not readable")

        relative = os.path.relpath(path, category_base)
        record = FileRecord(
            path=path,
            size=size,
            mtime=st.st_mtime,
            category=categorize(relative, os.path.splitext(name)[1], size),
            oversized=max_file_size is not None and size > max_file_size,
        )
        return record, None

    @staticmethod
    def _warn(path: str, error: OSError) -> ScanWarning:
        warning = ScanWarning.from_os_error(path, error)
        logger.warning(f"Skipping {path}: {warning.kind.value} ({warning.message})")
        return warning
