#!/usr/bin/env python3
"""
Cleaner - sequential, per-item deletion with safety checks

Every requested path gets exactly one CleanupOutcome. A failure on one
path never stops the batch and nothing is retried.
"""

import logging
import os
import platform
import shutil
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from .models import CleanupOutcome, CleanupStatus
from .progress import CancelToken, Phase, ProgressTracker

# Optional imports
try:
    from send2trash import send2trash
    SEND2TRASH_AVAILABLE = True
except ImportError:
    SEND2TRASH_AVAILABLE = False

logger = logging.getLogger(__name__)

# Never deleted in safe mode, nor anything beneath them
PROTECTED_PREFIXES = (
    "/bin",
    "/boot",
    "/dev",
    "/etc",
    "/lib",
    "/lib32",
    "/lib64",
    "/proc",
    "/sbin",
    "/sys",
    "/usr",
    "/System",
    "/Library",
    "/Applications",
    r"C:\Windows",
    r"C:\Program Files",
    r"C:\Program Files (x86)",
    r"C:\ProgramData",
)

# Never deleted in safe mode themselves; their contents are not protected
PROTECTED_EXACT = (
    "/",
    "/home",
    "/root",
    "/var",
    "/tmp",
    "/Users",
    "C:\\",
)

REASON_PROTECTED = "protected"
REASON_ALREADY_GONE = "already-gone"
REASON_BACKUP_FAILED = "backup-failed"
REASON_NOT_A_FILE = "not-a-file"
REASON_CANCELLED = "cancelled"
REASON_DRY_RUN = "dry-run"


def _norm(path: str) -> str:
    return os.path.normcase(os.path.normpath(path))


def _is_under(path: str, root: str) -> bool:
    if path == root:
        return True
    boundary = root if root.endswith(os.sep) else root + os.sep
    return path.startswith(boundary)


class Cleaner:
    """Deletes a user-selected list of files, one outcome per path"""

    def __init__(self, safe_mode: bool = True, backup_before_delete: bool = False,
                 allowed_roots: Sequence[Union[str, Path]] = (),
                 backup_dir: Optional[Union[str, Path]] = None,
                 use_trash: bool = False, dry_run: bool = False,
                 covered: Optional[Callable[[str], bool]] = None):
        self.safe_mode = safe_mode
        self.backup_before_delete = backup_before_delete
        self.allowed_roots = [_norm(os.path.realpath(os.path.expanduser(str(r)))) for r in allowed_roots]
        self.backup_dir = Path(backup_dir or "deletion_backup").expanduser().absolute()
        self.use_trash = use_trash and SEND2TRASH_AVAILABLE
        self.dry_run = dry_run
        # Optional check that a path lies where the scan actually looked
        self.covered = covered
        self.session_stamp = datetime.now().strftime("%Y%m%d_%H%M%S")

        if use_trash and not SEND2TRASH_AVAILABLE:
            logger.warning("send2trash not available, files will be deleted permanently")

        self._protected_prefixes = [_norm(p) for p in PROTECTED_PREFIXES if self._applies(p)]
        self._protected_exact = {_norm(p) for p in PROTECTED_EXACT if self._applies(p)}
        home = os.path.expanduser("~")
        if home and home != "~":
            self._protected_exact.add(_norm(home))

    @staticmethod
    def _applies(path: str) -> bool:
        is_windows_path = len(path) > 1 and path[1] == ":"
        return is_windows_path == (platform.system() == "Windows")

    def is_protected(self, path: Union[str, Path]) -> Tuple[bool, str]:
        """Safe-mode policy check on the resolved path"""
        resolved = _norm(os.path.realpath(os.path.expanduser(str(path))))
        if resolved in self._protected_exact:
            return True, "system directory"
        for prefix in self._protected_prefixes:
            if _is_under(resolved, prefix):
                return True, f"inside {prefix}"
        if not self.allowed_roots:
            return True, "no scanned directory covers this path"
        if not any(_is_under(resolved, root) for root in self.allowed_roots):
            return True, "outside the scanned directories"
        if self.covered is not None and not self.covered(resolved):
            return True, "inside a directory the scan did not cover"
        return False, ""

    def clean(self, selected: Iterable[Union[str, Path]],
              progress: Optional[ProgressTracker] = None,
              cancel_token: Optional[CancelToken] = None) -> List[CleanupOutcome]:
        """Process each selected path independently, in order"""
        selected = [str(p) for p in selected]
        if progress is None:
            progress = ProgressTracker(cancel_token)
        if cancel_token is None:
            cancel_token = progress.cancel_token

        logger.info(
            f"Cleanup of {len(selected):,} files "
            f"(safe_mode={self.safe_mode}, backup={self.backup_before_delete}, "
            f"mode={'DRY RUN' if self.dry_run else 'LIVE'})"
        )
        progress.start_phase(Phase.CLEANING, total=len(selected))

        outcomes = []
        for path in selected:
            if cancel_token.is_cancelled():
                outcome = CleanupOutcome(path, CleanupStatus.SKIPPED, REASON_CANCELLED)
            else:
                outcome = self._clean_one(path)
            outcomes.append(outcome)
            progress.advance(Phase.CLEANING, 1, outcome.bytes_freed)

        freed = sum(o.bytes_freed for o in outcomes if o.succeeded)
        failed = sum(1 for o in outcomes if o.status is CleanupStatus.FAILED)
        logger.info(f"Cleanup complete: {freed:,} bytes freed, {failed:,} failures")
        return outcomes

    def _clean_one(self, path: str) -> CleanupOutcome:
        if self.safe_mode:
            protected, why = self.is_protected(path)
            if protected:
                logger.warning(f"Refusing to delete protected path {path}: {why}")
                return CleanupOutcome(path, CleanupStatus.SKIPPED, REASON_PROTECTED)

        # The selection may come from a stale scan
        if not os.path.lexists(path):
            logger.info(f"Already gone: {path}")
            return CleanupOutcome(path, CleanupStatus.SKIPPED, REASON_ALREADY_GONE)
        if os.path.isdir(path) and not os.path.islink(path):
            return CleanupOutcome(path, CleanupStatus.SKIPPED, REASON_NOT_A_FILE)

        try:
            size = os.lstat(path).st_size
        except FileNotFoundError:
            return CleanupOutcome(path, CleanupStatus.SKIPPED, REASON_ALREADY_GONE)
        except OSError as e:
            return CleanupOutcome(path, CleanupStatus.FAILED, f"stat failed: {e}")

        if self.dry_run:
            logger.info(f"  [DRY RUN] Would delete: {path}")
            return CleanupOutcome(path, CleanupStatus.SKIPPED, REASON_DRY_RUN, bytes_freed=size)

        backup_path = None
        if self.backup_before_delete:
            backup_path = self._backup(path, size)
            if backup_path is None:
                return CleanupOutcome(path, CleanupStatus.FAILED, REASON_BACKUP_FAILED)

        try:
            if self.use_trash:
                send2trash(path)
            else:
                os.unlink(path)
        except FileNotFoundError:
            return CleanupOutcome(path, CleanupStatus.SKIPPED, REASON_ALREADY_GONE,
                                  backup_path=str(backup_path) if backup_path else None)
        except OSError as e:
            logger.error(f"Failed to delete {path}: {e}")
            return CleanupOutcome(path, CleanupStatus.FAILED, str(e),
                                  backup_path=str(backup_path) if backup_path else None)

        if backup_path is not None:
            logger.info(f"  Deleted: {path} -> backup {backup_path}")
            return CleanupOutcome(path, CleanupStatus.BACKED_UP_AND_DELETED,
                                  bytes_freed=size, backup_path=str(backup_path))

        logger.info(f"  Deleted: {path}")
        return CleanupOutcome(path, CleanupStatus.DELETED, bytes_freed=size)

    def backup_target(self, path: str) -> Path:
        """Mirror of the original path under a per-session backup folder"""
        absolute = Path(os.path.abspath(path))
        partition = absolute.anchor.replace(os.sep, "").replace(":", "") or "root"
        relative = Path(*absolute.parts[1:]) if len(absolute.parts) > 1 else Path(absolute.name)
        return self.backup_dir / self.session_stamp / partition / relative

    def _backup(self, path: str, expected_size: int) -> Optional[Path]:
        """Copy and verify; None means the original must stay untouched"""
        target = self.backup_target(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            counter = 1
            while target.exists():
                target = target.with_name(f"{target.name}.{counter}")
                counter += 1
            shutil.copy2(path, target, follow_symlinks=False)
            copied_size = target.lstat().st_size
        except OSError as e:
            logger.error(f"Backup of {path} failed: {e}")
            self._discard_partial(target)
            return None

        if copied_size != expected_size:
            logger.error(f"Backup of {path} failed verification: {copied_size} != {expected_size} bytes")
            self._discard_partial(target)
            return None

        return target

    @staticmethod
    def _discard_partial(target: Path) -> None:
        try:
            if target.is_file():
                target.unlink()
        except OSError as e:
            logger.warning(f"Could not remove partial backup {target}: {e}")


def estimate_cleanup_size(paths: Iterable[Union[str, Path]]) -> int:
    """Bytes that deleting these paths would free right now"""
    total = 0
    for path in paths:
        try:
            total += os.lstat(path).st_size
        except OSError:
            continue
    return total
