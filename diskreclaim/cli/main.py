#!/usr/bin/env python3
"""
DiskReclaim - Disk Space Reclamation Scanner v1.0

Command-line front end for the scan -> categorize -> deduplicate -> clean
pipeline.

Features:
- Size pre-filtered duplicate detection with parallel hashing
- File categorization (logs, temp, cache, copies, media, ...)
- Live progress with rate and elapsed time
- Safe-mode cleanup with optional verified backup or system trash
- Keep-one selection strategies for duplicate groups
- Export to CSV/JSON
"""

import argparse
import csv
import json
import logging
import os
import sys
import time
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from .. import __version__
from ..core.categorizer import Category
from ..core.cleaner import estimate_cleanup_size
from ..core.config import HASH_ALGORITHMS, ScanConfig, load_config, save_config
from ..core.errors import ConfigError, ScanError
from ..core.models import CleanupOutcome, CleanupStatus, DuplicateGroup, ScanResult
from ..core.progress import Phase, ProgressSnapshot
from ..core.session import ScanSession, start_scan

# ---------------------------
# Logging Configuration
# ---------------------------
logger = logging.getLogger(__name__)


def configure_logging(quiet: bool = False, verbose: bool = False) -> None:
    """Root logging setup for the command-line run"""
    level = logging.INFO
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format='[%(asctime)s] %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

# ---------------------------
# Utility Functions
# ---------------------------


def format_size(bytes_val: float) -> str:
    """Format bytes as human readable"""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_val < 1024.0:
            return f"{bytes_val:.1f} {unit}"
        bytes_val /= 1024.0
    return f"{bytes_val:.1f} PB"


def parse_size(size_str: str) -> int:
    """Parse human-readable size"""
    size_str = size_str.strip().upper()

    # Order matters: longer suffixes first to avoid 'B' matching 'MB'
    multipliers = [
        ('TB', 1024**4),
        ('GB', 1024**3),
        ('MB', 1024**2),
        ('KB', 1024),
        ('B', 1),
    ]

    try:
        for suffix, multiplier in multipliers:
            if size_str.endswith(suffix):
                number = size_str[:-len(suffix)].strip()
                return int(float(number) * multiplier)
        return int(size_str)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid size: {size_str!r}")


def parse_category(value: str) -> Category:
    try:
        return Category(value.lower())
    except ValueError:
        choices = ", ".join(c.value for c in Category)
        raise argparse.ArgumentTypeError(f"Unknown category {value!r} (choose from {choices})")

# ---------------------------
# Progress Display
# ---------------------------


class ProgressReporter:
    """Log session progress at a fixed interval"""

    def __init__(self, interval: float = 2.0):
        self.interval = interval
        self.last_update = 0.0

    def update(self, snapshot: ProgressSnapshot, force: bool = False) -> None:
        """Update progress display"""
        now = time.time()
        if not force and now - self.last_update < self.interval:
            return
        if snapshot.phase is Phase.IDLE:
            return

        parts = [f"{snapshot.phase.value.capitalize()}: {snapshot.items_processed:,}"]
        if snapshot.items_total is not None:
            pct = (snapshot.fraction or 0.0) * 100
            parts[0] += f"/{snapshot.items_total:,} ({pct:.1f}%)"
        parts.append(f"Rate: {snapshot.rate:.1f}/s")
        parts.append(f"Time: {timedelta(seconds=int(snapshot.elapsed))}")
        if snapshot.bytes_processed:
            parts.append(f"Bytes: {format_size(snapshot.bytes_processed)}")
        if snapshot.cancelled:
            parts.append("CANCELLING")

        logger.info(" | ".join(parts))
        self.last_update = now


def wait_for_session(session: ScanSession, reporter: ProgressReporter) -> ScanResult:
    """Poll until the pipeline finishes; Ctrl-C requests cancellation"""
    while True:
        try:
            while not session.wait(timeout=0.2):
                reporter.update(session.poll_progress())
            return session.get_results()
        except KeyboardInterrupt:
            if session.poll_progress().cancelled:
                raise
            logger.warning("Scan interrupted by user, finishing current work...")
            session.request_cancel()

# ---------------------------
# Selection Strategies
# ---------------------------

SELECTION_STRATEGIES = ("keep_first", "keep_newest", "keep_oldest", "keep_shortest_path")


def _mtime(path: str) -> float:
    try:
        return os.stat(path).st_mtime
    except OSError:
        return 0.0


def choose_keeper(group: DuplicateGroup, strategy: str,
                  mtimes: Optional[Dict[str, float]] = None) -> str:
    """Path to keep in a duplicate group; every other member is selectable"""
    paths = list(group.paths)
    lookup = mtimes or {}

    def mtime_of(p: str) -> float:
        return lookup[p] if p in lookup else _mtime(p)

    if strategy == "keep_first":
        return paths[0]
    elif strategy == "keep_newest":
        return max(paths, key=lambda p: (mtime_of(p), p))
    elif strategy == "keep_oldest":
        return min(paths, key=lambda p: (mtime_of(p), p))
    elif strategy == "keep_shortest_path":
        return min(paths, key=lambda p: (len(p), p))
    raise ValueError(f"Unknown strategy: {strategy}")


def select_duplicates(result: ScanResult, strategy: str) -> List[str]:
    """All duplicate members except one keeper per group"""
    mtimes = {r.path: r.mtime for r in result.records}
    selected = []
    for group in result.duplicate_groups:
        keeper = choose_keeper(group, strategy, mtimes)
        selected.extend(p for p in group.paths if p != keeper)
    return selected


def select_categories(result: ScanResult, categories: Sequence[Category]) -> List[str]:
    wanted = set(categories)
    return [r.path for r in result.records if r.category in wanted]


def build_selection(result: ScanResult, categories: Sequence[Category],
                    strategy: Optional[str]) -> List[str]:
    """Merge category and duplicate selections, keeping first-seen order"""
    selected: List[str] = []
    seen = set()
    chosen = select_categories(result, categories)
    if strategy:
        chosen += select_duplicates(result, strategy)
    for path in chosen:
        if path not in seen:
            seen.add(path)
            selected.append(path)

    # Never remove every copy of duplicated content
    if strategy:
        mtimes = {r.path: r.mtime for r in result.records}
        for group in result.duplicate_groups:
            if all(p in seen for p in group.paths):
                keeper = choose_keeper(group, strategy, mtimes)
                selected.remove(keeper)
                seen.discard(keeper)
    return selected

# ---------------------------
# Reporting
# ---------------------------


def print_scan_report(result: ScanResult, top: int = 10) -> None:
    """Print scan summary, category table and top duplicate groups"""
    summary = result.summary()

    print(f"\n{'='*60}")
    print(f"SCAN REPORT{' (PARTIAL - CANCELLED)' if result.cancelled else ''}")
    print(f"{'='*60}")
    print(f"Root: {result.root}")
    print(f"Files: {summary.total_files:,} ({format_size(summary.total_bytes)})")
    print(f"Duration: {timedelta(seconds=int(summary.duration))}")
    if summary.oversized_files:
        print(f"Oversized (not hashed): {summary.oversized_files:,}")

    print(f"\n{'Category':<22}{'Files':>10}{'Size':>14}  Safe")
    for category in Category:
        count = summary.files_by_category.get(category, 0)
        if not count:
            continue
        size = summary.bytes_by_category.get(category, 0)
        safe = "yes" if category.is_safe_to_delete else ""
        print(f"{category.value:<22}{count:>10,}{format_size(size):>14}  {safe}")

    print(f"\nDuplicate groups: {summary.duplicate_groups:,} "
          f"({summary.duplicate_files:,} files, "
          f"{format_size(summary.reclaimable_duplicate_bytes)} reclaimable)")
    for i, group in enumerate(result.duplicate_groups[:top], 1):
        print(f"\n  #{i}: {group.count} x {format_size(group.size)} "
              f"(wasted {format_size(group.wasted_space)}) {group.content_hash[:12]}")
        for path in group.paths:
            print(f"      {path}")
    if len(result.duplicate_groups) > top:
        print(f"\n  ... and {len(result.duplicate_groups) - top:,} more groups")

    if result.warnings:
        print(f"\nWarnings: {len(result.warnings):,}")
        for warning in result.warnings[:top]:
            print(f"  [{warning.kind.value}] {warning.path}: {warning.message}")
    if result.hash_failures:
        print(f"\nHash failures: {len(result.hash_failures):,}")
        for failure in result.hash_failures[:top]:
            print(f"  {failure.path}: {failure.reason}")


def print_cleanup_report(outcomes: List[CleanupOutcome], backup_dir: Optional[str] = None) -> None:
    counts: Dict[CleanupStatus, int] = {}
    for outcome in outcomes:
        counts[outcome.status] = counts.get(outcome.status, 0) + 1
    freed = sum(o.bytes_freed for o in outcomes if o.succeeded)

    print(f"\n{'='*60}")
    print("CLEANUP SUMMARY")
    print(f"{'='*60}")
    print(f"Files processed: {len(outcomes):,}")
    for status in CleanupStatus:
        if counts.get(status):
            print(f"  {status.value}: {counts[status]:,}")
    print(f"Space freed: {format_size(freed)}")
    if backup_dir and counts.get(CleanupStatus.BACKED_UP_AND_DELETED):
        print(f"Backup directory: {backup_dir}")

    problems = [o for o in outcomes if o.status in (CleanupStatus.FAILED, CleanupStatus.SKIPPED)]
    if problems:
        print("\nNot deleted:")
        for outcome in problems:
            print(f"  {outcome.path}: {outcome.status.value} ({outcome.reason})")

# ---------------------------
# Export
# ---------------------------


def export_csv(result: ScanResult, path: str) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["group", "size", "hash", "count", "wasted", "path"])
        for i, group in enumerate(result.duplicate_groups, 1):
            for member in group.paths:
                writer.writerow([i, group.size, group.content_hash, group.count, group.wasted_space, member])
    logger.info(f"Exported {len(result.duplicate_groups):,} groups to {path}")


def export_json(result: ScanResult, path: str) -> None:
    summary = result.summary()
    data = {
        "generated": datetime.now().isoformat(),
        "root": result.root,
        "status": result.status.value,
        "summary": {
            "total_files": summary.total_files,
            "total_bytes": summary.total_bytes,
            "files_by_category": {c.value: n for c, n in summary.files_by_category.items()},
            "bytes_by_category": {c.value: n for c, n in summary.bytes_by_category.items()},
            "reclaimable_duplicate_bytes": summary.reclaimable_duplicate_bytes,
        },
        "duplicates": [
            {
                "size": g.size,
                "hash": g.content_hash,
                "count": g.count,
                "wasted": g.wasted_space,
                "paths": list(g.paths),
            }
            for g in result.duplicate_groups
        ],
        "warnings": [{"path": w.path, "kind": w.kind.value, "message": w.message} for w in result.warnings],
        "hash_failures": [{"path": h.path, "reason": h.reason} for h in result.hash_failures],
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    logger.info(f"Exported {len(result.duplicate_groups):,} groups to {path}")


def export_results(result: ScanResult, fmt: str, path: Optional[str] = None) -> str:
    if not path:
        path = f"duplicates_{datetime.now().strftime('%Y%m%d_%H%M%S')}.{fmt}"
    if fmt == "csv":
        export_csv(result, path)
    else:
        export_json(result, path)
    return path

# ---------------------------
# Main
# ---------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="diskreclaim",
        description="DiskReclaim - find reclaimable disk space and duplicate files",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Basic options
    parser.add_argument("--path", default=".", help="Directory to scan")
    parser.add_argument("--config", help="JSON configuration file")
    parser.add_argument("--save-config", help="Write the effective configuration to this file")

    # Filters
    parser.add_argument("--exclude-dir", nargs="+", default=[], help="Additional dirs to exclude")
    parser.add_argument("--exclude-ext", nargs="+", default=[], help="Extensions to skip")
    parser.add_argument("--min-size", type=parse_size, help="Minimum file size")
    parser.add_argument("--max-size", type=parse_size, help="Files above this size are not hashed")
    parser.add_argument("--max-age-days", type=int, help="Skip files older than this")
    parser.add_argument("--include-hidden", action="store_true", help="Scan hidden files and dirs")
    parser.add_argument("--no-follow-symlinks", action="store_true", help="Do not follow symbolic links")

    # Performance
    parser.add_argument("--workers", type=int, help="Hash worker threads (default: CPU count)")
    parser.add_argument("--chunk-size", type=parse_size, help="Hash read chunk size")
    parser.add_argument("--algorithm", choices=HASH_ALGORITHMS, help="Hash algorithm")

    # Output
    parser.add_argument("--export", choices=["csv", "json"], help="Export format")
    parser.add_argument("--export-path", help="Export file path")
    parser.add_argument("--top", type=int, default=10, help="Duplicate groups shown in the report")

    # Cleanup
    parser.add_argument("--clean-category", nargs="+", type=parse_category, default=[],
                        metavar="CATEGORY", help="Delete every file in these categories")
    parser.add_argument("--delete-duplicates", choices=SELECTION_STRATEGIES,
                        help="Delete all but one file in each duplicate group")
    parser.add_argument("--backup", action="store_true", help="Copy files to the backup dir before deleting")
    parser.add_argument("--backup-dir", help="Backup directory")
    parser.add_argument("--use-trash", action="store_true", help="Send files to the system trash")
    parser.add_argument("--no-safe-mode", action="store_true", help="Allow deleting outside the scanned root")
    parser.add_argument("--dry-run", action="store_true", help="Preview cleanup without deleting")
    parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")

    # Output verbosity
    parser.add_argument("--quiet", action="store_true", help="Only warnings and errors")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--progress-interval", type=float, default=2.0, help="Seconds between progress lines")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> ScanConfig:
    """Config file values overridden by explicit command-line flags"""
    config = load_config(args.config) if args.config else ScanConfig()

    config.exclude_dirs = set(config.exclude_dirs) | set(args.exclude_dir)
    config.excluded_extensions = set(config.excluded_extensions) | set(args.exclude_ext)
    if args.min_size is not None:
        config.min_file_size = args.min_size
    if args.max_size is not None:
        config.max_file_size = args.max_size
    if args.max_age_days is not None:
        config.max_file_age_days = args.max_age_days
    if args.include_hidden:
        config.include_hidden = True
    if args.no_follow_symlinks:
        config.follow_symlinks = False
    if args.workers is not None:
        config.workers = args.workers
    if args.chunk_size is not None:
        config.chunk_size = args.chunk_size
    if args.algorithm:
        config.hash_algorithm = args.algorithm
    if args.backup:
        config.backup_before_delete = True
    if args.backup_dir:
        config.backup_dir = args.backup_dir
    if args.use_trash:
        config.use_trash = True
    if args.no_safe_mode:
        config.safe_mode = False

    config.validate()
    return config


def confirm_cleanup(selected: List[str], dry_run: bool, skip_confirmation: bool) -> bool:
    """Show preview and ask for typed confirmation"""
    print(f"\n{'='*60}")
    print(f"CLEANUP {'PREVIEW' if dry_run else 'EXECUTION'}")
    print(f"{'='*60}")
    print(f"Files to delete: {len(selected):,}")
    print(f"Space to free: {format_size(estimate_cleanup_size(selected))}")
    print(f"Mode: {'DRY RUN' if dry_run else 'LIVE'}")

    if dry_run or skip_confirmation:
        return True

    print(f"\n  WARNING: About to delete {len(selected):,} files!")
    confirm = input("Type 'DELETE' to confirm: ")
    if confirm != 'DELETE':
        print("Deletion cancelled.")
        return False
    return True


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.quiet, args.verbose)

    try:
        config = config_from_args(args)
    except (ConfigError, OSError) as e:
        logger.error(f"Configuration error: {e}")
        return 2

    if args.save_config:
        save_config(config, args.save_config)

    logger.info(f"DiskReclaim v{__version__}")
    logger.info(f"Algorithm: {config.hash_algorithm} | Workers: {config.workers}")

    try:
        session = start_scan(args.path, config)
    except ScanError as e:
        logger.error(str(e))
        return 2

    reporter = ProgressReporter(args.progress_interval)
    try:
        result = wait_for_session(session, reporter)
    except KeyboardInterrupt:
        logger.error("Aborted")
        return 130

    if not args.quiet:
        print_scan_report(result, args.top)

    if args.export:
        export_results(result, args.export, args.export_path)

    if not args.clean_category and not args.delete_duplicates:
        return 0

    if result.cancelled:
        logger.warning("Scan was cancelled; cleanup is limited to the partial result")

    selected = build_selection(result, args.clean_category, args.delete_duplicates)
    if not selected:
        print("\nNo files selected for deletion.")
        return 0

    if not confirm_cleanup(selected, args.dry_run, args.yes):
        return 0

    outcomes = session.clean(selected, dry_run=args.dry_run)
    print_cleanup_report(outcomes, config.backup_dir if config.backup_before_delete else None)

    return 1 if any(o.status is CleanupStatus.FAILED for o in outcomes) else 0


if __name__ == "__main__":
    sys.exit(main())
