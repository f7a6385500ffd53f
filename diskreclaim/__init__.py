"""
DiskReclaim - Disk Space Reclamation Scanner

Scans a directory tree, classifies files, finds duplicate content with
parallel hashing, and executes user-confirmed cleanups.
"""

__version__ = "1.0.0"
__author__ = "DiskReclaim Team"
__email__ = "info@diskreclaim.dev"
__license__ = "MIT"

from .core import categorizer, cleaner, duplicate_finder, progress, scanner, session
from .core.session import clean, get_results, poll_progress, request_cancel, start_scan

__all__ = [
    "categorizer",
    "cleaner",
    "duplicate_finder",
    "progress",
    "scanner",
    "session",
    "start_scan",
    "poll_progress",
    "get_results",
    "request_cancel",
    "clean",
]
