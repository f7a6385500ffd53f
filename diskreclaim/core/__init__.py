"""
DiskReclaim Core Modules

Core functionality for scanning, categorization, duplicate detection,
progress tracking, and cleanup.
"""

from . import categorizer
from . import cleaner
from . import config
from . import duplicate_finder
from . import hashing
from . import models
from . import progress
from . import scanner
from . import session

__all__ = [
    "categorizer",
    "cleaner",
    "config",
    "duplicate_finder",
    "hashing",
    "models",
    "progress",
    "scanner",
    "session",
]
