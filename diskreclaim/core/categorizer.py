#!/usr/bin/env python3
"""
File Categorizer - ordered rule table mapping files to categories

Pure string processing: no filesystem access, no side effects. Rules are
evaluated top to bottom and the first match wins; anything unmatched is
Category.OTHER.

Rule order:
    1. cache directory anywhere in the path      -> CACHE
    2. log directory anywhere in the path        -> LOG
    3. temp directory anywhere in the path       -> TEMPORARY
    4. temporary filename markers                -> TEMPORARY
    5. log extensions and rotated logs           -> LOG
    6. cache extension                           -> CACHE
    7. copy markers in the file name             -> DUPLICATE_CANDIDATE
    8. archive / executable / media / document extensions
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, FrozenSet, Optional, Tuple


class Category(Enum):
    """Coarse classification tag assigned to every scanned file"""
    LOG = "log"
    TEMPORARY = "temporary"
    CACHE = "cache"
    DUPLICATE_CANDIDATE = "duplicate-candidate"
    DOCUMENT = "document"
    MEDIA = "media"
    ARCHIVE = "archive"
    EXECUTABLE = "executable"
    OTHER = "other"

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    @property
    def is_safe_to_delete(self) -> bool:
        return self in SAFE_TO_DELETE


_DESCRIPTIONS = {
    Category.LOG: "Log files from applications and system",
    Category.TEMPORARY: "Temporary files that can be safely deleted",
    Category.CACHE: "Application cache files",
    Category.DUPLICATE_CANDIDATE: "Files named like copies of other files",
    Category.DOCUMENT: "Documents, spreadsheets and text",
    Category.MEDIA: "Images, audio and video",
    Category.ARCHIVE: "Compressed archives and disk images",
    Category.EXECUTABLE: "Programs, libraries and installers",
    Category.OTHER: "Everything else",
}

SAFE_TO_DELETE: FrozenSet[Category] = frozenset({
    Category.LOG,
    Category.TEMPORARY,
    Category.CACHE,
})

# ---------------------------
# Lookup tables
# ---------------------------

CACHE_DIR_NAMES = frozenset({
    "cache", ".cache", "caches", "__pycache__", ".pytest_cache", ".mypy_cache",
    ".npm", ".gradle", ".yarn-cache", "cachedata", "cachestorage", "gpucache",
    "code cache", "inetcache", "thumbnails",
})

LOG_DIR_NAMES = frozenset({"log", "logs", ".logs"})

TEMP_DIR_NAMES = frozenset({"tmp", "temp", ".tmp", ".temp"})

TEMP_EXTENSIONS = frozenset({
    ".tmp", ".temp", ".swp", ".swo", ".part", ".partial", ".crdownload",
    ".download", ".bak", ".old", ".dmp",
})

LOG_EXTENSIONS = frozenset({".log", ".out", ".err", ".trace"})

ARCHIVE_EXTENSIONS = frozenset({
    ".zip", ".tar", ".gz", ".tgz", ".bz2", ".xz", ".7z", ".rar", ".zst",
    ".iso", ".dmg", ".cab",
})

EXECUTABLE_EXTENSIONS = frozenset({
    ".exe", ".msi", ".dll", ".so", ".dylib", ".bin", ".app", ".apk", ".deb",
    ".rpm", ".appimage", ".jar", ".sh", ".bat", ".cmd", ".com",
})

MEDIA_EXTENSIONS = frozenset({
    ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tif", ".tiff", ".webp",
    ".heic", ".raw", ".cr2", ".nef", ".svg",
    ".mp3", ".wav", ".flac", ".aac", ".ogg", ".m4a", ".wma",
    ".mp4", ".mkv", ".avi", ".mov", ".wmv", ".webm", ".m4v", ".flv",
})

DOCUMENT_EXTENSIONS = frozenset({
    ".pdf", ".doc", ".docx", ".odt", ".rtf", ".txt", ".md", ".tex",
    ".xls", ".xlsx", ".ods", ".csv", ".ppt", ".pptx", ".odp", ".epub",
    ".pages", ".numbers", ".key",
})

_ROTATED_LOG = re.compile(r"\.log(\.\d+)+(\.(gz|bz2|xz|zip))?$")
_CORE_DUMP = re.compile(r"^core(\.\d+)?$")
_COPY_MARKERS = (
    re.compile(r"^copy of "),
    re.compile(r" - copy( \(\d+\))?$"),
    re.compile(r" \(\d{1,2}\)$"),
    re.compile(r"[ _-]copy\d*$"),
)

# ---------------------------
# Rule table
# ---------------------------


@dataclass(frozen=True)
class FileFacts:
    """Everything a rule may look at, derived once per file"""
    directories: Tuple[str, ...]
    name: str
    stem: str
    extension: str
    size: int


@dataclass(frozen=True)
class CategoryRule:
    """A named predicate and the category it yields"""
    name: str
    category: Category
    matches: Callable[[FileFacts], bool]


def _is_temp_name(facts: FileFacts) -> bool:
    name = facts.name
    if name.startswith("~") or name.startswith(".#") or name.endswith("~"):
        return True
    if facts.extension in TEMP_EXTENSIONS:
        return True
    return facts.size > 0 and _CORE_DUMP.match(name) is not None


def _is_log_name(facts: FileFacts) -> bool:
    return facts.extension in LOG_EXTENSIONS or _ROTATED_LOG.search(facts.name) is not None


def _is_copy_name(facts: FileFacts) -> bool:
    return any(marker.search(facts.stem) for marker in _COPY_MARKERS)


RULES: Tuple[CategoryRule, ...] = (
    CategoryRule("cache-directory", Category.CACHE,
                 lambda f: any(d in CACHE_DIR_NAMES for d in f.directories)),
    CategoryRule("log-directory", Category.LOG,
                 lambda f: any(d in LOG_DIR_NAMES for d in f.directories)),
    CategoryRule("temp-directory", Category.TEMPORARY,
                 lambda f: any(d in TEMP_DIR_NAMES for d in f.directories)),
    CategoryRule("temp-name", Category.TEMPORARY, _is_temp_name),
    CategoryRule("log-name", Category.LOG, _is_log_name),
    CategoryRule("cache-extension", Category.CACHE, lambda f: f.extension == ".cache"),
    CategoryRule("copy-marker", Category.DUPLICATE_CANDIDATE, _is_copy_name),
    CategoryRule("archive-extension", Category.ARCHIVE,
                 lambda f: f.extension in ARCHIVE_EXTENSIONS),
    CategoryRule("executable-extension", Category.EXECUTABLE,
                 lambda f: f.extension in EXECUTABLE_EXTENSIONS),
    CategoryRule("media-extension", Category.MEDIA,
                 lambda f: f.extension in MEDIA_EXTENSIONS),
    CategoryRule("document-extension", Category.DOCUMENT,
                 lambda f: f.extension in DOCUMENT_EXTENSIONS),
)


def split_components(path: str) -> Tuple[str, ...]:
    """Split a path on either separator, dropping empty parts and drive anchors"""
    parts = re.split(r"[\\/]+", path)
    return tuple(p for p in parts if p and not p.endswith(":"))


def _facts(path: str, extension: Optional[str], size: int) -> FileFacts:
    components = tuple(c.lower() for c in split_components(path))
    name = components[-1] if components else ""
    if extension is None:
        dot = name.rfind(".")
        extension = name[dot:] if dot > 0 else ""
    extension = extension.lower()
    if extension and not extension.startswith("."):
        extension = "." + extension
    stem = name[:-len(extension)] if extension and name.endswith(extension) else name
    return FileFacts(
        directories=components[:-1],
        name=name,
        stem=stem,
        extension=extension,
        size=max(0, size or 0),
    )


def matching_rule(path: str, extension: Optional[str] = None, size: int = 0) -> Optional[CategoryRule]:
    """Return the first rule that matches, or None"""
    facts = _facts(path, extension, size)
    for rule in RULES:
        if rule.matches(facts):
            return rule
    return None


def categorize(path: str, extension: Optional[str] = None, size: int = 0) -> Category:
    """Map a file to exactly one category; never raises for string input"""
    rule = matching_rule(path, extension, size)
    return rule.category if rule else Category.OTHER
