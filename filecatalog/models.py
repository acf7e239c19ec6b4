"""
Data Models - Type definitions for indexing and search.

These dataclasses represent the values flowing between the indexer,
the catalog, the codec and the search engine.
"""

import os
import sys
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional


def normalize_extension(name_or_ext: str) -> str:
    """Lower-cased extension without the leading dot ("" if none)."""
    return os.path.splitext(name_or_ext)[1].lower().lstrip(".")


def normalize_extension_filters(filters: Iterable[str] | None) -> List[str]:
    """
    Normalize user-supplied extension filters.

    "TXT", ".txt" and "*.txt" all become ".txt". Blank entries are dropped
    and duplicates removed (first occurrence wins).
    """
    normalized: List[str] = []
    for raw in filters or ():
        ext = raw.strip().lower().lstrip("*").lstrip(".")
        if not ext:
            continue
        ext = f".{ext}"
        if ext not in normalized:
            normalized.append(ext)
    return normalized


@dataclass(frozen=True)
class FileRecord:
    """
    One indexed file.

    Immutable once created: a path seen again in a later generation is a
    new record. Timestamps are POSIX seconds; None means the platform did
    not supply one.
    """
    path: Path
    name: str
    size_bytes: int
    modified_at: Optional[float]
    created_at: Optional[float]
    extension: str

    @classmethod
    def from_stat(cls, path: Path, stat: os.stat_result) -> "FileRecord":
        """Create a FileRecord from a path and its stat result."""
        return cls(
            path=path,
            name=path.name,
            size_bytes=max(int(stat.st_size), 0),
            modified_at=getattr(stat, "st_mtime", None),
            created_at=_creation_time(stat),
            extension=normalize_extension(path.name),
        )

    @property
    def modified(self) -> Optional[datetime]:
        if self.modified_at is None:
            return None
        return datetime.fromtimestamp(self.modified_at)

    @property
    def created(self) -> Optional[datetime]:
        if self.created_at is None:
            return None
        return datetime.fromtimestamp(self.created_at)


def _creation_time(stat: os.stat_result) -> Optional[float]:
    """Birth time where the platform records one."""
    birth = getattr(stat, "st_birthtime", None)
    if birth is not None:
        return float(birth)
    if sys.platform == "win32":
        return float(stat.st_ctime)
    return None


@dataclass
class IndexJob:
    """
    One indexing run: roots, normalized filters and a cancellation flag
    shared with the walk.
    """
    roots: List[Path]
    extension_filters: List[str] = field(default_factory=list)
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def create(
        cls,
        roots: Iterable[Path | str],
        extension_filters: Iterable[str] | None = None,
    ) -> "IndexJob":
        return cls(
            roots=[Path(r).expanduser().resolve() for r in roots],
            extension_filters=normalize_extension_filters(extension_filters),
        )

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

    def accepts(self, extension: str) -> bool:
        """Check whether a record extension (no dot) passes the filter."""
        if not self.extension_filters:
            return True
        return f".{extension}" in self.extension_filters


@dataclass(frozen=True)
class SearchQuery:
    """A single query against the catalog."""
    text: str
    search_content: bool = False
    use_regex: bool = False
    case_sensitive: bool = False


@dataclass
class SearchResult:
    """Matched records in catalog order plus timing."""
    records: List[FileRecord]
    elapsed_millis: int
    query: Optional[SearchQuery] = None
    content_reads: int = 0

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)


@dataclass
class IndexStats:
    """Statistics from an indexing run."""
    files_indexed: int = 0
    types_seen: int = 0
    directories_visited: int = 0
    files_filtered: int = 0
    errors: int = 0
    cancelled: bool = False
    duration_seconds: float = 0.0

    def __str__(self) -> str:
        state = "cancelled" if self.cancelled else "complete"
        return (
            f"Indexed {self.files_indexed} files "
            f"({self.types_seen} types, "
            f"{self.directories_visited} directories, "
            f"{self.files_filtered} filtered, "
            f"{self.errors} errors) "
            f"in {self.duration_seconds:.1f}s [{state}]"
        )
