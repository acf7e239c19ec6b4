"""
Catalog - Shared in-memory collection of indexed files.

One writer (the indexer thread) appends while any number of readers take
snapshots. A single lock guards the list. Snapshots copy it under that lock,
so a search never sees records appended after the snapshot was taken.
"""

import logging
import threading
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Iterator, List, Set, Tuple

from .models import FileRecord


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogSnapshot:
    """Immutable point-in-time view of a Catalog."""
    records: Tuple[FileRecord, ...]
    extensions: FrozenSet[str]
    generation: int = 0
    complete: bool = False

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[FileRecord]:
        return iter(self.records)


class Catalog:
    """
    Thread-safe, ordered collection of FileRecords.

    Records keep discovery order. The extension set always equals the set
    of record extensions. Each clear() or replace() starts a new generation.
    """

    def __init__(self, records: Iterable[FileRecord] = ()):
        self._lock = threading.Lock()
        self._records: List[FileRecord] = []
        self._extensions: Set[str] = set()
        self._generation = 0
        self._complete = False
        self._added = 0
        for record in records:
            self._append(record)

    def add(self, record: FileRecord) -> int:
        """
        Append a record.

        Returns:
            Number of records added to this generation so far
        """
        with self._lock:
            self._append(record)
            return self._added

    def _append(self, record: FileRecord) -> None:
        self._records.append(record)
        self._extensions.add(record.extension)
        self._added += 1

    def clear(self) -> None:
        """Start a new, empty generation."""
        with self._lock:
            self._records = []
            self._extensions = set()
            self._added = 0
            self._complete = False
            self._generation += 1
        logger.debug(f"Catalog cleared (generation {self._generation})")

    def replace(self, records: Iterable[FileRecord], complete: bool = True) -> None:
        """
        Install a fully built record sequence as a new generation.

        The new list is built before the lock is taken, so readers see
        either the old generation or the new one.
        """
        new_records = list(records)
        new_extensions = {r.extension for r in new_records}
        with self._lock:
            self._records = new_records
            self._extensions = new_extensions
            self._added = len(new_records)
            self._complete = complete
            self._generation += 1

    def mark_complete(self) -> None:
        """Freeze the current generation as finished."""
        with self._lock:
            self._complete = True

    def snapshot(self) -> CatalogSnapshot:
        """Take an immutable view safe to hand to another thread."""
        with self._lock:
            return CatalogSnapshot(
                records=tuple(self._records),
                extensions=frozenset(self._extensions),
                generation=self._generation,
                complete=self._complete,
            )

    @property
    def extensions(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._extensions)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_complete(self) -> bool:
        return self._complete

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __iter__(self) -> Iterator[FileRecord]:
        return iter(self.snapshot().records)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Catalog):
            other = other.snapshot()
        if not isinstance(other, CatalogSnapshot):
            return NotImplemented
        mine = self.snapshot()
        return mine.records == other.records and mine.extensions == other.extensions

    __hash__ = None  # type: ignore[assignment]
