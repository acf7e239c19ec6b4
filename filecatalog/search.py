"""
Search - Name and content matching over a catalog snapshot.

Names are matched first. Content previews are read only for records whose
name did not match, in parallel batches on a thread pool; batches keep
catalog order so results never need re-sorting.
"""

import logging
import os
import re
import stat
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from .catalog import Catalog, CatalogSnapshot
from .config import get_config, CatalogConfig
from .errors import handle_error, InvalidPatternError
from .models import FileRecord, SearchQuery, SearchResult


logger = logging.getLogger(__name__)


Matcher = Callable[[str], bool]


def compile_matcher(query: SearchQuery) -> Matcher:
    """
    Build the predicate for a query.

    Raises:
        InvalidPatternError: the query is a malformed regular expression
    """
    if query.use_regex:
        flags = 0 if query.case_sensitive else re.IGNORECASE
        try:
            pattern = re.compile(query.text, flags)
        except re.error as e:
            raise InvalidPatternError(query.text, e) from e
        return lambda target: pattern.search(target) is not None

    if query.case_sensitive:
        needle = query.text
        return lambda target: needle in target

    needle = query.text.lower()
    return lambda target: needle in target.lower()


class SearchEngine:
    """
    Evaluates queries against catalog snapshots.

    Never mutates the snapshot or its records. A file that cannot be read
    contributes an empty content target instead of failing the search.
    """

    def __init__(self, config: CatalogConfig | None = None):
        self.config = config or get_config()
        self._executor: ThreadPoolExecutor | None = None
        self._executor_lock = threading.Lock()

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=max(self.config.search_workers, 1),
                    thread_name_prefix="content-reader"
                )
            return self._executor

    def search(
        self,
        catalog: Catalog | CatalogSnapshot,
        query: SearchQuery,
    ) -> SearchResult:
        """
        Run one query.

        Args:
            catalog: Snapshot to scan (a live Catalog is snapshotted first)
            query: What to look for

        Returns:
            Matching records in catalog order with elapsed time
        """
        start_time = time.monotonic()
        matches = compile_matcher(query)
        snapshot = catalog.snapshot() if isinstance(catalog, Catalog) else catalog

        name_hits = [matches(record.name) for record in snapshot.records]
        content_reads = 0

        if query.search_content:
            pending = [
                i for i, hit in enumerate(name_hits) if not hit
            ]
            content_reads = len(pending)
            batch_size = max(self.config.content_batch_size, 1)

            for i in range(0, len(pending), batch_size):
                batch = pending[i:i + batch_size]
                previews = self._read_previews([snapshot.records[j] for j in batch])
                for j, preview in zip(batch, previews):
                    if matches(preview):
                        name_hits[j] = True

        results = [
            record for record, hit in zip(snapshot.records, name_hits) if hit
        ]
        elapsed_millis = int((time.monotonic() - start_time) * 1000)

        logger.debug(
            f"Search {query.text!r}: {len(results)}/{len(snapshot)} matches, "
            f"{content_reads} files read in {elapsed_millis}ms"
        )

        return SearchResult(
            records=results,
            elapsed_millis=elapsed_millis,
            query=query,
            content_reads=content_reads,
        )

    def _read_previews(self, records: List[FileRecord]) -> List[str]:
        if len(records) == 1 or self.config.search_workers <= 1:
            return [self.read_preview(r) for r in records]
        return list(self._get_executor().map(self.read_preview, records))

    def read_preview(self, record: FileRecord) -> str:
        """
        First preview_chars characters of a file, decoded permissively.

        Returns "" for files that cannot be opened and for anything that is
        not a regular file. The open is non-blocking so a FIFO cannot stall
        the search.
        """
        try:
            fd = os.open(record.path, os.O_RDONLY | getattr(os, "O_NONBLOCK", 0))
            with open(fd, "r", encoding="utf-8", errors="replace") as f:
                if not stat.S_ISREG(os.fstat(fd).st_mode):
                    logger.debug(f"Not a regular file, skipping content: {record.path}")
                    return ""
                return f.read(self.config.preview_chars)
        except OSError as e:
            handle_error(e, record.path, "read_preview")
            return ""

    def close(self):
        """Shutdown the thread pool."""
        if self._executor:
            self._executor.shutdown(wait=False)
            self._executor = None


def search_catalog(
    catalog: Catalog | CatalogSnapshot,
    text: str,
    search_content: bool = False,
    use_regex: bool = False,
    case_sensitive: bool = False,
    config: Optional[CatalogConfig] = None,
) -> SearchResult:
    """
    Convenience function to run a single search.

    Usage:
        result = search_catalog(catalog, "report")
        for record in result.records:
            print(record.path)
    """
    engine = SearchEngine(config)
    try:
        return engine.search(
            catalog,
            SearchQuery(
                text=text,
                search_content=search_content,
                use_regex=use_regex,
                case_sensitive=case_sensitive,
            ),
        )
    finally:
        engine.close()
