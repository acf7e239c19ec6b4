"""
Orchestrator - Main entry point for the file catalog.

Ties the pieces together for a UI collaborator:
- Index control: start/stop a background walk, receive events
- Search: query the current catalog snapshot, synchronously or on a pool
- Persistence: save/load the catalog as a .idx file
"""

import asyncio
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from .catalog import Catalog, CatalogSnapshot
from .codec import save_catalog, load_catalog
from .config import get_config, CatalogConfig, set_config
from .indexer import Indexer, IndexCallbacks, JobHandle
from .models import IndexJob, SearchQuery, SearchResult
from .search import SearchEngine


logger = logging.getLogger(__name__)


class FileCatalog:
    """
    Control surface for indexing, searching and persistence.

    Searches run against snapshots, so they can proceed while an index
    job keeps appending to the catalog.
    """

    def __init__(
        self,
        config: Optional[CatalogConfig] = None,
        callbacks: Optional[IndexCallbacks] = None,
    ):
        self.config = config or get_config()
        if config:
            set_config(config)

        self.catalog = Catalog()
        self._indexer = Indexer(self.catalog, self.config, callbacks)
        self._engine = SearchEngine(self.config)
        self._search_executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        self.last_saved_at: Optional[datetime] = None

    # --- Index control ---

    def start_index(
        self,
        roots: Optional[Iterable[Path | str]] = None,
        extension_filters: Optional[Iterable[str]] = None,
    ) -> JobHandle:
        """
        Start indexing in the background.

        Args:
            roots: Directories to walk (default: config.roots)
            extension_filters: Extensions to keep (default: config.extension_filters)

        Raises:
            IndexBusyError: a job is already running
        """
        roots = list(roots) if roots is not None else self.config.roots
        if extension_filters is None:
            extension_filters = self.config.extension_filters
        job = IndexJob.create(roots, extension_filters)
        return self._indexer.start(job)

    def stop_index(self, handle: Optional[JobHandle] = None) -> None:
        """Request cancellation of a job (default: the active one)."""
        if handle is not None:
            handle.stop()
        else:
            self._indexer.stop()

    def wait_for_index(self, timeout: Optional[float] = None) -> bool:
        """Block until the active job finishes. True if nothing is running."""
        active = self._indexer.active_job
        if active is None:
            return True
        return active.wait(timeout)

    @property
    def is_indexing(self) -> bool:
        return self._indexer.is_running

    # --- Search ---

    def _get_search_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._search_executor is None:
                self._search_executor = ThreadPoolExecutor(
                    max_workers=2,
                    thread_name_prefix="catalog-search"
                )
            return self._search_executor

    def search(
        self,
        text: str,
        search_content: bool = False,
        use_regex: bool = False,
        case_sensitive: bool = False,
    ) -> SearchResult:
        """
        Search the current catalog snapshot.

        Raises:
            InvalidPatternError: use_regex is set and text does not compile
        """
        query = SearchQuery(
            text=text,
            search_content=search_content,
            use_regex=use_regex,
            case_sensitive=case_sensitive,
        )
        return self._engine.search(self.catalog.snapshot(), query)

    def submit_search(
        self,
        text: str,
        search_content: bool = False,
        use_regex: bool = False,
        case_sensitive: bool = False,
    ) -> "Future[SearchResult]":
        """Run a search on the shared pool. Errors surface from Future.result()."""
        return self._get_search_executor().submit(
            self.search, text, search_content, use_regex, case_sensitive
        )

    async def search_async(
        self,
        text: str,
        search_content: bool = False,
        use_regex: bool = False,
        case_sensitive: bool = False,
    ) -> SearchResult:
        """Awaitable search that keeps the event loop free during the scan."""
        return await asyncio.wrap_future(
            self.submit_search(text, search_content, use_regex, case_sensitive)
        )

    # --- Persistence ---

    def save(self, path: Optional[Path] = None) -> Path:
        """Persist the current snapshot. Returns the file written."""
        path = Path(path) if path is not None else self.config.index_path
        self.last_saved_at = save_catalog(path, self.catalog.snapshot())
        return path

    def load(self, path: Optional[Path] = None) -> datetime:
        """
        Replace the catalog with a saved one.

        The file is fully decoded before anything is installed, so a
        CorruptDataError leaves the current catalog untouched. A running
        index job is cancelled and awaited before the loaded catalog is
        installed.

        Raises:
            CorruptDataError: the file is not a valid catalog
        """
        path = Path(path) if path is not None else self.config.index_path
        loaded, saved_at = load_catalog(path)
        self._indexer.install(loaded.snapshot().records)
        self.last_saved_at = saved_at
        return saved_at

    # --- Introspection ---

    def snapshot(self) -> CatalogSnapshot:
        return self.catalog.snapshot()

    def extensions(self) -> List[str]:
        """Distinct extensions in the catalog, sorted."""
        return sorted(self.catalog.extensions)

    def close(self):
        """Clean up resources."""
        self._indexer.stop()
        self._engine.close()
        with self._executor_lock:
            if self._search_executor:
                self._search_executor.shutdown(wait=False)
                self._search_executor = None

    def __enter__(self) -> "FileCatalog":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
