"""
Indexer - Cancellable file system traversal feeding the catalog.

Walks each root depth-first using an explicit stack of directory listings,
checking the job's cancellation flag before every entry. One background
thread per job appends records to the Catalog and reports progress through
callbacks.
"""

import asyncio
import logging
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Set, Tuple

from .catalog import Catalog
from .config import get_config, CatalogConfig
from .errors import handle_error, IndexBusyError
from .models import FileRecord, IndexJob, IndexStats, normalize_extension


logger = logging.getLogger(__name__)


@dataclass
class IndexCallbacks:
    """
    Event sinks for an index job.

    All callbacks run on the indexer thread.
    """
    on_file_indexed: Optional[Callable[[FileRecord], None]] = None
    on_progress: Optional[Callable[[int, int], None]] = None
    on_finished: Optional[Callable[[IndexStats], None]] = None


class JobHandle:
    """Handle for a running (or finished) index job."""

    def __init__(self, job: IndexJob):
        self.job = job
        self.stats = IndexStats()
        self._done = threading.Event()

    def stop(self) -> None:
        """Request cancellation. Does not wait for the walk to stop."""
        self.job.cancel()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the job has finished. Returns False on timeout."""
        return self._done.wait(timeout)

    @property
    def done(self) -> bool:
        return self._done.is_set()


class Indexer:
    """
    File system indexer.

    Only one job may be active per instance; starting another while one
    runs raises IndexBusyError.
    """

    def __init__(
        self,
        catalog: Catalog | None = None,
        config: CatalogConfig | None = None,
        callbacks: IndexCallbacks | None = None,
    ):
        self.config = config or get_config()
        self.catalog = catalog if catalog is not None else Catalog()
        self.callbacks = callbacks or IndexCallbacks()
        self._lock = threading.Lock()
        self._active: Optional[JobHandle] = None

    def start(self, job: IndexJob) -> JobHandle:
        """
        Start indexing on a background thread.

        The catalog is cleared before this returns, so readers never see
        the previous generation mixed with the new one.
        """
        handle = self._begin(job)
        thread = threading.Thread(
            target=self._execute,
            args=(handle,),
            name="catalog-indexer",
            daemon=True,
        )
        thread.start()
        return handle

    def run(self, job: IndexJob) -> IndexStats:
        """Run a job to completion on the calling thread."""
        handle = self._begin(job)
        self._execute(handle)
        return handle.stats

    def stop(self) -> None:
        """Cancel the active job, if any. Idempotent and non-blocking."""
        with self._lock:
            active = self._active
        if active is not None:
            active.stop()

    def install(self, records: Iterable[FileRecord]) -> None:
        """
        Replace the catalog with a finished generation.

        An active job is cancelled and awaited first, so none of its appends
        land in the installed generation. Must not be called from an index
        callback, which runs on the job's own thread.
        """
        records = list(records)
        while True:
            active = self.active_job
            if active is not None and not active.done:
                logger.info("Cancelling active index job to install a catalog")
                active.stop()
                active.wait()
            with self._lock:
                if self._active is None or self._active.done:
                    self.catalog.replace(records, complete=True)
                    return

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._active is not None and not self._active.done

    @property
    def active_job(self) -> Optional[JobHandle]:
        with self._lock:
            return self._active

    def _begin(self, job: IndexJob) -> JobHandle:
        with self._lock:
            if self._active is not None and not self._active.done:
                raise IndexBusyError("An index job is already running")
            handle = JobHandle(job)
            self._active = handle
        self.catalog.clear()
        return handle

    def _execute(self, handle: JobHandle) -> None:
        job, stats = handle.job, handle.stats
        batch_size = max(self.config.progress_batch_size, 1)
        types_seen: Set[str] = set()
        start_time = time.monotonic()
        failed = False

        logger.info(
            f"Starting index of {len(job.roots)} roots "
            f"(filters: {', '.join(job.extension_filters) or 'none'})"
        )

        try:
            for record in self.walk(job, stats):
                self.catalog.add(record)
                types_seen.add(record.extension)
                stats.files_indexed += 1
                stats.types_seen = len(types_seen)

                self._emit(self.callbacks.on_file_indexed, record)
                if stats.files_indexed % batch_size == 0:
                    self._emit(
                        self.callbacks.on_progress,
                        stats.files_indexed,
                        stats.types_seen,
                    )
        except Exception:
            failed = True
            stats.errors += 1
            logger.exception("Index job failed unexpectedly")
        finally:
            stats.cancelled = job.cancelled
            stats.duration_seconds = time.monotonic() - start_time
            # A cancelled or failed walk leaves a partial generation
            if not (stats.cancelled or failed):
                self.catalog.mark_complete()
            logger.info(f"Index job finished: {stats}")
            try:
                self._emit(self.callbacks.on_finished, stats)
            finally:
                handle._done.set()

    def _emit(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Index callback error: {e}")

    def walk(self, job: IndexJob, stats: IndexStats | None = None) -> Iterator[FileRecord]:
        """
        Iterate over matching files under every root of a job.

        Stops as soon as the job is cancelled, at any depth.
        """
        stats = stats if stats is not None else IndexStats()
        visited: Set[Tuple[int, int]] = set()

        for root in job.roots:
            if job.cancelled:
                return
            if not root.is_dir():
                logger.warning(f"Root directory not found: {root}")
                continue
            yield from self._walk_root(root, job, stats, visited)

    def _walk_root(
        self,
        root: Path,
        job: IndexJob,
        stats: IndexStats,
        visited: Set[Tuple[int, int]],
    ) -> Iterator[FileRecord]:
        follow = self.config.follow_symlinks

        listing = self._list_directory(root, stats, visited)
        if listing is None:
            return
        stack: List[Iterator[os.DirEntry]] = [listing]

        while stack:
            if job.cancelled:
                return

            entry = next(stack[-1], None)
            if entry is None:
                stack.pop()
                continue

            path = Path(entry.path)
            try:
                if entry.is_dir(follow_symlinks=follow):
                    child = self._list_directory(path, stats, visited)
                    if child is not None:
                        stack.append(child)
                    continue

                # File links are always resolved; follow_symlinks only gates
                # directories. Sockets, FIFOs and dangling links are skipped.
                if not entry.is_file(follow_symlinks=True):
                    continue

                extension = normalize_extension(entry.name)
                if not job.accepts(extension):
                    stats.files_filtered += 1
                    continue

                record = FileRecord.from_stat(path, entry.stat(follow_symlinks=True))
            except OSError as e:
                stats.errors += 1
                handle_error(e, path, "stat")
                continue

            yield record

    def _list_directory(
        self,
        directory: Path,
        stats: IndexStats,
        visited: Set[Tuple[int, int]],
    ) -> Optional[Iterator[os.DirEntry]]:
        """
        List a directory in name order.

        Returns None when the directory cannot be read or, when following
        symlinks, has already been visited through another path.
        """
        try:
            if self.config.follow_symlinks:
                st = os.stat(directory)
                identity = (st.st_dev, st.st_ino)
                if identity in visited:
                    logger.debug(f"Skipping revisited directory: {directory}")
                    return None
                visited.add(identity)

            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            stats.errors += 1
            handle_error(e, directory, "list_directory")
            return None

        stats.directories_visited += 1
        return iter(entries)


async def index_directories(
    roots: Iterable[Path | str],
    extension_filters: Iterable[str] | None = None,
    catalog: Catalog | None = None,
    config: CatalogConfig | None = None,
    callbacks: IndexCallbacks | None = None,
) -> Tuple[Catalog, IndexStats]:
    """
    Convenience function to index directories without blocking the loop.

    Usage:
        catalog, stats = await index_directories([Path.home() / "Documents"], [".pdf"])
        print(stats)
    """
    indexer = Indexer(catalog, config, callbacks)
    job = IndexJob.create(roots, extension_filters)
    loop = asyncio.get_running_loop()
    stats = await loop.run_in_executor(None, indexer.run, job)
    return indexer.catalog, stats
