"""
filecatalog - In-memory file catalog with progressive indexing and search.

Modules:
    - config: Centralized configuration
    - models: FileRecord, IndexJob, SearchQuery, SearchResult
    - catalog: Thread-safe record collection with snapshots
    - indexer: Cancellable background directory walker
    - codec: Binary .idx persistence (numpy columns + xxHash checksum)
    - search: Name/content matching, literal or regex
    - orchestrator: FileCatalog control surface

Usage:
    from filecatalog import FileCatalog

    catalog = FileCatalog()
    catalog.start_index(["~/Documents"], [".txt", ".md"]).wait()
    result = catalog.search("report")
"""

from .catalog import Catalog, CatalogSnapshot
from .codec import CatalogCodec, load_catalog, save_catalog
from .errors import CatalogError, CorruptDataError, IndexBusyError, InvalidPatternError
from .indexer import Indexer, IndexCallbacks, JobHandle
from .models import FileRecord, IndexJob, SearchQuery, SearchResult
from .orchestrator import FileCatalog
from .search import SearchEngine

__all__ = [
    "Catalog",
    "CatalogCodec",
    "CatalogError",
    "CatalogSnapshot",
    "CorruptDataError",
    "FileCatalog",
    "FileRecord",
    "IndexBusyError",
    "IndexCallbacks",
    "IndexJob",
    "Indexer",
    "InvalidPatternError",
    "JobHandle",
    "SearchEngine",
    "SearchQuery",
    "SearchResult",
    "load_catalog",
    "save_catalog",
]
