"""
Catalog Configuration - Centralized settings for indexing and search.

Uses environment variables with sensible defaults. All paths are resolved
to absolute paths for reliability.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List


@dataclass
class CatalogConfig:
    """
    Configuration for the file catalog.

    The persisted index defaults to ~/.filecatalog/catalog.idx.
    Search concurrency is tuned for typical desktop hardware.
    """

    # --- Paths ---
    roots: List[Path] = field(default_factory=lambda: [Path.home()])
    index_path: Path = field(
        default_factory=lambda: Path.home() / ".filecatalog" / "catalog.idx"
    )

    # --- Indexing ---
    extension_filters: List[str] = field(default_factory=list)
    progress_batch_size: int = 100  # Progress event after this many records
    follow_symlinks: bool = False   # Descend into linked directories (with revisit guard)

    # --- Search ---
    preview_chars: int = 1000       # Characters read per file for content matching
    search_workers: int = 8         # Parallel content reads
    content_batch_size: int = 256   # Records handed to the pool at a time

    def __post_init__(self):
        """Ensure all paths are absolute."""
        self.index_path = Path(self.index_path).expanduser().resolve()
        self.roots = [Path(p).expanduser().resolve() for p in self.roots]

    @classmethod
    def from_env(cls) -> "CatalogConfig":
        """
        Create config from environment variables.

        Supported env vars:
            FILECATALOG_ROOTS: Comma-separated list of paths
            FILECATALOG_EXTENSIONS: Comma-separated extension filters
            FILECATALOG_INDEX_PATH: Path to the persisted .idx file
            FILECATALOG_PREVIEW_CHARS: Characters read for content search
            FILECATALOG_SEARCH_WORKERS: Parallel content reads
            FILECATALOG_FOLLOW_SYMLINKS: "1"/"true" to follow linked directories
        """
        config = cls()

        if roots := os.environ.get("FILECATALOG_ROOTS"):
            config.roots = [Path(p.strip()) for p in roots.split(",") if p.strip()]

        if extensions := os.environ.get("FILECATALOG_EXTENSIONS"):
            config.extension_filters = [e.strip() for e in extensions.split(",") if e.strip()]

        if index_path := os.environ.get("FILECATALOG_INDEX_PATH"):
            config.index_path = Path(index_path)

        if preview := os.environ.get("FILECATALOG_PREVIEW_CHARS"):
            config.preview_chars = int(preview)

        if workers := os.environ.get("FILECATALOG_SEARCH_WORKERS"):
            config.search_workers = int(workers)

        if follow := os.environ.get("FILECATALOG_FOLLOW_SYMLINKS"):
            config.follow_symlinks = follow.strip().lower() in {"1", "true", "yes", "on"}

        config.__post_init__()
        return config


# Singleton default config
_default_config: CatalogConfig | None = None


def get_config() -> CatalogConfig:
    """Get the default configuration (singleton)."""
    global _default_config
    if _default_config is None:
        _default_config = CatalogConfig.from_env()
    return _default_config


def set_config(config: CatalogConfig | None) -> None:
    """Override the default configuration (for testing)."""
    global _default_config
    _default_config = config
