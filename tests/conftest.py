"""
Test Configuration - Shared fixtures for catalog tests.

Uses pytest fixtures to create isolated test environments.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest

from filecatalog.config import CatalogConfig, set_config
from filecatalog.models import FileRecord, normalize_extension


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    tmp = tempfile.mkdtemp(prefix="catalog_test_")
    # Resolve to handle macOS /var -> /private/var symlink
    resolved = Path(tmp).resolve()
    yield resolved
    shutil.rmtree(str(resolved), ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> Generator[CatalogConfig, None, None]:
    """Create an isolated test configuration."""
    config = CatalogConfig(
        roots=[temp_dir],
        index_path=temp_dir / "state" / "test.idx",
        progress_batch_size=100,
        search_workers=4,
        content_batch_size=8,
    )
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def sample_tree(temp_dir: Path) -> dict[str, Path]:
    """
    Create a small directory tree.

    Layout (walk order):
        .hidden
        Report.txt
        annual_report.pdf
        docs/deep/2024-01-01-notes.txt
        docs/deep/notes-2024.txt
        docs/notes.md
        noext
        x.log
    """
    root = temp_dir / "tree"
    deep = root / "docs" / "deep"
    deep.mkdir(parents=True)

    files = {
        "hidden": root / ".hidden",
        "report": root / "Report.txt",
        "annual": root / "annual_report.pdf",
        "dated": deep / "2024-01-01-notes.txt",
        "undated": deep / "notes-2024.txt",
        "notes": root / "docs" / "notes.md",
        "noext": root / "noext",
        "log": root / "x.log",
    }

    files["hidden"].write_text("dotfile")
    files["report"].write_text("Quarterly numbers for the board.")
    files["annual"].write_bytes(b"%PDF-1.4\n\xff\xfe\x00binary")
    files["dated"].write_text("Standup notes.")
    files["undated"].write_text("Retro notes.")
    files["notes"].write_text("# Notes\n\nMeeting about the budget.")
    files["noext"].write_text("plain file without extension")
    files["log"].write_text("nothing interesting here")

    files["root"] = root
    return files


@pytest.fixture
def make_record() -> Callable[..., FileRecord]:
    """Factory for FileRecords that need not exist on disk."""
    def _make(path: str | Path, size: int = 0, modified=1700000000.0, created=None) -> FileRecord:
        path = Path(path)
        return FileRecord(
            path=path,
            name=path.name,
            size_bytes=size,
            modified_at=modified,
            created_at=created,
            extension=normalize_extension(path.name),
        )
    return _make
