"""
Codec Tests - Verify .idx round trips and corruption detection.

Tests:
- Exact round trip for empty, single and large catalogs
- Unknown timestamps survive
- Truncated, mislabelled and tampered streams are rejected
"""

import struct
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from filecatalog.catalog import Catalog, CatalogSnapshot
from filecatalog.codec import (
    CatalogCodec, FORMAT_VERSION, MAGIC, load_catalog, save_catalog,
)
from filecatalog.errors import CorruptDataError


SAVED_AT = datetime(2024, 5, 17, 8, 30, 15, 123456, tzinfo=timezone.utc)


class TestRoundTrip:
    """Tests for save/load symmetry."""

    @pytest.mark.parametrize("count", [0, 1, 1500])
    def test_round_trip(self, make_record, count):
        """load(save(c, t)) reproduces c and t exactly."""
        records = [
            make_record(
                f"/data/dir_{i % 13}/file_{i}.e{i % 5}",
                size=i * 1024,
                modified=1700000000.0 + i / 7 if i % 4 else None,
                created=1600000000.25 + i if i % 3 else None,
            )
            for i in range(count)
        ]
        catalog = Catalog(records)

        loaded, saved_at = CatalogCodec.load(CatalogCodec.save(catalog, SAVED_AT))

        assert loaded == catalog
        assert saved_at == SAVED_AT
        assert list(loaded) == records

    def test_preserves_order_and_unknown_times(self, make_record):
        """Record order and None timestamps are kept."""
        records = [
            make_record("/z/last.txt", modified=None, created=None),
            make_record("/a/first.md", size=7, modified=0.0, created=-1.5),
        ]
        loaded, _ = CatalogCodec.load(CatalogCodec.save(Catalog(records), SAVED_AT))

        first, second = list(loaded)
        assert first.path == Path("/z/last.txt")
        assert first.modified_at is None
        assert first.created_at is None
        assert second.modified_at == 0.0
        assert second.created_at == -1.5

    def test_non_ascii_names(self, make_record):
        """Unicode names round trip."""
        records = [make_record("/docs/résumé.PDF"), make_record("/docs/报告.txt")]
        loaded, _ = CatalogCodec.load(CatalogCodec.save(Catalog(records), SAVED_AT))
        assert [r.name for r in loaded] == ["résumé.PDF", "报告.txt"]

    def test_loaded_catalog_is_complete(self, make_record):
        """Loaded catalogs are a finished generation with matching extensions."""
        catalog = Catalog([make_record("/a/1.txt"), make_record("/a/2")])
        loaded, _ = CatalogCodec.load(CatalogCodec.save(catalog.snapshot(), SAVED_AT))

        assert loaded.is_complete
        assert loaded.extensions == {"txt", ""}

    def test_round_trip_equals_saved_timestamp(self, make_record):
        """The loaded save time equals the one passed in, whatever its zone."""
        catalog = Catalog([make_record("/a/1.txt")])
        saved = datetime(2024, 1, 2, 3, 4, 5, 678901, tzinfo=timezone(timedelta(hours=-5)))

        loaded, saved_at = CatalogCodec.load(CatalogCodec.save(catalog, saved))

        assert (loaded, saved_at) == (catalog, saved)
        assert saved_at.tzinfo is timezone.utc

    def test_naive_timestamp_rejected(self):
        """Naive save times cannot round trip, so save refuses them."""
        with pytest.raises(ValueError):
            CatalogCodec.save(Catalog(), datetime(2024, 1, 2, 3, 4, 5, 678901))


class TestCorruption:
    """Tests for load validation."""

    @pytest.fixture
    def encoded(self, make_record) -> bytes:
        records = [make_record(f"/data/file_{i}.txt", size=i) for i in range(20)]
        return CatalogCodec.save(Catalog(records), SAVED_AT)

    @pytest.mark.parametrize("cut", [0, 5, 10, 100, -1, -9])
    def test_truncated(self, encoded, cut):
        """Truncated streams raise CorruptDataError."""
        with pytest.raises(CorruptDataError):
            CatalogCodec.load(encoded[:cut])

    def test_bad_magic(self, encoded):
        """Streams without the magic marker are rejected."""
        with pytest.raises(CorruptDataError, match="magic"):
            CatalogCodec.load(b"NOPE" + encoded[4:])

    def test_version_mismatch(self, encoded):
        """Streams from another format version are rejected."""
        tampered = MAGIC + struct.pack("<H", FORMAT_VERSION + 1) + encoded[6:]
        with pytest.raises(CorruptDataError, match="version"):
            CatalogCodec.load(tampered)

    def test_flipped_byte(self, encoded):
        """A single flipped byte fails the checksum."""
        data = bytearray(encoded)
        data[len(data) // 2] ^= 0xFF
        with pytest.raises(CorruptDataError, match="checksum"):
            CatalogCodec.load(bytes(data))

    def test_extension_set_mismatch(self, make_record):
        """An extension set that disagrees with the records is rejected."""
        snapshot = CatalogSnapshot(
            records=(make_record("/a/1.txt"),),
            extensions=frozenset({"txt", "md"}),
        )
        with pytest.raises(CorruptDataError, match="Extension set"):
            CatalogCodec.load(CatalogCodec.save(snapshot, SAVED_AT))

    def test_garbage(self):
        """Random bytes are not a catalog."""
        with pytest.raises(CorruptDataError):
            CatalogCodec.load(bytes(range(256)) * 4)


class TestFiles:
    """Tests for the file helpers."""

    def test_save_and_load_file(self, temp_dir, make_record):
        """Catalogs persist to .idx files atomically."""
        path = temp_dir / "nested" / "catalog.idx"
        catalog = Catalog([make_record("/a/1.txt"), make_record("/b/2.md")])

        saved_at = save_catalog(path, catalog, SAVED_AT)
        loaded, loaded_at = load_catalog(path)

        assert saved_at == SAVED_AT
        assert loaded_at == SAVED_AT
        assert loaded == catalog
        assert [p.name for p in path.parent.iterdir()] == ["catalog.idx"]

    def test_default_timestamp_is_now(self, temp_dir):
        """Without a timestamp the current UTC time is recorded."""
        before = datetime.now(timezone.utc)
        save_catalog(temp_dir / "c.idx", Catalog())
        _, saved_at = load_catalog(temp_dir / "c.idx")

        assert before <= saved_at <= datetime.now(timezone.utc)

    def test_missing_file_is_an_os_error(self, temp_dir):
        """A missing file is an I/O problem, not corruption."""
        with pytest.raises(FileNotFoundError):
            load_catalog(temp_dir / "missing.idx")
