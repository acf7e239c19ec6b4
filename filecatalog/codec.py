"""
Codec - Binary persistence for catalogs (.idx files).

Layout (little-endian):
    magic b"FCAT", uint16 version, uint32 record count
    record block:
        per record: path, name, extension (uint32 length + UTF-8)
        numeric columns: int64 sizes, float64 mtimes, float64 ctimes
        (NaN marks an unknown timestamp)
    uint32 extension count + extension strings (sorted)
    int64 save time in microseconds since the Unix epoch (UTC)
    xxh64 digest of everything above

Numeric columns go through numpy so large catalogs encode in a single
buffer copy per column.
"""

import logging
import math
import os
import struct
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Tuple

import numpy as np
import xxhash

from .catalog import Catalog, CatalogSnapshot
from .errors import CorruptDataError
from .models import FileRecord


logger = logging.getLogger(__name__)


MAGIC = b"FCAT"
FORMAT_VERSION = 1
FILE_SUFFIX = ".idx"

_HEADER = struct.Struct("<4sHI")
_U32 = struct.Struct("<I")
_I64 = struct.Struct("<q")
_DIGEST_SIZE = 8

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MICROSECOND = timedelta(microseconds=1)


class _Reader:
    """Bounds-checked cursor over an encoded buffer."""

    def __init__(self, data: bytes):
        self._view = memoryview(data)
        self._pos = 0

    def take(self, size: int) -> memoryview:
        end = self._pos + size
        if size < 0 or end > len(self._view):
            raise CorruptDataError(
                f"Truncated catalog: needed {size} bytes at offset {self._pos}"
            )
        chunk = self._view[self._pos:end]
        self._pos = end
        return chunk

    def unpack(self, fmt: struct.Struct) -> tuple:
        return fmt.unpack(self.take(fmt.size))

    def string(self) -> str:
        (length,) = self.unpack(_U32)
        raw = self.take(length)
        try:
            return bytes(raw).decode("utf-8", "surrogateescape")
        except UnicodeDecodeError as e:
            raise CorruptDataError(f"Invalid string in catalog: {e}") from e

    def column(self, dtype: str, count: int) -> list:
        width = np.dtype(dtype).itemsize
        return np.frombuffer(self.take(width * count), dtype=dtype, count=count).tolist()

    @property
    def remaining(self) -> int:
        return len(self._view) - self._pos


def _pack_string(out: List[bytes], value: str) -> None:
    raw = value.encode("utf-8", "surrogateescape")
    out.append(_U32.pack(len(raw)))
    out.append(raw)


def _to_micros(timestamp: datetime) -> int:
    return (timestamp - _EPOCH) // _ONE_MICROSECOND


def _from_micros(micros: int) -> datetime:
    return _EPOCH + timedelta(microseconds=micros)


def _optional_time(value: float):
    return None if math.isnan(value) else value


class CatalogCodec:
    """
    Serializes a catalog plus its save time.

    Save times must be timezone-aware and come back as UTC datetimes equal
    to the value saved.
    """

    @staticmethod
    def save(catalog: Catalog | CatalogSnapshot, timestamp: datetime) -> bytes:
        """
        Encode a catalog.

        Raises:
            ValueError: timestamp is naive
        """
        if timestamp.tzinfo is None or timestamp.utcoffset() is None:
            raise ValueError(f"Save time must be timezone-aware, got {timestamp!r}")

        snapshot = catalog.snapshot() if isinstance(catalog, Catalog) else catalog
        records = snapshot.records
        count = len(records)

        out: List[bytes] = [_HEADER.pack(MAGIC, FORMAT_VERSION, count)]

        for record in records:
            _pack_string(out, str(record.path))
            _pack_string(out, record.name)
            _pack_string(out, record.extension)

        sizes = np.fromiter((r.size_bytes for r in records), dtype="<i8", count=count)
        mtimes = np.array(
            [math.nan if r.modified_at is None else r.modified_at for r in records],
            dtype="<f8",
        )
        ctimes = np.array(
            [math.nan if r.created_at is None else r.created_at for r in records],
            dtype="<f8",
        )
        out.extend((sizes.tobytes(), mtimes.tobytes(), ctimes.tobytes()))

        extensions = sorted(snapshot.extensions)
        out.append(_U32.pack(len(extensions)))
        for ext in extensions:
            _pack_string(out, ext)

        out.append(_I64.pack(_to_micros(timestamp)))

        body = b"".join(out)
        return body + xxhash.xxh64(body).digest()

    @staticmethod
    def load(data: bytes) -> Tuple[Catalog, datetime]:
        """
        Decode a catalog.

        Raises:
            CorruptDataError: truncated stream, bad magic, unsupported
                version, checksum mismatch or inconsistent contents
        """
        if len(data) < _HEADER.size + _DIGEST_SIZE:
            raise CorruptDataError(f"Truncated catalog: only {len(data)} bytes")

        magic, version, count = _HEADER.unpack_from(data)
        if magic != MAGIC:
            raise CorruptDataError(f"Not a catalog file (magic {magic!r})")
        if version != FORMAT_VERSION:
            raise CorruptDataError(
                f"Unsupported catalog version {version} (expected {FORMAT_VERSION})"
            )

        body, digest = data[:-_DIGEST_SIZE], data[-_DIGEST_SIZE:]
        if xxhash.xxh64(body).digest() != digest:
            raise CorruptDataError("Catalog checksum mismatch")

        reader = _Reader(body)
        reader.take(_HEADER.size)

        strings = [(reader.string(), reader.string(), reader.string()) for _ in range(count)]
        sizes = reader.column("<i8", count)
        mtimes = reader.column("<f8", count)
        ctimes = reader.column("<f8", count)

        records = []
        for (path, name, ext), size, mtime, ctime in zip(strings, sizes, mtimes, ctimes):
            if size < 0:
                raise CorruptDataError(f"Negative size for {path}")
            records.append(FileRecord(
                path=Path(path),
                name=name,
                size_bytes=size,
                modified_at=_optional_time(mtime),
                created_at=_optional_time(ctime),
                extension=ext,
            ))

        (ext_count,) = reader.unpack(_U32)
        extensions = {reader.string() for _ in range(ext_count)}
        if extensions != {r.extension for r in records}:
            raise CorruptDataError("Extension set does not match records")

        (micros,) = reader.unpack(_I64)
        if reader.remaining:
            raise CorruptDataError(f"{reader.remaining} unexpected trailing bytes")

        try:
            saved_at = _from_micros(micros)
        except OverflowError as e:
            raise CorruptDataError(f"Save time out of range: {micros}") from e

        catalog = Catalog()
        catalog.replace(records, complete=True)
        return catalog, saved_at


def save_catalog(
    path: Path,
    catalog: Catalog | CatalogSnapshot,
    timestamp: datetime | None = None,
) -> datetime:
    """
    Write a catalog to disk atomically.

    Returns:
        The save time recorded in the file
    """
    path = Path(path)
    timestamp = timestamp or datetime.now(timezone.utc)
    data = CatalogCodec.save(catalog, timestamp)

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_bytes(data)
    os.replace(tmp_path, path)

    logger.info(f"Saved catalog to {path} ({len(data)} bytes)")
    return timestamp


def load_catalog(path: Path) -> Tuple[Catalog, datetime]:
    """
    Read a catalog from disk.

    Raises:
        CorruptDataError: the file is not a valid catalog
        OSError: the file cannot be read
    """
    path = Path(path)
    catalog, saved_at = CatalogCodec.load(path.read_bytes())
    logger.info(f"Loaded {len(catalog)} records from {path} (saved {saved_at:%Y-%m-%d %H:%M:%S})")
    return catalog, saved_at
