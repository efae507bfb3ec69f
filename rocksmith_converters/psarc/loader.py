import json
import logging
import math
import os
import re
import struct
import zlib
from dataclasses import dataclass
from typing import IO, Dict, List, Union

from ..errors import CorruptArchiveError, DecompressionError
from ..notes.manifest import ArrangementManifest
from .psarc_io import (
    ArchiveFlag,
    COMPRESSION,
    ENTRY_SIZE,
    HEADER_SIZE,
    HEADER_STRUCT,
    Header,
    MAGIC,
    block_length_width,
    chart_key_for,
    envelope_decrypt,
    looks_like_zlib,
    read_uint,
    toc_decrypt,
)

logger = logging.getLogger(__name__)

MANIFEST_PREFIX = "manifests/"
MANIFEST_SUFFIX = ".json"


@dataclass(frozen=True)
class Entry:
    internal_path: str
    compressed_offset: int
    decompressed_size: int
    compressed: bool
    compressed_size: int
    first_block: int
    block_count: int


@dataclass(frozen=True)
class _TocRecord:
    first_block: int
    length: int
    offset: int


class Archive:
    """A parsed PSARC archive.

    Holds the raw buffer and the table of contents only. Entries are inflated on
    every ``read_entry`` call and nothing decoded is cached, so reads of disjoint
    entries can run from several threads.
    """

    def __init__(
        self,
        buffer: bytes,
        header: Header,
        entries: List[Entry],
        block_lengths: List[int],
    ):
        self._buffer: bytes | None = buffer
        self.header = header
        self.entries = entries
        self._block_lengths = block_lengths

    def __len__(self) -> int:
        return len(self.entries)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self._buffer = None

    @property
    def closed(self) -> bool:
        return self._buffer is None

    def list_entries(self) -> list[str]:
        return [entry.internal_path for entry in self.entries]

    def read_entry(self, index: int) -> bytes:
        entry = self.entries[index]
        if self._buffer is None:
            raise ValueError("I/O operation on closed archive")
        data = _inflate(self._buffer, entry, self._block_lengths, self.header.block_size)
        key = chart_key_for(entry.internal_path)
        if key is None:
            return data
        try:
            return envelope_decrypt(data, key)
        except (ValueError, zlib.error) as err:
            raise DecompressionError(entry.internal_path, str(err)) from err

    def find_entries(self, pattern: Union[str, re.Pattern]) -> list[int]:
        """Indices of entries whose path contains ``pattern`` (or matches a compiled regex)."""
        if isinstance(pattern, re.Pattern):
            return [
                i for i, e in enumerate(self.entries) if pattern.search(e.internal_path)
            ]
        return [i for i, e in enumerate(self.entries) if pattern in e.internal_path]

    def parse_manifests(self) -> Dict[str, ArrangementManifest]:
        """Arrangement manifests keyed by persistent id.

        A manifest that cannot be read or parsed is logged and skipped; the rest
        of the archive is still usable.
        """
        manifests: dict[str, ArrangementManifest] = {}
        for index, entry in enumerate(self.entries):
            path = entry.internal_path
            if not (
                path.startswith(MANIFEST_PREFIX) and path.endswith(MANIFEST_SUFFIX)
            ):
                continue
            try:
                body = self.read_entry(index).decode("utf-8")
                if not body.strip():
                    continue
                document = json.loads(body)
                items = document["Entries"]
                if not isinstance(items, dict):
                    raise TypeError("'Entries' should be a dictionary")
            except (
                DecompressionError,
                UnicodeDecodeError,
                json.JSONDecodeError,
                KeyError,
                TypeError,
            ) as err:
                logger.warning(f"Skipping manifest {path}: {err}")
                continue

            for persistent_id, item in items.items():
                try:
                    attributes = item["Attributes"]
                    manifest = ArrangementManifest.from_dict(attributes)
                except (KeyError, TypeError, ValueError, AttributeError) as err:
                    logger.warning(
                        f"Skipping arrangement {persistent_id} in {path}: {err!r}"
                    )
                    continue
                manifest.persistent_id = persistent_id
                manifest.src_json = path
                manifest.raw_metadata = dict(attributes)
                manifests[persistent_id] = manifest
        return manifests


def _inflate(
    buffer: bytes, entry: Entry, block_lengths: List[int], block_size: int
) -> bytes:
    view = memoryview(buffer)
    out = bytearray()
    position = entry.compressed_offset
    for i in range(entry.block_count):
        stored = block_lengths[entry.first_block + i]
        size = stored or block_size
        block = view[position : position + size]
        position += size
        # A zero stored length marks a full block kept uncompressed
        if stored and looks_like_zlib(block):
            try:
                out += zlib.decompress(block)
            except zlib.error as err:
                raise DecompressionError(
                    entry.internal_path, f"block {i}: {err}"
                ) from err
        else:
            out += block
    if len(out) != entry.decompressed_size:
        raise DecompressionError(
            entry.internal_path,
            f"expected {entry.decompressed_size} bytes, got {len(out)}",
        )
    return bytes(out)


def _read_header(buffer: bytes) -> Header:
    if len(buffer) < HEADER_SIZE:
        raise CorruptArchiveError(
            f"Truncated header: {len(buffer)} bytes, need {HEADER_SIZE}"
        )
    header = Header(*HEADER_STRUCT.unpack_from(buffer))
    header.flags = ArchiveFlag(header.flags)
    if header.magic != MAGIC:
        raise CorruptArchiveError(f"Not a PSARC file (magic: {header.magic!r})")
    if header.compression != COMPRESSION:
        raise CorruptArchiveError(
            f"Unsupported compression: {header.compression!r}"
        )
    if not HEADER_SIZE <= header.toc_length <= len(buffer):
        raise CorruptArchiveError(
            f"TOC length {header.toc_length} is outside the {len(buffer)} byte buffer"
        )
    if header.entry_size < ENTRY_SIZE:
        raise CorruptArchiveError(f"TOC entry size {header.entry_size} is too small")
    if header.entry_count < 1:
        raise CorruptArchiveError("TOC has no listing entry")
    if header.block_size <= 0:
        raise CorruptArchiveError(f"Invalid block size {header.block_size}")
    return header


def _read_toc(toc: bytes, header: Header) -> tuple[list[_TocRecord], list[int]]:
    records_end = header.entry_count * header.entry_size
    if records_end > len(toc):
        raise CorruptArchiveError(
            f"TOC declares {header.entry_count} entries but holds only {len(toc)} bytes"
        )
    records = []
    for i in range(header.entry_count):
        base = i * header.entry_size
        # md5 of the path occupies the first 16 bytes
        records.append(
            _TocRecord(
                first_block=read_uint(toc, base + 16, 4),
                length=read_uint(toc, base + 20, 5),
                offset=read_uint(toc, base + 25, 5),
            )
        )

    width = block_length_width(header.block_size)
    block_lengths = [
        read_uint(toc, pos, width)
        for pos in range(records_end, len(toc) - width + 1, width)
    ]
    return records, block_lengths


def _resolve_entry(
    name: str,
    record: _TocRecord,
    block_lengths: List[int],
    header: Header,
    buffer: bytes,
) -> Entry:
    block_count = math.ceil(record.length / header.block_size)
    if record.first_block + block_count > len(block_lengths):
        raise CorruptArchiveError(
            f"Entry {name!r} references blocks past the end of the block table"
        )
    stored = block_lengths[record.first_block : record.first_block + block_count]
    compressed_size = sum(length or header.block_size for length in stored)
    if record.offset + compressed_size > len(buffer):
        raise CorruptArchiveError(
            f"Entry {name!r} spans bytes {record.offset}..{record.offset + compressed_size}"
            f" beyond the {len(buffer)} byte buffer"
        )
    compressed = bool(stored) and bool(stored[0]) and looks_like_zlib(
        buffer[record.offset : record.offset + 2]
    )
    return Entry(
        internal_path=name,
        compressed_offset=record.offset,
        decompressed_size=record.length,
        compressed=compressed,
        compressed_size=compressed_size,
        first_block=record.first_block,
        block_count=block_count,
    )


def loads(data: bytes) -> Archive:
    buffer = bytes(data)
    header = _read_header(buffer)
    toc = buffer[HEADER_SIZE : header.toc_length]
    if header.flags & ArchiveFlag.ENCRYPTED_TOC:
        toc = toc_decrypt(toc)
    try:
        records, block_lengths = _read_toc(toc, header)
    except struct.error as err:
        raise CorruptArchiveError(f"Truncated TOC: {err}") from err

    listing_entry = _resolve_entry("listing", records[0], block_lengths, header, buffer)
    try:
        listing = _inflate(buffer, listing_entry, block_lengths, header.block_size)
        names = [
            line.rstrip("\r") for line in listing.decode("utf-8").split("\n") if line
        ]
    except (DecompressionError, UnicodeDecodeError) as err:
        raise CorruptArchiveError(f"Unreadable listing: {err}") from err
    if len(names) != len(records) - 1:
        raise CorruptArchiveError(
            f"Listing names {len(names)} entries, TOC holds {len(records) - 1}"
        )

    entries = [
        _resolve_entry(name, record, block_lengths, header, buffer)
        for name, record in zip(names, records[1:])
    ]
    return Archive(buffer, header, entries, block_lengths)


def load(f: Union[os.PathLike, str, IO[bytes]]) -> Archive:
    if isinstance(f, (os.PathLike, str)):
        with open(f, "rb") as fp:
            return loads(fp.read())
    return loads(f.read())
