import hashlib
import io
import zlib
from pathlib import Path
from typing import Iterable, Mapping, Tuple, Union

from .psarc_io import (
    ArchiveFlag,
    COMPRESSION,
    DEFAULT_BLOCK_SIZE,
    ENTRY_SIZE,
    HEADER_SIZE,
    Header,
    MAGIC,
    VERSION,
    block_length_width,
    chart_key_for,
    envelope_encrypt,
    toc_encrypt,
    write_uint,
)


def _split_blocks(
    data: bytes, block_size: int, compress: bool
) -> list[tuple[bytes, int]]:
    """(stored bytes, stored length) per block; a full raw block is stored with length 0."""
    blocks = []
    for start in range(0, len(data), block_size):
        block = data[start : start + block_size]
        packed = zlib.compress(block) if compress else block
        if compress and len(packed) < len(block):
            blocks.append((packed, len(packed)))
        else:
            blocks.append((block, 0 if len(block) == block_size else len(block)))
    return blocks


def dumps(
    files: Union[Mapping[str, bytes], Iterable[Tuple[str, bytes]]],
    *,
    encrypt_toc: bool = True,
    compress: bool = True,
    block_size: int = DEFAULT_BLOCK_SIZE,
) -> bytes:
    """Pack ``files`` into a PSARC archive.

    Entries under ``songs/bin/generic`` or ``songs/bin/macos`` are wrapped in the
    encrypted chart envelope, as the game expects.
    """
    items = list(files.items()) if isinstance(files, Mapping) else list(files)
    names = [name for name, _ in items]

    payloads = [("\n".join(names)).encode("utf-8")]
    for name, data in items:
        key = chart_key_for(name)
        if key is not None:
            iv = hashlib.md5(name.encode("utf-8")).digest()
            data = envelope_encrypt(data, key, iv)
        payloads.append(data)

    width = block_length_width(block_size)
    entry_blocks = [_split_blocks(p, block_size, compress) for p in payloads]
    block_count = sum(len(blocks) for blocks in entry_blocks)
    toc_length = HEADER_SIZE + len(payloads) * ENTRY_SIZE + block_count * width

    toc = io.BytesIO()
    lengths = io.BytesIO()
    data = io.BytesIO()
    first_block = 0
    for i, (payload, blocks) in enumerate(zip(payloads, entry_blocks)):
        md5 = b"\0" * 16 if i == 0 else hashlib.md5(names[i - 1].encode()).digest()
        toc.write(md5)
        toc.write(write_uint(first_block, 4))
        toc.write(write_uint(len(payload), 5))
        toc.write(write_uint(toc_length + data.tell(), 5))
        for stored, length in blocks:
            lengths.write(write_uint(length, width))
            data.write(stored)
        first_block += len(blocks)

    flags = ArchiveFlag.ENCRYPTED_TOC if encrypt_toc else ArchiveFlag.NONE
    header = Header(
        magic=MAGIC,
        version=VERSION,
        compression=COMPRESSION,
        toc_length=toc_length,
        entry_size=ENTRY_SIZE,
        entry_count=len(payloads),
        block_size=block_size,
        flags=flags,
    )
    toc_bytes = toc.getvalue() + lengths.getvalue()
    if encrypt_toc:
        toc_bytes = toc_encrypt(toc_bytes)
    return header.pack() + toc_bytes + data.getvalue()


def export(
    path: Union[str, Path, io.BytesIO],
    files: Union[Mapping[str, bytes], Iterable[Tuple[str, bytes]]],
    **kwargs,
):
    archive = dumps(files, **kwargs)
    if isinstance(path, (str, Path)):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(archive)
    elif isinstance(path, io.BytesIO):
        path.write(archive)
        path.seek(0)
    else:
        raise TypeError(f"Unsupported path type: {type(path)}")
