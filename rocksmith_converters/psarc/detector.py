from typing import Literal

from .psarc_io import ArchiveFlag, HEADER_SIZE, MAGIC


def detect(data: bytes) -> Literal["plain", "encrypted"] | None:
    if len(data) < HEADER_SIZE or not data.startswith(MAGIC):
        return None
    flags = int.from_bytes(data[28:32], "big")
    if flags & ArchiveFlag.ENCRYPTED_TOC:
        return "encrypted"
    return "plain"
