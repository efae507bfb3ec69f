from typing import Literal

from .sng_io import FILE_HEADER, MAGIC, VERSION


def detect(data: bytes) -> Literal["v1", "newer"] | None:
    if len(data) < FILE_HEADER.size or not data.startswith(MAGIC):
        return None
    _, version = FILE_HEADER.unpack_from(data)
    match version:
        case 1:
            return "v1"
        case v if v > VERSION:
            return "newer"
        case _:
            return None
