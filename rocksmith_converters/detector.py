import io
import os
from pathlib import Path
from typing import IO, Literal, Tuple, Union

from . import audio, psarc, sng
from .errors import UnsupportedArchiveError


def check_extension(path: Union[os.PathLike, str], expected: str = ".psarc") -> Path:
    """Reject anything but ``expected`` before a byte of it is parsed."""
    path = Path(path)
    if path.suffix.lower() != expected.lower():
        raise UnsupportedArchiveError(path, expected)
    return path


def detect(data: Union[os.PathLike, IO[bytes], bytes, str]) -> Union[
    Tuple[Literal["psarc"], Literal["plain", "encrypted"]],
    Tuple[Literal["sng"], Literal["v1", "newer"]],
    Tuple[Literal["audio"], Literal["wem", "wem_be", "ogg"]],
    None,
]:
    """Determine the kind of payload from its magic bytes

    :returns: ``(format, specifier)`` if detected, else ``None``.
    :rtype: tuple[str, str] | None
    """
    if isinstance(data, (os.PathLike, str)):
        with open(data, "rb") as f:
            data = f.read()
    elif isinstance(data, io.IOBase):
        data = data.read()
    elif isinstance(data, memoryview):
        data = data.tobytes()

    format_spec = psarc.detect(data)
    if format_spec:
        return ("psarc", format_spec)
    format_spec = sng.detect(data)
    if format_spec:
        return ("sng", format_spec)
    format_spec = audio.detect(data)
    if format_spec:
        return ("audio", format_spec)
    return None
