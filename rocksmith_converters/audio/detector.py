from typing import Literal


def detect(data: bytes) -> Literal["wem", "wem_be", "ogg"] | None:
    """Wwise audio is a RIFF (or big-endian RIFX) WAVE container."""
    if len(data) >= 12 and data[8:12] == b"WAVE":
        match data[:4]:
            case b"RIFF":
                return "wem"
            case b"RIFX":
                return "wem_be"
    if data.startswith(b"OggS"):
        return "ogg"
    return None
