import struct
from enum import Enum, IntFlag

# ==== Binary IO ====
# Charts are little-endian throughout.
MAGIC = b"RSNG"
VERSION = 1
FILE_HEADER = struct.Struct("<4sI")
# tag, record count, record size
SECTION_HEADER = struct.Struct("<4sII")
NAME_SIZE = 32


def read_name(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", errors="replace")


def write_name(value: str) -> bytes:
    b = value.encode("utf-8")
    if b"\0" in b:
        raise ValueError("Name cannot contain null bytes")
    # struct's 32s pads with NUL; keep one for the terminator
    return b[: NAME_SIZE - 1]


# ==== Details about chart sections ====
class SectionKind(Enum):
    BEATS = b"BEAT"
    PHRASES = b"PHRS"
    PHRASE_ITERATIONS = b"PITR"
    CHORD_TEMPLATES = b"CHRD"
    SECTIONS = b"SECT"
    NOTES = b"NOTE"
    METADATA = b"META"


def section_kind(tag: bytes) -> SectionKind | None:
    try:
        return SectionKind(bytes(tag))
    except ValueError:
        return None


class BeatFlag(IntFlag):
    NONE = 0
    FIRST_IN_MEASURE = 1


# time, measure (-1 inside a measure), beat in measure, phrase iteration, mask
BEAT = struct.Struct("<fhhiI")
# solo, disparity, ignore, pad, max difficulty, iteration links, name
PHRASE = struct.Struct("<BBBxii32s")
# phrase id, time, end time, difficulty[3]
PHRASE_ITERATION = struct.Struct("<iff3i")
# mask, frets[6], fingers[6], midi notes[6], name
CHORD_TEMPLATE = struct.Struct("<I6B6B6i32s")
# name, number, start, end, start iteration, end iteration, string mask[36]
SECTION = struct.Struct("<32siffii36s")
# time, sustain, techniques, chord id, string, fret, slide to, difficulty, max bend, phrase iteration
NOTE = struct.Struct("<ffIiBBbBfi")
# song length, start time, first note time, average tempo, capo, pad[3], tuning[6]
METADATA = struct.Struct("<ffffB3x6h")

RECORD_LAYOUTS: dict[SectionKind, struct.Struct] = {
    SectionKind.BEATS: BEAT,
    SectionKind.PHRASES: PHRASE,
    SectionKind.PHRASE_ITERATIONS: PHRASE_ITERATION,
    SectionKind.CHORD_TEMPLATES: CHORD_TEMPLATE,
    SectionKind.SECTIONS: SECTION,
    SectionKind.NOTES: NOTE,
    SectionKind.METADATA: METADATA,
}
