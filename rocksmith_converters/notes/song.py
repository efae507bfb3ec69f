import math
from dataclasses import dataclass, field
from enum import IntFlag
from typing import List

# Semitone offsets of standard tuning, low E first
STANDARD_TUNING = (0, 0, 0, 0, 0, 0)
STRING_COUNT = 6
# Fret value of a chord template string that is not played
UNUSED_FRET = 255


class Technique(IntFlag):
    NONE = 0
    FRET_HAND_MUTE = 0x08
    HARMONIC = 0x20
    PALM_MUTE = 0x40
    SLAP = 0x80
    HAMMER_ON = 0x200
    PULL_OFF = 0x400
    SLIDE = 0x800
    BEND = 0x1000
    TAP = 0x4000
    VIBRATO = 0x10000


@dataclass
class Beat:
    time: float
    measure: int
    is_measure_start: bool


@dataclass
class Section:
    name: str
    number: int
    start_time: float
    end_time: float


@dataclass
class Phrase:
    name: str
    max_difficulty: int
    solo: bool = False
    ignore: bool = False


@dataclass
class PhraseIteration:
    phrase_id: int
    time: float
    end_time: float


@dataclass
class ChordTemplate:
    name: str
    frets: List[int]
    fingers: List[int] = field(default_factory=lambda: [UNUSED_FRET] * STRING_COUNT)

    def played_strings(self) -> list[tuple[int, int]]:
        """(string, fret) pairs of the strings this chord sounds, low string first."""
        return [(s, f) for s, f in enumerate(self.frets) if f != UNUSED_FRET]


@dataclass
class Note:
    time: float
    string: int
    fret: int
    sustain: float = 0.0
    chord_id: int = -1
    techniques: Technique = Technique.NONE
    slide_to: int = -1
    max_bend: float = 0.0
    difficulty: int = 0

    @property
    def is_chord(self) -> bool:
        return self.chord_id >= 0


@dataclass
class SongMetadata:
    song_length: float = 0.0
    start_time: float = 0.0
    first_note_time: float = 0.0
    # As authored; often stale, the beat grid is authoritative for tempo
    average_tempo: float = 0.0


@dataclass
class Song:
    beats: List[Beat] = field(default_factory=list)
    sections: List[Section] = field(default_factory=list)
    phrases: List[Phrase] = field(default_factory=list)
    phrase_iterations: List[PhraseIteration] = field(default_factory=list)
    chord_templates: List[ChordTemplate] = field(default_factory=list)
    notes: List[Note] = field(default_factory=list)
    metadata: SongMetadata = field(default_factory=SongMetadata)
    tuning: List[int] = field(default_factory=lambda: list(STANDARD_TUNING))
    capo: int = 0

    def chord(self, note: Note) -> ChordTemplate | None:
        if 0 <= note.chord_id < len(self.chord_templates):
            return self.chord_templates[note.chord_id]
        return None


def validate_note_values(note: Note) -> tuple | None:
    if not 0 <= note.string < STRING_COUNT:
        return note, f"'string' must be in 0..{STRING_COUNT - 1}"
    if not 0 <= note.fret < UNUSED_FRET:
        return note, "'fret' is out of range"
    if not math.isfinite(note.sustain) or note.sustain < 0:
        return note, "'sustain' must be a finite, non-negative number"
    if not math.isfinite(note.max_bend):
        return note, "'max_bend' must be a finite number"
    return None


def validate_chord_template_values(template: ChordTemplate) -> tuple | None:
    if len(template.frets) != STRING_COUNT:
        return template, f"'frets' should have {STRING_COUNT} values"
    if len(template.fingers) != STRING_COUNT:
        return template, f"'fingers' should have {STRING_COUNT} values"
    if any(not 0 <= f <= UNUSED_FRET for f in template.frets):
        return template, "Some elements in 'frets' are out of range"
    return None
