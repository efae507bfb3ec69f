import io
import logging
import math
from bisect import bisect_right
from collections import defaultdict
from pathlib import Path
from typing import Sequence, Union

from ..notes.song import Note, Song, Technique
from ..notes.tempo import Tempo, analyze
from ..notes.timing import NotationDocument

logger = logging.getLogger(__name__)

# Positions are quantized to thirty-second notes; a beat is a quarter note
SLOTS_PER_BEAT = 8

# (slots, alphaTex duration, dotted), largest first
DURATIONS = (
    (48, 1, True),
    (32, 1, False),
    (24, 2, True),
    (16, 2, False),
    (12, 4, True),
    (8, 4, False),
    (6, 8, True),
    (4, 8, False),
    (3, 16, True),
    (2, 16, False),
    (1, 32, False),
)

# Open strings, low E first
STANDARD_TUNING_MIDI = (40, 45, 50, 55, 59, 64)
NOTE_NAMES = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")
DEFAULT_INSTRUMENT = 25


def midi_to_note_name(midi: int) -> str:
    return f"{NOTE_NAMES[midi % 12]}{midi // 12 - 1}"


def tuning_string(offsets: Sequence[int]) -> str:
    """alphaTex tuning, high string first."""
    names = [
        midi_to_note_name(open_string + offset)
        for open_string, offset in zip(STANDARD_TUNING_MIDI, offsets)
    ]
    return " ".join(reversed(names))


def split_span(slots: int) -> list[tuple[int, bool]]:
    """Decompose a span of thirty-seconds into (duration, dotted) values, longest first."""
    parts = []
    while slots > 0:
        for size, duration, dotted in DURATIONS:
            if size <= slots:
                parts.append((duration, dotted))
                slots -= size
                break
    return parts


def beat_position(times: Sequence[float], t: float) -> float:
    """Fractional beat index of ``t`` on the beat grid, extrapolated past either end."""
    if len(times) < 2:
        return 0.0
    i = bisect_right(times, t) - 1
    i = min(max(i, 0), len(times) - 2)
    return i + (t - times[i]) / (times[i + 1] - times[i])


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _string_number(string: int) -> int:
    # Chart string 0 is low E, alphaTex string 1 is high E
    return 6 - string


def note_effects(note: Note) -> str:
    effects = []
    techniques = note.techniques
    if techniques & Technique.HAMMER_ON:
        effects.append("h")
    if techniques & Technique.PULL_OFF:
        effects.append("p")
    if techniques & Technique.PALM_MUTE:
        effects.append("pm")
    if techniques & Technique.FRET_HAND_MUTE:
        effects.append("x")
    if techniques & Technique.HARMONIC:
        effects.append("nh")
    if techniques & Technique.SLIDE or note.slide_to >= 0:
        effects.append("sl")
    if techniques & Technique.TAP:
        effects.append("t")
    if note.max_bend > 0:
        # max_bend is in semitones (1 is a half-step bend), alphaTex bends are in quarter tones
        quarters = round(note.max_bend * 2)
        effects.append(f"b (0 {quarters} {quarters} 0)")
    if not effects:
        return ""
    return "{" + " ".join(effects) + "}"


def _beat_effects(dotted: bool, notes: Sequence[Note]) -> str:
    effects = []
    if dotted:
        effects.append("d")
    if any(n.techniques & Technique.VIBRATO for n in notes):
        effects.append("v")
    if any(n.techniques & Technique.SLAP for n in notes):
        effects.append("ds")
    if not effects:
        return ""
    return "{" + " ".join(effects) + "}"


def _event_notes(song: Song, notes: Sequence[Note]) -> dict[int, str]:
    """alphaTex string number -> ``fret.string{effects}`` for one beat."""
    sounding: dict[int, str] = {}
    for note in notes:
        effects = note_effects(note)
        chord = song.chord(note) if note.is_chord else None
        if chord is not None and chord.played_strings():
            for string, fret in chord.played_strings():
                number = _string_number(string)
                sounding.setdefault(number, f"{fret}.{number}{effects}")
        else:
            number = _string_number(note.string)
            sounding.setdefault(number, f"{note.fret}.{number}{effects}")
    return dict(sorted(sounding.items()))


def _group(tokens: Sequence[str]) -> str:
    if len(tokens) == 1:
        return tokens[0]
    return "(" + " ".join(tokens) + ")"


def _duration(duration: int, dotted: bool, effects: str = "") -> str:
    if dotted and not effects:
        effects = "{d}"
    return f".{duration}{effects}"


def _rests(slots: int) -> list[str]:
    return [f"r{_duration(d, dotted)}" for d, dotted in split_span(slots)]


def _event_tokens(song: Song, notes: Sequence[Note], span: int) -> list[str]:
    sounding = _event_notes(song, notes)
    if not sounding:
        return _rests(span)
    parts = split_span(span)
    first_duration, first_dotted = parts[0]
    tokens = [
        _group(list(sounding.values()))
        + _duration(first_duration, first_dotted, _beat_effects(first_dotted, notes))
    ]
    # The remainder of a span that no single duration covers is tied on
    tie = _group([f"-.{number}" for number in sounding])
    for duration, dotted in parts[1:]:
        tokens.append(tie + _duration(duration, dotted))
    return tokens


def _quantize(song: Song, tempo: Tempo, total_slots: int) -> dict[int, list[Note]]:
    times = [beat.time for beat in tempo.grid]
    events: dict[int, list[Note]] = defaultdict(list)
    dropped = 0
    for note in song.notes:
        slot = round(beat_position(times, note.time) * SLOTS_PER_BEAT)
        if 0 <= slot < total_slots:
            events[slot].append(note)
        else:
            dropped += 1
    if dropped:
        logger.debug(f"{dropped} note(s) fall outside the beat grid")
    return events


def generate(
    song: Song,
    arrangement_name: str,
    song_title: str,
    artist_name: str,
    sort_order: int = 0,
    *,
    max_measures: int = 0,
    instrument: int = DEFAULT_INSTRUMENT,
    tempo: Tempo | None = None,
) -> NotationDocument:
    """Render one arrangement as alphaTex.

    The same ``Song`` always produces the same text.
    """
    tempo = tempo or analyze(song)
    bar_slots = tempo.beats_per_bar * SLOTS_PER_BEAT

    lines = [
        f"\\title {_quote(song_title)}",
        f"\\subtitle {_quote(arrangement_name)}",
        f"\\artist {_quote(artist_name)}",
        f"\\tempo {tempo.bpm}",
        f"\\ts {tempo.beats_per_bar} 4",
        f"\\tuning {tuning_string(song.tuning)}",
    ]
    if song.capo:
        lines.append(f"\\capo {song.capo}")
    lines += [f"\\instrument {instrument}", "\\staff{score tabs}", "."]

    # Count-in bars cover the audio before the first beat
    rest_bar = " ".join(_rests(bar_slots)) + " |"
    lines += [rest_bar] * tempo.rest_bars

    measure_count = math.ceil(len(tempo.grid) / tempo.beats_per_bar)
    if max_measures > 0:
        measure_count = min(measure_count, max_measures)
    total_slots = measure_count * bar_slots
    events = _quantize(song, tempo, total_slots)
    slots = sorted(events)

    cursor = 0
    for measure in range(measure_count):
        start, end = measure * bar_slots, (measure + 1) * bar_slots
        tokens = []
        position = start
        while cursor < len(slots) and slots[cursor] < end:
            slot = slots[cursor]
            if slot > position:
                tokens += _rests(slot - position)
            following = slots[cursor + 1] if cursor + 1 < len(slots) else end
            span = min(following, end) - slot
            tokens += _event_tokens(song, events[slot], span)
            position = slot + span
            cursor += 1
        if position < end:
            tokens += _rests(end - position)
        lines.append(" ".join(tokens) + " |")

    return NotationDocument(
        text="\n".join(lines) + "\n",
        arrangement_name=arrangement_name,
        sort_order=sort_order,
    )


def export(path: Union[str, Path, io.StringIO], document: NotationDocument):
    if isinstance(path, (str, Path)):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="\n") as f:
            f.write(document.text)
    elif isinstance(path, io.StringIO):
        path.write(document.text)
        path.seek(0)
    else:
        raise TypeError(f"Unsupported path type: {type(path)}")
