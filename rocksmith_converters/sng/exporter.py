import io
from pathlib import Path
from typing import Union

from ..notes.song import (
    Song,
    validate_chord_template_values,
    validate_note_values,
)
from .sng_io import (
    BEAT,
    CHORD_TEMPLATE,
    FILE_HEADER,
    MAGIC,
    METADATA,
    NOTE,
    PHRASE,
    PHRASE_ITERATION,
    SECTION,
    SECTION_HEADER,
    VERSION,
    BeatFlag,
    SectionKind,
    write_name,
)


def write_section(f: io.BytesIO, kind: SectionKind | bytes, records: list[bytes]):
    tag = kind.value if isinstance(kind, SectionKind) else kind
    element_size = len(records[0]) if records else 0
    if any(len(r) != element_size for r in records):
        raise ValueError(f"Records of section {tag!r} differ in size")
    f.write(SECTION_HEADER.pack(tag, len(records), element_size))
    for record in records:
        f.write(record)


def _beat_records(song: Song) -> list[bytes]:
    records = []
    beat_in_measure = 0
    for beat in song.beats:
        beat_in_measure = 0 if beat.is_measure_start else beat_in_measure + 1
        records.append(
            BEAT.pack(
                beat.time,
                beat.measure if beat.is_measure_start else -1,
                beat_in_measure,
                -1,
                BeatFlag.FIRST_IN_MEASURE if beat.is_measure_start else BeatFlag.NONE,
            )
        )
    return records


def _chord_template_records(song: Song) -> list[bytes]:
    records = []
    for template in song.chord_templates:
        validation = validate_chord_template_values(template)
        if validation:
            _, error_message = validation
            raise ValueError(f"Invalid chord template {template.name!r}: {error_message}")
        records.append(
            CHORD_TEMPLATE.pack(
                0,
                *template.frets,
                *template.fingers,
                *([-1] * 6),
                write_name(template.name),
            )
        )
    return records


def _note_records(song: Song) -> list[bytes]:
    records = []
    for note in song.notes:
        validation = validate_note_values(note)
        if validation:
            _, error_message = validation
            raise ValueError(f"Invalid note at {note.time}s: {error_message}")
        records.append(
            NOTE.pack(
                note.time,
                note.sustain,
                int(note.techniques),
                note.chord_id,
                note.string,
                note.fret,
                note.slide_to,
                note.difficulty,
                note.max_bend,
                -1,
            )
        )
    return records


def dumps(song: Song) -> bytes:
    f = io.BytesIO()
    f.write(FILE_HEADER.pack(MAGIC, VERSION))
    metadata = song.metadata
    write_section(
        f,
        SectionKind.METADATA,
        [
            METADATA.pack(
                metadata.song_length,
                metadata.start_time,
                metadata.first_note_time,
                metadata.average_tempo,
                song.capo,
                *song.tuning,
            )
        ],
    )
    write_section(f, SectionKind.BEATS, _beat_records(song))
    write_section(
        f,
        SectionKind.PHRASES,
        [
            PHRASE.pack(
                int(p.solo), 0, int(p.ignore), p.max_difficulty, -1, write_name(p.name)
            )
            for p in song.phrases
        ],
    )
    write_section(
        f,
        SectionKind.PHRASE_ITERATIONS,
        [
            PHRASE_ITERATION.pack(it.phrase_id, it.time, it.end_time, 0, 0, 0)
            for it in song.phrase_iterations
        ],
    )
    write_section(f, SectionKind.CHORD_TEMPLATES, _chord_template_records(song))
    write_section(
        f,
        SectionKind.SECTIONS,
        [
            SECTION.pack(
                write_name(s.name), s.number, s.start_time, s.end_time, -1, -1, b""
            )
            for s in song.sections
        ],
    )
    write_section(f, SectionKind.NOTES, _note_records(song))
    return f.getvalue()


def export(path: Union[str, Path, io.BytesIO], song: Song):
    data = dumps(song)
    if isinstance(path, (str, Path)):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    elif isinstance(path, io.BytesIO):
        path.write(data)
        path.seek(0)
    else:
        raise TypeError(f"Unsupported path type: {type(path)}")
