import logging
import math
import os
from typing import IO, Union

from ..errors import ChartFormatError
from ..notes.song import (
    Beat,
    ChordTemplate,
    Note,
    Phrase,
    PhraseIteration,
    Section,
    Song,
    SongMetadata,
    Technique,
    validate_note_values,
)
from ..utils import single_precision
from .sng_io import (
    FILE_HEADER,
    MAGIC,
    RECORD_LAYOUTS,
    SECTION_HEADER,
    VERSION,
    SectionKind,
    read_name,
    section_kind,
)

logger = logging.getLogger(__name__)

_Records = dict[SectionKind, list[tuple]]

# Unknown technique bits are dropped
KNOWN_TECHNIQUES = sum(Technique)


def _read_header(view: memoryview):
    if len(view) < FILE_HEADER.size:
        raise ChartFormatError(f"Truncated header ({len(view)} bytes)", 0)
    magic, version = FILE_HEADER.unpack_from(view)
    if magic != MAGIC:
        raise ChartFormatError(f"Bad magic {magic!r}", 0)
    if version > VERSION:
        logger.warning(
            f"Chart version {version} is newer than {VERSION}, decoding known sections only"
        )


def _read_sections(view: memoryview, offset: int) -> _Records:
    records: _Records = {}
    while offset < len(view):
        if offset + SECTION_HEADER.size > len(view):
            raise ChartFormatError("Truncated section header", offset)
        tag, count, element_size = SECTION_HEADER.unpack_from(view, offset)
        offset += SECTION_HEADER.size
        length = count * element_size
        if offset + length > len(view):
            raise ChartFormatError(
                f"Section {tag!r} declares {length} bytes, {len(view) - offset} left",
                offset,
            )

        match section_kind(tag):
            case None:
                logger.debug(f"Skipping unknown section {tag!r} ({length} bytes)")
            case kind if kind in records:
                raise ChartFormatError(f"Duplicate section {tag!r}", offset)
            case kind:
                layout = RECORD_LAYOUTS[kind]
                if count and element_size < layout.size:
                    raise ChartFormatError(
                        f"Section {tag!r} records are {element_size} bytes, need {layout.size}",
                        offset,
                    )
                # Records larger than the known layout carry newer trailing fields
                records[kind] = [
                    layout.unpack_from(view, offset + i * element_size)
                    for i in range(count)
                ]
        offset += length
    return records


def _beats(rows: list[tuple]) -> list[Beat]:
    beats = []
    measure = 0
    for time, measure_number, beat_in_measure, _iteration, _mask in rows:
        if measure_number >= 0:
            measure = measure_number
        beats.append(
            Beat(
                time=single_precision(time),
                measure=measure,
                is_measure_start=beat_in_measure == 0,
            )
        )
    return beats


def _chord_templates(rows: list[tuple]) -> list[ChordTemplate]:
    return [
        ChordTemplate(
            name=read_name(row[19]), frets=list(row[1:7]), fingers=list(row[7:13])
        )
        for row in rows
    ]


def _sections(rows: list[tuple]) -> list[Section]:
    sections = []
    for idx, (name, number, start, end, *_) in enumerate(rows):
        if not (math.isfinite(start) and math.isfinite(end)):
            logger.warning(f"Skipping section {idx}: time is not a number")
            continue
        sections.append(
            Section(
                name=read_name(name),
                number=number,
                start_time=single_precision(start),
                end_time=single_precision(end),
            )
        )
    sections.sort(key=lambda s: s.start_time)
    return sections


def _notes(rows: list[tuple]) -> list[Note]:
    notes = []
    for idx, row in enumerate(rows):
        time, sustain, techniques, chord_id, string, fret, slide_to, difficulty, max_bend, _ = row
        if not math.isfinite(time):
            logger.warning(f"Skipping note {idx}: time is not a number")
            continue
        note = Note(
            time=single_precision(time),
            string=string,
            fret=fret,
            sustain=single_precision(sustain),
            chord_id=chord_id,
            techniques=Technique(techniques & KNOWN_TECHNIQUES),
            slide_to=slide_to,
            max_bend=single_precision(max_bend),
            difficulty=difficulty,
        )
        validation = validate_note_values(note)
        if validation:
            _, error_message = validation
            raise ChartFormatError(f"Note {idx}: {error_message}")
        notes.append(note)
    return notes


def full_arrangement(
    notes: list[Note], phrases: list[Phrase], iterations: list[PhraseIteration]
) -> list[Note]:
    """Notes of the whole arrangement: each phrase iteration at its phrase's max difficulty."""
    if not notes:
        return []
    if phrases and iterations:
        selected = []
        for iteration in iterations:
            if not 0 <= iteration.phrase_id < len(phrases):
                continue
            level = phrases[iteration.phrase_id].max_difficulty
            end = iteration.end_time if iteration.end_time > iteration.time else math.inf
            selected.extend(
                n
                for n in notes
                if n.difficulty == level and iteration.time <= n.time < end
            )
    else:
        top = max(n.difficulty for n in notes)
        selected = [n for n in notes if n.difficulty == top]
    selected.sort(key=lambda n: (n.time, n.string))
    return selected


def loads(data: bytes) -> Song:
    view = memoryview(data)
    _read_header(view)
    records = _read_sections(view, FILE_HEADER.size)

    phrases = [
        Phrase(
            name=read_name(name),
            max_difficulty=max_difficulty,
            solo=bool(solo),
            ignore=bool(ignore),
        )
        for solo, _disparity, ignore, max_difficulty, _links, name in records.get(
            SectionKind.PHRASES, []
        )
    ]
    iterations = [
        PhraseIteration(
            phrase_id=phrase_id,
            time=single_precision(time),
            end_time=single_precision(end_time),
        )
        for phrase_id, time, end_time, *_ in records.get(
            SectionKind.PHRASE_ITERATIONS, []
        )
    ]

    song = Song(
        beats=_beats(records.get(SectionKind.BEATS, [])),
        sections=_sections(records.get(SectionKind.SECTIONS, [])),
        phrases=phrases,
        phrase_iterations=iterations,
        chord_templates=_chord_templates(records.get(SectionKind.CHORD_TEMPLATES, [])),
    )
    song.notes = full_arrangement(
        _notes(records.get(SectionKind.NOTES, [])), phrases, iterations
    )

    metadata_rows = records.get(SectionKind.METADATA, [])
    if len(metadata_rows) > 1:
        raise ChartFormatError(f"Expected 1 metadata record, got {len(metadata_rows)}")
    if metadata_rows:
        length, start, first_note, tempo, capo, *tuning = metadata_rows[0]
        song.metadata = SongMetadata(
            song_length=single_precision(length),
            start_time=single_precision(start),
            first_note_time=single_precision(first_note),
            average_tempo=single_precision(tempo),
        )
        song.capo = capo
        song.tuning = list(tuning)
    return song


def load(f: Union[os.PathLike, str, IO[bytes]]) -> Song:
    if isinstance(f, (os.PathLike, str)):
        with open(f, "rb") as fp:
            return loads(fp.read())
    return loads(f.read())
