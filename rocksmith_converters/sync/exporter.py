import io
import json
import logging
from pathlib import Path
from typing import Union

from ..notes.song import Song
from ..notes.tempo import Tempo, analyze
from ..notes.timing import TimingMap, validate_points

logger = logging.getLogger(__name__)


def generate(song: Song, tempo: Tempo | None = None) -> TimingMap:
    """One (audio seconds, notation ms) point per beat of the beat grid.

    Notation time starts after ``rest_bars`` of count-in, so no point is ever
    negative and the first point sits at the first beat.
    """
    tempo = tempo or analyze(song)
    offset = tempo.rest_bars * tempo.beats_per_bar * tempo.beat_ms
    points = tuple(
        (float(beat.time), offset + i * tempo.beat_ms)
        for i, beat in enumerate(tempo.grid)
    )
    validation = validate_points(points)
    if validation:
        # beat_grid only keeps increasing beats, so this means a bug upstream
        point, error_message = validation
        raise ValueError(f"Generated timing map is invalid at {point}: {error_message}")
    if len(points) < 2:
        logger.warning(f"Timing map has only {len(points)} point(s); playback sync is unavailable")
    return TimingMap(bpm=tempo.bpm, rest_bars=tempo.rest_bars, points=points)


def dumps(timing_map: TimingMap) -> str:
    # {"bpm": ..., "restBars": ..., "points": [[seconds, ms], ...]}
    return json.dumps(timing_map.to_dict(), separators=(",", ":"))


def export(path: Union[str, Path, io.StringIO], timing_map: TimingMap):
    data = dumps(timing_map)
    if isinstance(path, (str, Path)):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(data, encoding="utf-8")
    elif isinstance(path, io.StringIO):
        path.write(data)
        path.seek(0)
    else:
        raise TypeError(f"Unsupported path type: {type(path)}")
