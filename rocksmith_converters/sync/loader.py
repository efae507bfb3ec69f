import io
import json
from pathlib import Path
from typing import Union

from ..notes.timing import TimingMap, validate_points


def loads(data: str | bytes) -> TimingMap:
    try:
        raw = json.loads(data)
        points = tuple(tuple(p) for p in raw.get("points", []))
        bpm, rest_bars = int(raw["bpm"]), int(raw["restBars"])
    except (json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as err:
        raise ValueError(f"Invalid timing map: {err}") from err
    validation = validate_points(points)
    if validation:
        point, error_message = validation
        raise ValueError(f"Invalid timing map point {point}: {error_message}")
    return TimingMap(
        bpm=bpm,
        rest_bars=rest_bars,
        points=tuple((float(a), float(b)) for a, b in points),
    )


def load(fp: Union[str, Path, io.TextIOBase]) -> TimingMap:
    if isinstance(fp, (str, Path)):
        return loads(Path(fp).read_text(encoding="utf-8"))
    return loads(fp.read())
