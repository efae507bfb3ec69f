from dataclasses import dataclass
from typing import Tuple

from dataclasses_json import dataclass_json, LetterCase


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass(frozen=True)
class TimingMap:
    bpm: int
    rest_bars: int
    # (audio seconds, notation milliseconds), strictly increasing in both
    points: Tuple[Tuple[float, float], ...] = ()


@dataclass(frozen=True)
class NotationDocument:
    text: str
    arrangement_name: str
    sort_order: int = 0


def validate_points(points) -> tuple | None:
    for idx, point in enumerate(points):
        if len(point) != 2:
            return point, f"Point {idx} should have 2 values"
        if not all(isinstance(v, (int, float)) for v in point):
            return point, f"Point {idx} has a non-numeric value"
        if idx == 0:
            continue
        prev = points[idx - 1]
        if point[0] <= prev[0] or point[1] <= prev[1]:
            return point, f"Point {idx} does not increase in both coordinates"
    return None
