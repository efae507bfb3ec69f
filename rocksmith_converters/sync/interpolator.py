from bisect import bisect_right
from operator import itemgetter

from ..errors import InsufficientSyncDataError
from ..notes.timing import TimingMap

# Sort keys of a (audio seconds, notation ms) point, by source column
_KEYS = (itemgetter(0), itemgetter(1))


def _along(points, i: int, value: float, src: int, dst: int) -> float:
    # Linear map of ``value`` through segment (points[i], points[i + 1])
    lo, hi = points[i], points[i + 1]
    return lo[dst] + (value - lo[src]) / (hi[src] - lo[src]) * (hi[dst] - lo[dst])


def _segment(points, value: float, src: int) -> int:
    if value <= points[0][src]:
        return 0
    if value >= points[-1][src]:
        return len(points) - 2
    return bisect_right(points, value, key=_KEYS[src]) - 1


def position_at(timing_map: TimingMap, audio_seconds: float) -> float:
    """Notation time in ms for an audio timestamp.

    Outside the map the first or last segment is extended linearly; the result
    is never clamped.
    """
    points = timing_map.points
    if len(points) < 2:
        raise InsufficientSyncDataError(len(points))
    return _along(points, _segment(points, audio_seconds, 0), audio_seconds, 0, 1)


def audio_time_at(timing_map: TimingMap, notation_ms: float) -> float:
    """Inverse of ``position_at``: audio seconds for a notation time."""
    points = timing_map.points
    if len(points) < 2:
        raise InsufficientSyncDataError(len(points))
    return _along(points, _segment(points, notation_ms, 1), notation_ms, 1, 0)
