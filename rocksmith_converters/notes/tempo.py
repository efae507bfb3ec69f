import logging
import math
from dataclasses import dataclass
from typing import List

import numpy as np

from .song import Beat, Song

logger = logging.getLogger(__name__)

DEFAULT_BPM = 120
DEFAULT_BEATS_PER_BAR = 4


@dataclass(frozen=True)
class Tempo:
    grid: tuple[Beat, ...]
    bpm: int
    beats_per_bar: int
    rest_bars: int

    @property
    def beat_ms(self) -> float:
        return 60000 / self.bpm

    @property
    def bar_seconds(self) -> float:
        return self.beats_per_bar * 60 / self.bpm


def beat_grid(beats: List[Beat]) -> list[Beat]:
    """Beats with strictly increasing times; zero-length or reversed intervals are dropped."""
    grid: list[Beat] = []
    for idx, beat in enumerate(beats):
        if not math.isfinite(beat.time):
            logger.warning(f"Dropping beat {idx}: time is not a number")
            continue
        if grid and beat.time <= grid[-1].time:
            logger.warning(
                f"Dropping beat {idx} at {beat.time}s: not after previous beat at {grid[-1].time}s"
            )
            continue
        grid.append(beat)
    return grid


def _measure_start_indices(grid: List[Beat]) -> list[int]:
    return [i for i, beat in enumerate(grid) if beat.is_measure_start]


def estimate_beats_per_bar(grid: List[Beat]) -> int:
    starts = _measure_start_indices(grid)
    if len(starts) < 2:
        return DEFAULT_BEATS_PER_BAR
    return max(1, int(round(float(np.median(np.diff(starts))))))


def estimate_bpm(grid: List[Beat]) -> int:
    """Tempo from the median spacing of measure starts.

    The tempo stored in chart metadata is not used; it is often stale relative to
    the authored beat grid.
    """
    starts = _measure_start_indices(grid)
    if len(starts) >= 2:
        start_times = np.array([grid[i].time for i in starts], dtype=np.float64)
        bar_seconds = float(np.median(np.diff(start_times)))
        bpm = 60 * estimate_beats_per_bar(grid) / bar_seconds
    elif len(grid) >= 2:
        times = np.array([beat.time for beat in grid], dtype=np.float64)
        bpm = 60 / float(np.median(np.diff(times)))
    else:
        return DEFAULT_BPM
    return max(1, int(round(bpm)))


def analyze(song: Song) -> Tempo:
    grid = beat_grid(song.beats)
    bpm = estimate_bpm(grid)
    beats_per_bar = estimate_beats_per_bar(grid)
    rest_bars = 0
    if grid:
        bar_seconds = beats_per_bar * 60 / bpm
        rest_bars = max(0, int(round(grid[0].time / bar_seconds)))
    return Tempo(
        grid=tuple(grid), bpm=bpm, beats_per_bar=beats_per_bar, rest_bars=rest_bars
    )
