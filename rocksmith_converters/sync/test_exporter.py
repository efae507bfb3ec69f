import io
import json

import pytest

from .exporter import dumps, export, generate
from .loader import load, loads
from ..notes.song import Beat, Song
from ..notes.timing import TimingMap


def make_song(times: list[float]) -> Song:
    return Song(
        beats=[
            Beat(time=t, measure=i // 4, is_measure_start=i % 4 == 0)
            for i, t in enumerate(times)
        ]
    )


def test_one_point_per_beat():
    timing_map = generate(make_song([2.0 + 0.5 * i for i in range(16)]))

    assert timing_map.bpm == 120
    assert timing_map.rest_bars == 1
    assert len(timing_map.points) == 16
    # Count-in bar first, then 500 ms per beat
    assert timing_map.points[0] == (2.0, 2000.0)
    assert timing_map.points[1] == (2.5, 2500.0)
    assert timing_map.points[-1] == (9.5, 9500.0)


def test_points_are_strictly_increasing():
    times = [0.0, 0.5, 1.1, 1.5, 2.0, 2.4, 3.1, 3.5, 4.0, 4.6]
    points = generate(make_song(times)).points
    for (a0, n0), (a1, n1) in zip(points, points[1:]):
        assert a0 < a1
        assert n0 < n1


def test_reversed_and_zero_length_beats_are_dropped(caplog):
    times = [1.0, 1.5, 1.5, 2.0, 1.8, 2.5]
    timing_map = generate(make_song(times))
    assert [p[0] for p in timing_map.points] == [1.0, 1.5, 2.0, 2.5]
    assert "Dropping beat" in caplog.text


def test_no_negative_coordinates_for_early_first_beat():
    timing_map = generate(make_song([0.1 + 0.5 * i for i in range(8)]))
    assert timing_map.rest_bars == 0
    assert timing_map.points[0] == (0.1, 0.0)


def test_dumps():
    timing_map = generate(make_song([2.0, 2.5, 3.0, 3.5, 4.0]))
    data = json.loads(dumps(timing_map))
    assert data["bpm"] == 120
    assert data["restBars"] == 1
    assert data["points"][0] == [2.0, 2000.0]


def test_export_load(tmp_path):
    timing_map = generate(make_song([2.0 + 0.5 * i for i in range(9)]))
    export(tmp_path / "lead.sync.json", timing_map)
    assert load(tmp_path / "lead.sync.json") == timing_map

    buffer = io.StringIO()
    export(buffer, timing_map)
    assert load(buffer) == timing_map


@pytest.mark.parametrize(
    "data",
    [
        '{"bpm": 120, "restBars": 0, "points": [[1.0, 0], [0.5, 500]]}',
        '{"bpm": 120, "restBars": 0, "points": [[1.0, 500], [1.5, 500]]}',
        '{"bpm": 120, "restBars": 0, "points": [[1.0, "a"]]}',
        '{"bpm": 120, "points": []}',
        "[1, 2]",
        "not json",
    ],
)
def test_loads_rejects_invalid_maps(data):
    with pytest.raises(ValueError):
        loads(data)


def test_loads():
    timing_map = loads('{"bpm": 90, "restBars": 2, "points": [[0, 0], [1, 667]]}')
    assert timing_map == TimingMap(bpm=90, rest_bars=2, points=((0.0, 0.0), (1.0, 667.0)))
