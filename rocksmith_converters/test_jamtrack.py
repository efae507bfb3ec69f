import io
import json
import math
import threading

import pytest

from . import jamtrack, psarc, sng
from .config import load_config
from .sng.exporter import write_section
from .sng.sng_io import BEAT, FILE_HEADER, MAGIC, NOTE, VERSION, SectionKind
from .errors import SongImportError, TranscodeError, UnsupportedArchiveError
from .notes.song import Beat, Note, Section, Song, SongMetadata
from .store import JsonJamTrackStore

OGG = b"OggS\x00\x02fake vorbis"


def make_chart(fret: int = 3) -> bytes:
    song = Song(
        beats=[
            Beat(time=2.0 + 0.5 * i, measure=i // 4, is_measure_start=i % 4 == 0)
            for i in range(16)
        ],
        sections=[
            Section(name="intro", number=1, start_time=2.0, end_time=6.0),
            Section(name="verse", number=1, start_time=6.0, end_time=10.0),
        ],
        notes=[Note(time=2.0, string=0, fret=fret), Note(time=3.0, string=1, fret=fret + 2)],
        metadata=SongMetadata(song_length=10.5),
    )
    return sng.dumps(song)


def manifest(persistent_id: str, arrangement: str, song: str, artist: str = "Artist") -> bytes:
    attributes = {
        "PersistentID": persistent_id,
        "ArrangementName": arrangement,
        "SongName": song,
        "ArtistName": artist,
        "SongLength": 200.0,
    }
    return json.dumps({"Entries": {persistent_id: {"Attributes": attributes}}}).encode()


def song_files(key: str, title: str, charts: dict[str, bytes]) -> dict[str, bytes]:
    files = {}
    for n, (arrangement, chart) in enumerate(charts.items()):
        files[f"manifests/songs_dlc_{key}/{key}_{arrangement}.json"] = manifest(
            f"{key.upper()}{n}", arrangement.capitalize(), title
        )
        files[f"songs/bin/generic/{key}_{arrangement}.sng"] = chart
    files[f"audio/windows/{key}.wem"] = b"RIFF" + b"\x01" * 4000
    files[f"audio/windows/{key}_preview.wem"] = b"RIFF" + b"\x01" * 400
    return files


@pytest.fixture
def config(tmp_path, monkeypatch):
    monkeypatch.delenv("MUSIC_DIR", raising=False)
    return load_config(
        user_path=tmp_path / "missing.yaml",
        overrides={"music_dir": str(tmp_path / "music"), "import": {"workers": 2}},
    )


@pytest.fixture
def store(tmp_path):
    return JsonJamTrackStore(tmp_path / "jamtracks.json")


@pytest.fixture
def transcoded(monkeypatch):
    calls = []

    def fake_transcode(data, config=None):
        calls.append(data)
        return OGG

    monkeypatch.setattr(jamtrack, "transcode", fake_transcode)
    return calls


def write_archive(tmp_path, files, name="songs.psarc"):
    path = tmp_path / name
    psarc.export(path, files)
    return path


def test_import_song_with_vocals(tmp_path, config, store, transcoded):
    files = song_files(
        "testsong",
        "Song",
        {"lead": make_chart(3), "rhythm": make_chart(5), "vocals": b"not a chart"},
    )
    path = write_archive(tmp_path, files)

    report = jamtrack.import_archive(path, store, config)

    assert report.errors == []
    assert report.message == "Imported 1 song(s), 0 failed"
    (record,) = report.imported
    assert record.title == "Artist - Song"
    assert [a.name for a in record.arrangements] == ["Lead", "Rhythm"]
    assert [a.sort_order for a in record.arrangements] == [0, 1]
    assert [(m.name, m.timestamp) for m in record.markers] == [("intro", 2.0), ("verse", 6.0)]
    assert record.tempo == 120
    assert record.duration == 10.5
    # The full mix, not the preview
    assert transcoded == [files["audio/windows/testsong.wem"]]

    folder = tmp_path / "music" / "JamTracks" / "Artist - Song"
    assert (folder / "Song.ogg").read_bytes() == OGG
    assert (folder / "lead.alphatex").read_text(encoding="utf-8").startswith('\\title "Song"')
    assert '\\subtitle "Rhythm"' in (folder / "rhythm.alphatex").read_text(encoding="utf-8")
    sync_map = json.loads((folder / "lead.sync.json").read_text(encoding="utf-8"))
    assert sync_map["restBars"] == 1
    assert not (folder / "vocals.alphatex").exists()
    assert record.file_path == "JamTracks/Artist - Song/Song.ogg"


def test_reimport_replaces_record(tmp_path, config, store, transcoded):
    files = song_files("testsong", "Song", {"lead": make_chart(), "rhythm": make_chart()})
    path = write_archive(tmp_path, files)

    jamtrack.import_archive(path, store, config)
    jamtrack.import_archive(path, store, config)

    records = store.records()
    assert len(records) == 1
    assert len(records[0].arrangements) == 2
    assert records[0].id == 2
    jam_tracks = tmp_path / "music" / "JamTracks"
    assert [p.name for p in jam_tracks.iterdir()] == ["Artist - Song"]


def test_partial_failure(tmp_path, config, store, transcoded):
    files = {
        **song_files("songa", "A", {"lead": b"garbage", "bass": b"RSNG\x01"}),
        **song_files("songb", "B", {"lead": make_chart()}),
    }
    path = write_archive(tmp_path, files)

    report = jamtrack.import_archive(path, store, config)

    assert [r.title for r in report.imported] == ["Artist - B"]
    assert report.errors == [
        {"song": "Artist - A", "error": "Failed to parse any arrangements for A"}
    ]
    assert report.message == "Imported 1 song(s), 1 failed"
    assert [r.title for r in store.records()] == ["Artist - B"]
    assert not (tmp_path / "music" / "JamTracks" / "Artist - A").exists()


def test_infinite_bend_fails_only_its_song(tmp_path, config, store, transcoded):
    f = io.BytesIO()
    f.write(FILE_HEADER.pack(MAGIC, VERSION))
    write_section(f, SectionKind.BEATS, [BEAT.pack(2.0 + 0.5 * i, i // 4, i % 4, -1, 1) for i in range(8)])
    write_section(f, SectionKind.NOTES, [NOTE.pack(2.0, 0.0, 0, -1, 0, 3, -1, 0, math.inf, -1)])
    files = {
        **song_files("songa", "A", {"lead": f.getvalue()}),
        **song_files("songb", "B", {"lead": make_chart()}),
    }
    path = write_archive(tmp_path, files)

    report = jamtrack.import_archive(path, store, config)

    assert [r.title for r in report.imported] == ["Artist - B"]
    assert report.errors == [
        {"song": "Artist - A", "error": "Failed to parse any arrangements for A"}
    ]


def test_unexpected_error_fails_only_its_song(tmp_path, config, store, transcoded, monkeypatch):
    generate = jamtrack.alphatex.generate

    def flaky_generate(song, arrangement_name, song_title, *args, **kwargs):
        if song_title == "A":
            raise OverflowError("cannot convert float infinity to integer")
        return generate(song, arrangement_name, song_title, *args, **kwargs)

    monkeypatch.setattr(jamtrack.alphatex, "generate", flaky_generate)
    files = {
        **song_files("songa", "A", {"lead": make_chart()}),
        **song_files("songb", "B", {"lead": make_chart()}),
    }
    path = write_archive(tmp_path, files)

    report = jamtrack.import_archive(path, store, config)

    assert [r.title for r in report.imported] == ["Artist - B"]
    assert report.errors == [
        {"song": "Artist - A", "error": "cannot convert float infinity to integer"}
    ]
    assert [r.title for r in store.records()] == ["Artist - B"]


def test_no_audio(tmp_path, config, store, transcoded):
    files = song_files("testsong", "Song", {"lead": make_chart()})
    del files["audio/windows/testsong.wem"]
    del files["audio/windows/testsong_preview.wem"]
    files["audio/windows/123456789.wem"] = b"RIFF" + b"\x02" * 9000
    path = write_archive(tmp_path, files)

    report = jamtrack.import_archive(path, store, config)

    assert report.imported == []
    assert report.errors == [{"song": "Artist - Song", "error": "No audio found for Song"}]
    assert transcoded == []


def test_transcode_failure_leaves_nothing(tmp_path, config, store, monkeypatch):
    def failing(data, config=None):
        raise TranscodeError("ffmpeg", "exit status 1", "boom")

    monkeypatch.setattr(jamtrack, "transcode", failing)
    path = write_archive(tmp_path, song_files("testsong", "Song", {"lead": make_chart()}))

    report = jamtrack.import_archive(path, store, config)

    assert report.imported == []
    assert "ffmpeg failed" in report.errors[0]["error"]
    assert store.records() == []
    jam_tracks = tmp_path / "music" / "JamTracks"
    assert not jam_tracks.exists() or list(jam_tracks.iterdir()) == []


def test_cancelled_import(tmp_path, config, store, transcoded):
    path = write_archive(tmp_path, song_files("testsong", "Song", {"lead": make_chart()}))
    cancel = threading.Event()
    cancel.set()

    report = jamtrack.import_archive(path, store, config, cancel=cancel)

    assert report.imported == []
    assert len(report.errors) == 1
    assert store.records() == []


def test_wrong_extension(tmp_path, config, store):
    with pytest.raises(UnsupportedArchiveError):
        jamtrack.import_archive(tmp_path / "song.zip", store, config)


def test_no_arrangements(tmp_path, config, store):
    path = write_archive(tmp_path, {"audio/windows/1.wem": b"RIFF"})
    with pytest.raises(SongImportError, match="No arrangements found"):
        jamtrack.import_archive(path, store, config)


def test_arrangement_name():
    assert jamtrack.arrangement_name("songs/bin/generic/darktran_lead.sng") == "lead"
    assert jamtrack.arrangement_name("songs/bin/macos/my_song_bass2.sng") == "bass2"


def test_store(tmp_path):
    store = JsonJamTrackStore(tmp_path / "db" / "jamtracks.json")
    assert store.find_by_title("Artist - Song") is None
    record_id = store.create(jamtrack.JamTrackRecord(title="Artist - Song", file_path="a.ogg"))
    assert store.find_by_title("Artist - Song") == record_id
    store.delete(record_id)
    assert store.records() == []
