import json

from main import main
from rocksmith_converters import jamtrack, psarc, sng
from rocksmith_converters.notes.song import Beat, Note, Song


def test_missing_input(tmp_path):
    assert main(["--in", str(tmp_path / "nope.psarc"), "--music-dir", str(tmp_path)]) == 1


def test_import(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(jamtrack, "transcode", lambda data, config=None: b"OggS")
    monkeypatch.delenv("MUSIC_DIR", raising=False)
    chart = sng.dumps(
        Song(
            beats=[Beat(time=0.5 * i, measure=i // 4, is_measure_start=i % 4 == 0) for i in range(8)],
            notes=[Note(time=0.0, string=0, fret=0)],
        )
    )
    attributes = {"ArrangementName": "Lead", "SongName": "Song", "ArtistName": "Artist"}
    archive = tmp_path / "song_p.psarc"
    psarc.export(
        archive,
        {
            "manifests/songs_dlc_key/key_lead.json": json.dumps(
                {"Entries": {"ID1": {"Attributes": attributes}}}
            ).encode(),
            "songs/bin/generic/key_lead.sng": chart,
            "audio/windows/key.wem": b"RIFF" + b"\x00" * 100,
        },
    )
    config = tmp_path / "config.yaml"
    config.write_text("logging:\n  level: WARNING\n", encoding="utf-8")

    code = main(["--in", str(archive), "--music-dir", str(tmp_path / "music"), "--config", str(config), "--workers", "1"])

    assert code == 0
    assert "Imported 1 song(s), 0 failed" in capsys.readouterr().out
    assert (tmp_path / "music" / "JamTracks" / "Artist - Song" / "lead.alphatex").exists()
    assert (tmp_path / "music" / "JamTracks" / "jamtracks.json").exists()
