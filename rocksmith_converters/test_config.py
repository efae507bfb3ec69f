from pathlib import Path

from .config import get_extension, get_jam_tracks_dir, get_workers, load_config


def test_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("MUSIC_DIR", raising=False)
    cfg = load_config(user_path=tmp_path / "missing.yaml")

    assert cfg["jam_tracks_folder"] == "JamTracks"
    assert cfg["transcode"]["quality"] == 6
    assert cfg["transcode"]["timeout"] == 120
    assert get_workers(cfg) == 2
    assert get_extension(cfg, "chart", ".x") == ".sng"


def test_user_file_is_merged(tmp_path, monkeypatch):
    monkeypatch.delenv("MUSIC_DIR", raising=False)
    user = tmp_path / "config.yaml"
    user.write_text("transcode:\n  quality: 3\nimport:\n  workers: 5\n", encoding="utf-8")

    cfg = load_config(user_path=user)

    assert cfg["transcode"]["quality"] == 3
    # Siblings of an overridden key survive the merge
    assert cfg["transcode"]["ffmpeg"] == "ffmpeg"
    assert get_workers(cfg) == 5


def test_environment_and_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("MUSIC_DIR", str(tmp_path / "env"))
    cfg = load_config(user_path=tmp_path / "missing.yaml")
    assert get_jam_tracks_dir(cfg) == (tmp_path / "env").resolve() / "JamTracks"

    cfg = load_config(user_path=tmp_path / "missing.yaml", overrides={"music_dir": str(tmp_path / "cli")})
    assert Path(cfg["music_dir"]) == tmp_path / "cli"


def test_broken_user_file_is_ignored(tmp_path, monkeypatch, caplog):
    monkeypatch.delenv("MUSIC_DIR", raising=False)
    user = tmp_path / "config.yaml"
    user.write_text("transcode: [unclosed\n", encoding="utf-8")

    cfg = load_config(user_path=user)

    assert cfg["transcode"]["quality"] == 6
    assert "Ignoring unreadable config" in caplog.text


def test_bad_workers_value():
    assert get_workers({"import": {"workers": "many"}}) == 2
    assert get_workers({"import": {"workers": 0}}) == 1
