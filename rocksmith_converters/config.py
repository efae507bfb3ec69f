from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

PKG_ROOT = Path(__file__).resolve().parent
DEFAULT_CFG_PATH = PKG_ROOT / "config.default.yaml"
USER_CFG_PATH = Path.home() / ".config" / "rocksmith_converters" / "config.yaml"


def _safe_load(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as err:
        logger.warning(f"Ignoring unreadable config {path}: {err}")
        return {}


def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(a)
    for k, v in (b or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out


def load_config(
    user_path: Optional[Path] = None,
    default_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Defaults merged with the user file, then ``overrides``.

    ``MUSIC_DIR`` in the environment takes precedence over both files.
    """
    dpath = Path(default_path) if default_path else DEFAULT_CFG_PATH
    upath = Path(user_path) if user_path else USER_CFG_PATH

    cfg = _deep_merge(_safe_load(dpath), _safe_load(upath))
    if os.environ.get("MUSIC_DIR"):
        cfg["music_dir"] = os.environ["MUSIC_DIR"]
    cfg = _deep_merge(cfg, overrides or {})

    cfg.setdefault("music_dir", "./music")
    cfg.setdefault("jam_tracks_folder", "JamTracks")
    for section in ("import", "transcode", "notation", "logging"):
        cfg.setdefault(section, {})
    return cfg


def get_workers(cfg: Dict[str, Any]) -> int:
    try:
        return max(1, int(cfg["import"].get("workers", 2)))
    except (KeyError, TypeError, ValueError):
        return 2


def get_extension(cfg: Dict[str, Any], kind: str, default: str) -> str:
    return str(cfg.get("import", {}).get(f"{kind}_extension", default)).lower()


def get_jam_tracks_dir(cfg: Dict[str, Any]) -> Path:
    return Path(cfg["music_dir"]).expanduser().resolve() / cfg["jam_tracks_folder"]
