import logging
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import TranscodeError

logger = logging.getLogger(__name__)

DEFAULTS = {
    "vgmstream": "vgmstream-cli",
    "ffmpeg": "ffmpeg",
    "quality": 6,
    "timeout": 120,
}


def _run(cmd: list[str], tool: str, timeout: float):
    logger.debug(f"Running {' '.join(cmd)}")
    try:
        subprocess.run(
            cmd,
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout,
        )
    except subprocess.CalledProcessError as e:
        raise TranscodeError(
            tool,
            f"exit status {e.returncode}",
            e.stderr.decode("utf-8", errors="replace") if e.stderr else "",
        ) from e
    except subprocess.TimeoutExpired as e:
        raise TranscodeError(tool, f"timed out after {timeout}s") from e
    except OSError as e:
        # Missing binary or no permission to run it
        raise TranscodeError(tool, f"cannot run {cmd[0]}: {e}") from e


def transcode(data: bytes, config: Optional[Dict[str, Any]] = None) -> bytes:
    """Convert Wwise audio to Ogg Vorbis: vgmstream-cli to WAV, then ffmpeg to Ogg."""
    cfg = {**DEFAULTS, **(config or {})}
    if not data:
        raise TranscodeError("vgmstream-cli", "no input audio")
    timeout = float(cfg["timeout"])

    with tempfile.TemporaryDirectory(prefix="wem-convert-") as tmp:
        tmp_root = Path(tmp)
        wem_path = tmp_root / "input.wem"
        wav_path = tmp_root / "output.wav"
        ogg_path = tmp_root / "output.ogg"
        wem_path.write_bytes(data)

        _run(
            [str(cfg["vgmstream"]), "-o", str(wav_path), str(wem_path)],
            "vgmstream-cli",
            timeout,
        )
        if not wav_path.exists() or wav_path.stat().st_size == 0:
            raise TranscodeError("vgmstream-cli", "produced no audio (unsupported codec?)")

        _run(
            [
                str(cfg["ffmpeg"]),
                "-y",
                "-loglevel",
                "error",
                "-i",
                str(wav_path),
                "-c:a",
                "libvorbis",
                "-q:a",
                str(cfg["quality"]),
                str(ogg_path),
            ],
            "ffmpeg",
            timeout,
        )
        ogg = ogg_path.read_bytes() if ogg_path.exists() else b""
    if not ogg:
        raise TranscodeError("ffmpeg", "produced an empty file")
    logger.info(f"Transcoded {len(data)} bytes of wem into {len(ogg)} bytes of ogg")
    return ogg
