import logging
import subprocess
from pathlib import Path

from .config import PipelineConfig

logger = logging.getLogger(__name__)

TRANSCODED_EXTENSION = "mkv"
TRANSCODED_CONTENT_TYPE = "video/x-matroska"


class CodecError(Exception):
    """ffmpeg could not be started, crashed, timed out or exited non-zero."""


def build_command(config: PipelineConfig, input_path, output_path) -> list[str]:
    """H.264 + AAC inside Matroska, same resolution as the source."""
    return [
        config.ffmpeg_path,
        "-y",
        "-i", str(input_path),
        "-c:v", "libx264",
        "-preset", config.ffmpeg_preset,
        "-crf", "23",
        "-c:a", "aac",
        "-b:a", "160k",
        str(output_path),
    ]


def transcode(config: PipelineConfig, input_path, output_path) -> Path:
    cmd = build_command(config, input_path, output_path)
    logger.debug("Running %s", " ".join(cmd))
    try:
        subprocess.run(
            cmd,
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=config.ffmpeg_timeout_seconds,
        )
    except FileNotFoundError:
        raise CodecError(f"ffmpeg not found. Install ffmpeg or set FFMPEG_PATH. Tried: {config.ffmpeg_path}")
    except subprocess.TimeoutExpired:
        raise CodecError(f"ffmpeg timed out after {config.ffmpeg_timeout_seconds}s")
    except subprocess.CalledProcessError as e:
        err = e.stderr.decode("utf-8", errors="ignore") if e.stderr else str(e)
        raise CodecError(f"ffmpeg exited with code {e.returncode}: {err[-800:]}")

    out = Path(output_path)
    if not out.exists():
        raise CodecError(f"ffmpeg reported success but produced no output at {out}")
    return out
