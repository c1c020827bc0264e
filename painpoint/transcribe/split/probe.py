import json
import logging
from dataclasses import dataclass
from pathlib import Path

from painpoint.errors import ProbeError
from painpoint.transcribe.split.env import run_tool, which_ffprobe_or_raise

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioInfo:
    duration_s: float
    format_name: str


def parse_probe_output(output: str) -> AudioInfo:
    """Expects ffprobe's `-of json` output: {"format": {"duration": "12.3", "format_name": "mp3"}}."""
    try:
        fmt = json.loads(output)["format"]
        duration = float(fmt["duration"])
        format_name = str(fmt["format_name"])
    except (ValueError, KeyError, TypeError) as err:
        raise ProbeError(f"Unexpected ffprobe output: {output[:200]!r}") from err

    if duration <= 0:
        raise ProbeError(f"Audio has no duration ({duration}s)")
    return AudioInfo(duration_s=duration, format_name=format_name)


async def probe(audio_file: Path) -> AudioInfo:
    """Get duration and container format of a local audio file using ffprobe."""
    which_ffprobe_or_raise()

    result = await run_tool(
        *"ffprobe -v error -show_entries format=duration,format_name -of json".split(),
        str(audio_file),  # paths can have spaces in them
    )
    if result.returncode != 0:
        raise ProbeError(f"ffprobe failed on {audio_file.name}: {result.stderr.strip()}")

    info = parse_probe_output(result.stdout)
    logger.info(f"Audio duration: {info.duration_s:.1f}s, format: {info.format_name}")
    return info
