import logging
import typing as ty
from dataclasses import dataclass, fields, replace
from functools import lru_cache
from pathlib import Path

import hjson

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PainpointConfig:
    # for transcribing:
    transcription_model: str = "whisper-1"
    language: str = "en"
    concurrency: int = 10
    # ^ simultaneous requests to the speech API per job
    max_attempts: int = 3
    retry_base_delay_s: float = 1.0

    # for segmenting:
    default_segment_s: int = 5 * 60
    min_segment_s: int = 30
    overlap_s: int = 10
    max_segment_mb: float = 25.0  # OpenAI's per-request upload ceiling
    max_split_depth: int = 5
    segment_bitrate: str = "32k"
    segment_sample_rate: int = 16000

    # for stitching:
    min_stitch_match: int = 2

    # for downloading:
    signed_url_ttl_s: int = 600


DEFAULT_CONFIG = PainpointConfig()


def _parse_hjson(some_text: str) -> dict[str, ty.Any]:
    """Parse HJSON text into a dictionary."""
    try:
        return hjson.loads(some_text)
    except hjson.HjsonDecodeError:
        return hjson.loads("{" + some_text + "}")


def parse_config(config_text: str, base: PainpointConfig = DEFAULT_CONFIG) -> PainpointConfig:
    if not config_text.strip():
        return base

    known = {f.name for f in fields(PainpointConfig)}
    overrides = {}
    for key, value in _parse_hjson(config_text).items():
        if key in known:
            overrides[key] = value
        else:
            logger.warning(f"Ignoring unknown config key: {key}")
    return replace(base, **overrides)


_CONFIG_FILENAMES = (".painpoint.hjson", "painpoint.hjson")


def _find_config_in_dir(current_dir: Path) -> Path | None:
    for name in _CONFIG_FILENAMES:
        if (config_file := current_dir / name).is_file():
            return config_file
    return None


@lru_cache
def read_config_from_directory_hierarchy(any_path: Path) -> PainpointConfig:
    """Return the config nearest to any_path, walking upward; DEFAULT_CONFIG if none is found."""
    current = any_path if any_path.is_dir() else any_path.parent
    while True:
        if config_file := _find_config_in_dir(current):
            logger.info(f"Using config: {config_file}")
            return parse_config(config_file.read_text(encoding="utf-8"))
        if current == current.parent:
            return DEFAULT_CONFIG
        current = current.parent
