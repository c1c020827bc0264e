"""Audio splitting functionality using ffmpeg.

We are splitting long files into segments that each fit under the speech API's
upload ceiling.  Adjacent segments share a few seconds of audio so that words
spoken right at a cut survive in at least one segment; the stitcher removes the
duplicated words again afterwards."""

import asyncio
import logging
import math
import shutil
import typing as ty
from dataclasses import dataclass
from pathlib import Path

from painpoint.config import DEFAULT_CONFIG, PainpointConfig
from painpoint.errors import SegmentationError
from painpoint.transcribe.split.env import run_tool, which_ffmpeg_or_raise
from painpoint.transcribe.split.probe import AudioInfo

logger = logging.getLogger(__name__)

_MB: ty.Final = 1024 * 1024
# (file size above which, target segment seconds)
_SIZE_TIERS: ty.Final = ((100, 30), (50, 60), (30, 120))
# extensions the speech API accepts for an upload
_UPLOAD_SUFFIXES: ty.Final = frozenset(
    {".flac", ".m4a", ".mp3", ".mp4", ".mpeg", ".mpga", ".oga", ".ogg", ".wav", ".webm"}
)


@dataclass(frozen=True)
class Segment:
    index: int
    start_s: float
    duration_s: float
    path: Path


class Window(ty.NamedTuple):
    start_s: float
    duration_s: float


def choose_target_duration(size_bytes: int, default_s: int, min_s: int) -> int:
    """Bigger files get shorter segments, since bigger usually means a denser encoding."""
    size_mb = size_bytes / _MB
    target = next((t for threshold_mb, t in _SIZE_TIERS if size_mb > threshold_mb), default_s)
    return max(target, min_s)


def plan_segments(duration_s: float, target_s: float, overlap_s: float) -> list[Window]:
    """Every segment but the first starts `overlap_s` early; the last one runs to the end."""
    count = math.ceil(duration_s / target_s)
    windows = []
    for i in range(count):
        start = 0.0 if i == 0 else max(0.0, i * target_s - overlap_s)
        length = target_s + overlap_s if i < count - 1 else duration_s - start
        windows.append(Window(start, length))
    return windows


def _fmt_float(x: float, digits: int = 3) -> str:
    return f"{x:.{digits}f}".rstrip("0").rstrip(".")


async def _cut_segment(
    audio_file: Path, window: Window, out_file: Path, config: PainpointConfig
) -> None:
    result = await run_tool(
        *"ffmpeg -hide_banner -loglevel error -y -ss".split(),
        _fmt_float(window.start_s),
        "-t",
        _fmt_float(window.duration_s),
        "-i",
        str(audio_file),  # paths can have spaces in them
        *f"-vn -ac 1 -ar {config.segment_sample_rate}".split(),
        *f"-c:a libmp3lame -b:a {config.segment_bitrate}".split(),
        str(out_file),
    )
    if result.returncode != 0:
        raise SegmentationError(
            f"ffmpeg failed cutting {out_file.name} "
            f"at {_fmt_float(window.start_s)}s: {result.stderr.strip()}"
        )


def _size_mb(path: Path) -> float:
    return path.stat().st_size / _MB


def _discard(paths: ty.Iterable[Path]) -> None:
    for path in paths:
        path.unlink(missing_ok=True)


def _shrunk_target(base_s: float, size_mb: float, config: PainpointConfig) -> int:
    return max(config.min_segment_s, math.floor(base_s / (size_mb / config.max_segment_mb)))


async def segment_audio(
    audio_file: Path,
    info: AudioInfo,
    out_dir: Path,
    *,
    config: PainpointConfig = DEFAULT_CONFIG,
    target_s: int | None = None,
    depth: int = 0,
) -> list[Segment]:
    """Cut audio_file into overlapping segments no larger than config.max_segment_mb.

    If a produced segment is still too big, everything from this attempt is
    thrown away and we start over with a proportionally shorter target, at
    most config.max_split_depth attempts in total.
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    if target_s is None:
        target_s = choose_target_duration(
            audio_file.stat().st_size, config.default_segment_s, config.min_segment_s
        )
    target_s = max(target_s, config.min_segment_s)

    async def _replan(produced: list[Path], oversize_mb: float, base_s: float) -> list[Segment]:
        _discard(produced)
        new_target = _shrunk_target(base_s, oversize_mb, config)
        if depth + 1 >= config.max_split_depth:
            raise SegmentationError(
                f"Segments still exceed {config.max_segment_mb}MB "
                f"after {config.max_split_depth} split attempts"
            )
        if new_target >= base_s:
            raise SegmentationError(
                f"Cannot shrink segments below {config.min_segment_s}s "
                f"and they are still {oversize_mb:.1f}MB"
            )
        logger.info(
            f"Segment was {oversize_mb:.1f}MB (limit {config.max_segment_mb}MB); "
            f"re-splitting with {new_target}s segments"
        )
        return await segment_audio(
            audio_file, info, out_dir, config=config, target_s=new_target, depth=depth + 1
        )

    if info.duration_s <= target_s:
        if audio_file.suffix.lower() in _UPLOAD_SUFFIXES:
            logger.info("Audio file is short enough, no need to split")
            only = out_dir / f"segment_000{audio_file.suffix}"
            await asyncio.to_thread(shutil.copyfile, audio_file, only)
        else:
            # the upload filename's extension is how the API tells formats apart
            logger.info(f"Re-encoding {audio_file.name} to mp3; its name has no usable extension")
            which_ffmpeg_or_raise()
            only = out_dir / "segment_000.mp3"
            try:
                await _cut_segment(audio_file, Window(0.0, info.duration_s), only, config)
            except SegmentationError:
                _discard([only])
                raise
        if (size_mb := _size_mb(only)) > config.max_segment_mb:
            return await _replan([only], size_mb, min(target_s, info.duration_s))
        return [Segment(index=0, start_s=0.0, duration_s=info.duration_s, path=only)]

    which_ffmpeg_or_raise()
    windows = plan_segments(info.duration_s, target_s, config.overlap_s)
    logger.info(f"Splitting into {len(windows)} segments of {target_s}s each")

    segments: list[Segment] = []
    for i, window in enumerate(windows):
        out_file = out_dir / f"segment_{i:03d}.mp3"
        try:
            await _cut_segment(audio_file, window, out_file, config)
        except SegmentationError:
            _discard([*(s.path for s in segments), out_file])
            raise
        if (size_mb := _size_mb(out_file)) > config.max_segment_mb:
            return await _replan([*(s.path for s in segments), out_file], size_mb, target_s)
        segments.append(
            Segment(index=i, start_s=window.start_s, duration_s=window.duration_s, path=out_file)
        )

    logger.info(f"Segments in: {out_dir}")
    return segments
