"""Shared fakes for the external tools and services the pipeline drives."""

import asyncio
import typing as ty
from pathlib import Path
from unittest.mock import patch

import pytest

from painpoint.transcribe.split import Segment
from painpoint.transcribe.split.env import ToolResult


class FakeFfmpeg:
    """Stands in for run_tool: writes the output file with a size derived from `-t`."""

    def __init__(self, bytes_for_length: ty.Callable[[float], int], fail_on_call: int | None = None):
        self.bytes_for_length = bytes_for_length
        self.fail_on_call = fail_on_call
        self.calls: list[tuple[str, ...]] = []

    async def __call__(self, *args: str) -> ToolResult:
        self.calls.append(args)
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            return ToolResult(1, "", "Invalid data found when processing input")
        length = float(args[args.index("-t") + 1])
        Path(args[-1]).write_bytes(b"\0" * self.bytes_for_length(length))
        return ToolResult(0, "", "")

    def windows(self) -> list[tuple[float, float]]:
        return [(float(a[a.index("-ss") + 1]), float(a[a.index("-t") + 1])) for a in self.calls]


@pytest.fixture
def fake_ffmpeg():
    """Patch the splitter's ffmpeg; call with a size function, get the fake back."""
    patchers = []

    def _install(bytes_for_length: ty.Callable[[float], int], fail_on_call: int | None = None):
        fake = FakeFfmpeg(bytes_for_length, fail_on_call)
        for p in (
            patch("painpoint.transcribe.split.core.run_tool", fake),
            patch("painpoint.transcribe.split.core.which_ffmpeg_or_raise", lambda: "ffmpeg"),
        ):
            p.start()
            patchers.append(p)
        return fake

    yield _install
    for p in patchers:
        p.stop()


class FakeTranscriber:
    """Returns "words of segment N" after an optional per-segment delay."""

    def __init__(
        self,
        texts: ty.Mapping[int, str] | None = None,
        delays: ty.Mapping[int, float] | None = None,
        fail: ty.Mapping[int, Exception] | None = None,
    ):
        self.texts = texts or {}
        self.delays = delays or {}
        self.fail = fail or {}
        self.started: list[int] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def __call__(self, segment: Segment, audio: bytes) -> str:
        self.started.append(segment.index)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(segment.index, 0))
            if segment.index in self.fail:
                raise self.fail[segment.index]
            return self.texts.get(segment.index, f"words of segment {segment.index}")
        finally:
            self.in_flight -= 1

    async def close(self) -> None:
        self.closed = True


def make_segments(directory: Path, count: int) -> list[Segment]:
    directory.mkdir(parents=True, exist_ok=True)
    segments = []
    for i in range(count):
        path = directory / f"segment_{i:03d}.mp3"
        path.write_bytes(b"audio" * (i + 1))
        segments.append(Segment(index=i, start_s=i * 290.0, duration_s=310.0, path=path))
    return segments


@pytest.fixture
def segments_factory(tmp_path):
    return lambda count: make_segments(tmp_path / "segments", count)


@pytest.fixture
def make_transcriber():
    return FakeTranscriber
