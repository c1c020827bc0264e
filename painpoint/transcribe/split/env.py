import asyncio
import shutil
import typing as ty

from thds.core.lazy import lazy


@lazy
def which_ffmpeg_or_raise() -> str:
    if ffmpeg := shutil.which("ffmpeg"):
        return ffmpeg
    raise EnvironmentError("ffmpeg not installed; install it with your package manager")


@lazy
def which_ffprobe_or_raise() -> str:
    if ffprobe := shutil.which("ffprobe"):
        return ffprobe
    raise EnvironmentError("ffprobe not installed; it ships with ffmpeg")


class ToolResult(ty.NamedTuple):
    returncode: int
    stdout: str
    stderr: str


async def run_tool(*args: str) -> ToolResult:
    """Run an external media tool to completion without blocking the event loop."""
    proc = await asyncio.create_subprocess_exec(
        *args, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
    )
    stdout, stderr = await proc.communicate()
    assert proc.returncode is not None
    return ToolResult(
        proc.returncode,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
    )
