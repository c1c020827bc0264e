import asyncio
import logging
import typing as ty
from dataclasses import dataclass

from openai import AsyncOpenAI

from painpoint.errors import TranscriptionError
from painpoint.transcribe.retry import RetryPolicy, with_retry
from painpoint.transcribe.split import Segment

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY: ty.Final = 10


@dataclass(frozen=True)
class SegmentResult:
    index: int
    text: str
    success: bool
    error: Exception | None = None


SegmentTranscriber = ty.Callable[[Segment, bytes], ty.Awaitable[str]]
ProgressCallback = ty.Callable[[int, int], ty.Awaitable[None]]


class OpenAITranscriber:
    """Transcribes one segment per request; segments never share context.

    The response is expected to carry the transcript as a `text` string
    (`response_format="json"`); anything else fails the segment.
    """

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "whisper-1",
        language: str = "en",
        retry_policy: RetryPolicy = RetryPolicy(),
        client: AsyncOpenAI | None = None,
    ):
        # retries are ours, not the SDK's
        self.client = client or AsyncOpenAI(api_key=api_key, max_retries=0)
        self.model = model
        self.language = language
        self.retry_policy = retry_policy

    async def _create(self, segment: Segment, audio: bytes) -> str:
        resp = await self.client.audio.transcriptions.create(
            model=self.model,
            file=(segment.path.name, audio),
            language=self.language,
            response_format="json",
        )
        text = getattr(resp, "text", None)
        if not isinstance(text, str):
            raise TranscriptionError(
                segment.index, f"Unexpected transcription response: {type(resp).__name__}"
            )
        return text

    async def __call__(self, segment: Segment, audio: bytes) -> str:
        return await with_retry(
            lambda: self._create(segment, audio),
            self.retry_policy,
            what=f"Transcribing segment {segment.index + 1}",
        )

    async def close(self) -> None:
        await self.client.close()


async def transcribe_segments(
    segments: ty.Sequence[Segment],
    transcribe: SegmentTranscriber,
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    on_progress: ProgressCallback | None = None,
) -> list[SegmentResult]:
    """Transcribe all segments, at most `concurrency` at a time, in waves.

    A wave runs to completion (no sibling is cancelled) before we look at its
    results. If anything in it failed, the lowest failing segment is raised as
    a TranscriptionError and no further wave starts. Each segment file is
    deleted as soon as its transcript is in hand.
    """
    total = len(segments)
    if [s.index for s in segments] != list(range(total)):
        raise ValueError("Segments must be indexed 0..N-1 in order")
    if concurrency < 1:
        raise ValueError(f"concurrency must be positive, got {concurrency}")

    results: list[SegmentResult | None] = [None] * total

    async def _transcribe_one(segment: Segment) -> None:
        try:
            audio = await asyncio.to_thread(segment.path.read_bytes)
            text = await transcribe(segment, audio)
        except Exception as exc:
            logger.error(f"Error transcribing segment {segment.index + 1}/{total}", exc_info=exc)
            results[segment.index] = SegmentResult(segment.index, "", success=False, error=exc)
            return

        results[segment.index] = SegmentResult(segment.index, text, success=True)
        logger.info(f"ok  segment {segment.index + 1}/{total}")
        try:
            await asyncio.to_thread(segment.path.unlink, missing_ok=True)
        except OSError as err:
            logger.warning(f"Could not delete segment file {segment.path}: {err}")

    logger.info(f"Transcribing {total} segments, at most {concurrency} at a time...")
    completed = 0
    while completed < total:
        wave = segments[completed : completed + concurrency]
        logger.info(f"Transcribing segments {completed + 1}-{completed + len(wave)} of {total}")
        await asyncio.gather(*(_transcribe_one(segment) for segment in wave))

        failures = [r for s in wave if (r := results[s.index]) is not None and not r.success]
        if failures:
            first = failures[0]
            if isinstance(first.error, TranscriptionError):
                raise first.error
            raise TranscriptionError(first.index, first.error or "unknown error")

        completed += len(wave)
        if on_progress is not None:
            try:
                await on_progress(completed, total)
            except Exception as err:
                logger.warning(f"Could not report progress ({completed}/{total}): {err}")

    assert all(r is not None for r in results)
    return ty.cast(list[SegmentResult], results)
