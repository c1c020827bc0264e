import asyncio
import logging
import typing as ty
from functools import partial
from pathlib import Path

import httpx

from painpoint.config import DEFAULT_CONFIG, PainpointConfig
from painpoint.errors import PipelineError
from painpoint.records import Credentials, ObjectStore, StatusRecords
from painpoint.transcribe.acquire import acquire
from painpoint.transcribe.job import Job, JobStatus
from painpoint.transcribe.llm import OpenAITranscriber, transcribe_segments
from painpoint.transcribe.llm.transcribe_segments import SegmentTranscriber
from painpoint.transcribe.retry import RetryPolicy
from painpoint.transcribe.split import probe, segment_audio
from painpoint.transcribe.stitch import stitch_transcripts
from painpoint.transcribe.workdir import create_job_workdir, remove_workdir

logger = logging.getLogger(__name__)

TranscriberFactory = ty.Callable[[str], SegmentTranscriber]


def openai_transcriber_factory(config: PainpointConfig) -> TranscriberFactory:
    policy = RetryPolicy(max_attempts=config.max_attempts, base_delay_s=config.retry_base_delay_s)
    return partial(
        OpenAITranscriber,
        model=config.transcription_model,
        language=config.language,
        retry_policy=policy,
    )


class TranscriptionPipeline:
    """Runs one job end to end: download, probe, split, transcribe, stitch.

    Every outcome lands in the job's transcript record. Progress writes are
    best-effort; a failure anywhere else fails the job with its message. The
    job's scratch directory is removed whichever way it ends.
    """

    def __init__(
        self,
        object_store: ObjectStore,
        records: StatusRecords,
        credentials: Credentials,
        *,
        config: PainpointConfig = DEFAULT_CONFIG,
        transcriber_factory: TranscriberFactory | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.object_store = object_store
        self.records = records
        self.credentials = credentials
        self.config = config
        self.transcriber_factory = transcriber_factory or openai_transcriber_factory(config)
        self.http_client = http_client

    async def _write_status(self, job: Job, detail: str) -> None:
        try:
            await self.records.write_status(job.record_key, job.status, detail)
        except Exception as err:
            logger.warning(f"Job {job.job_id}: could not write status {job.status.value!r}: {err}")

    async def _advance(self, job: Job, status: JobStatus, detail: str | None = None) -> None:
        job.advance(status)
        logger.info(f"Job {job.job_id}: {status.value}")
        if detail is not None:
            await self._write_status(job, detail)

    async def _report_progress(self, job: Job, completed: int, total: int) -> None:
        percent = round(completed / total * 100)
        await self._write_status(
            job, f"Transcription progress: {percent}% ({completed}/{total} segments complete)"
        )

    async def _fail(self, job: Job, exc: Exception) -> None:
        if isinstance(exc, PipelineError):
            logger.error(f"Job {job.job_id} failed while {job.status.value}: {exc}")
        else:
            logger.error(f"Job {job.job_id} failed while {job.status.value}", exc_info=exc)
        job.fail(str(exc))
        try:
            await self.records.mark_failed(job.record_key, f"Transcription failed: {exc}")
        except Exception as err:
            logger.error(f"Job {job.job_id}: could not record failure: {err}")

    async def _transcribe(self, job: Job, workdir: Path, api_key: str) -> str:
        await self._advance(job, JobStatus.DOWNLOADING, "Downloading audio file...")
        audio_file = await acquire(
            self.object_store,
            job.source_ref,
            workdir,
            ttl_s=self.config.signed_url_ttl_s,
            client=self.http_client,
        )

        await self._advance(job, JobStatus.PROBING)
        info = await probe(audio_file)

        await self._advance(job, JobStatus.SEGMENTING, "Splitting audio into segments...")
        segments = await segment_audio(audio_file, info, workdir / "segments", config=self.config)

        await self._advance(
            job, JobStatus.TRANSCRIBING, f"Transcribing {len(segments)} segments..."
        )
        transcriber = self.transcriber_factory(api_key)
        try:
            results = await transcribe_segments(
                segments,
                transcriber,
                concurrency=self.config.concurrency,
                on_progress=partial(self._report_progress, job),
            )
        finally:
            if (close := getattr(transcriber, "close", None)) is not None:
                await close()
        if len(results) != len(segments):
            raise PipelineError(f"Expected {len(segments)} transcripts but got {len(results)}")

        await self._advance(job, JobStatus.STITCHING)
        return stitch_transcripts(
            [r.text for r in results], self.config.overlap_s, min_match=self.config.min_stitch_match
        )

    async def run(self, job: Job) -> Job:
        workdir: Path | None = None
        try:
            api_key = await self.credentials.api_key_for(job.owner_id)
            workdir = create_job_workdir(job.job_id)
            logger.info(f"Job {job.job_id}: working in {workdir}")

            transcript = await self._transcribe(job, workdir, api_key)
            await self.records.write_final(job.record_key, transcript)
            job.advance(JobStatus.COMPLETED)
            logger.info(f"Job {job.job_id}: transcript saved ({len(transcript)} chars)")
        except asyncio.CancelledError:
            await self._fail(job, PipelineError("Job was cancelled before it finished"))
            raise
        except Exception as exc:
            await self._fail(job, exc)
        finally:
            if workdir is not None:
                await remove_workdir(workdir)

        if job.status is JobStatus.COMPLETED:
            try:
                await self.records.mark_has_transcript(job.record_key.meeting_id)
            except Exception as err:
                logger.warning(f"Job {job.job_id}: could not flag meeting as transcribed: {err}")
        return job
