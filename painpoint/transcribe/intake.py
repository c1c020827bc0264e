"""Getting jobs into the pipeline.

Transcription takes far longer than the request that asks for it, so a job is
acknowledged as soon as its pending transcript record exists, and then runs
on its own task.  A queue consumer can instead hand us a batch of message
bodies to work through."""

import asyncio
import json
import logging
import typing as ty
import uuid

from painpoint.transcribe.core import TranscriptionPipeline
from painpoint.transcribe.job import Job, RecordKey

logger = logging.getLogger(__name__)

PENDING_DETAIL: ty.Final = "Transcription in progress..."
_REQUIRED: ty.Final = ("userId", "meetingId", "recordingId", "sourceRef")


def parse_job_message(body: str) -> Job | None:
    """A queue message is JSON with userId, meetingId, recordingId and sourceRef."""
    try:
        message = json.loads(body)
    except json.JSONDecodeError:
        logger.error(f"Skipping message that is not JSON: {body[:200]!r}")
        return None

    if not isinstance(message, dict) or not all(message.get(k) for k in _REQUIRED):
        logger.error(f"Skipping message with missing required parameters: {body[:200]!r}")
        return None

    return Job(
        job_id=message.get("jobId") or uuid.uuid4().hex,
        source_ref=message["sourceRef"],
        record_key=RecordKey(meeting_id=message["meetingId"], recording_id=message["recordingId"]),
        owner_id=message["userId"],
    )


async def handle_messages(pipeline: TranscriptionPipeline, bodies: ty.Iterable[str]) -> list[Job]:
    """Run each message's job in turn; one bad message never stops the batch."""
    jobs = []
    for body in bodies:
        if (job := parse_job_message(body)) is None:
            continue
        logger.info(f"Processing job {job.job_id} for recording {job.record_key.recording_id}")
        jobs.append(await pipeline.run(job))
    return jobs


class JobRunner:
    """Starts jobs as detached tasks and keeps hold of them until they finish.

    Cancelling whoever called submit() does not cancel the job.
    """

    def __init__(self, pipeline: TranscriptionPipeline):
        self.pipeline = pipeline
        self._tasks: set[asyncio.Task[Job]] = set()

    async def submit(self, job: Job) -> asyncio.Task[Job]:
        await self.pipeline.records.insert_pending(job.record_key, job.owner_id, PENDING_DETAIL)
        task = asyncio.create_task(self.pipeline.run(job), name=f"transcribe-{job.job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"Job {job.job_id} started in the background")
        return task

    @property
    def running(self) -> int:
        return len(self._tasks)

    async def drain(self) -> list[Job]:
        """Wait for every job submitted so far."""
        if not self._tasks:
            return []
        return list(await asyncio.gather(*self._tasks))
