import asyncio
import json

import pytest

from painpoint.records import MemoryRecords
from painpoint.transcribe.intake import JobRunner, handle_messages, parse_job_message
from painpoint.transcribe.job import Job, JobStatus, RecordKey


def _body(**overrides) -> str:
    message = dict(userId="user-1", meetingId="m-1", recordingId="r-1", sourceRef="rec/call.mp3")
    message.update(overrides)
    return json.dumps({k: v for k, v in message.items() if v is not None})


class FakePipeline:
    def __init__(self, delay: float = 0.0):
        self.records = MemoryRecords()
        self.delay = delay
        self.ran: list[str] = []

    async def run(self, job: Job) -> Job:
        await asyncio.sleep(self.delay)
        self.ran.append(job.job_id)
        job.advance(JobStatus.DOWNLOADING)
        job.fail("stopped early")
        return job


class TestParseJobMessage:
    def test_complete_message(self):
        job = parse_job_message(_body(jobId="job-7"))
        assert job is not None
        assert job.job_id == "job-7"
        assert job.owner_id == "user-1"
        assert job.source_ref == "rec/call.mp3"
        assert job.record_key == RecordKey("m-1", "r-1")
        assert job.status is JobStatus.CREATED

    def test_generates_a_job_id(self):
        first, second = parse_job_message(_body()), parse_job_message(_body())
        assert first and second
        assert first.job_id and first.job_id != second.job_id

    @pytest.mark.parametrize("missing", ["userId", "meetingId", "recordingId", "sourceRef"])
    def test_missing_fields_are_skipped(self, missing, caplog):
        assert parse_job_message(_body(**{missing: None})) is None
        assert "missing required parameters" in caplog.text

    @pytest.mark.parametrize("body", ["not json", "[1, 2]", '""'])
    def test_malformed_bodies_are_skipped(self, body):
        assert parse_job_message(body) is None


def test_handle_messages_skips_bad_messages_and_runs_the_rest():
    pipeline = FakePipeline()
    bodies = [_body(jobId="a"), "garbage", _body(jobId="b", userId="")]

    jobs = asyncio.run(handle_messages(pipeline, bodies))

    assert [j.job_id for j in jobs] == ["a"]
    assert pipeline.ran == ["a"]


def test_runner_writes_pending_record_before_returning():
    pipeline = FakePipeline(delay=0.01)

    async def _go():
        runner = JobRunner(pipeline)
        await runner.submit(parse_job_message(_body(jobId="a")))
        pending = pipeline.records.records[RecordKey("m-1", "r-1")]
        assert pending.status == "created"
        assert pending.detail == "Transcription in progress..."
        assert pending.owner_id == "user-1"
        assert runner.running == 1
        assert pipeline.ran == []
        jobs = await runner.drain()
        assert runner.running == 0
        return jobs

    jobs = asyncio.run(_go())
    assert [j.job_id for j in jobs] == ["a"]


def test_cancelling_the_submitter_does_not_cancel_the_job():
    pipeline = FakePipeline(delay=0.02)

    async def _go():
        runner = JobRunner(pipeline)

        async def request():
            await runner.submit(parse_job_message(_body(jobId="a")))
            await asyncio.sleep(10)

        caller = asyncio.create_task(request())
        await asyncio.sleep(0.005)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller
        return await runner.drain()

    jobs = asyncio.run(_go())
    assert pipeline.ran == ["a"]
    assert jobs[0].status is JobStatus.FAILED


def test_drain_with_nothing_submitted():
    assert asyncio.run(JobRunner(FakePipeline()).drain()) == []
