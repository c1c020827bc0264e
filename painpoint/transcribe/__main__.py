"""Main CLI entry point for painpoint-transcribe."""

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path

from painpoint.config import read_config_from_directory_hierarchy
from painpoint.records import EnvCredentials, HttpObjectStore, JsonFileRecords
from painpoint.transcribe.core import TranscriptionPipeline
from painpoint.transcribe.job import Job, JobStatus, RecordKey


async def _run(url: str, records_dir: Path) -> tuple[Job, JsonFileRecords]:
    records = JsonFileRecords(records_dir)
    pipeline = TranscriptionPipeline(
        HttpObjectStore(),
        records,
        EnvCredentials(),
        config=read_config_from_directory_hierarchy(Path.cwd()),
    )
    job_id = uuid.uuid4().hex
    job = Job(
        job_id=job_id,
        source_ref=url,
        record_key=RecordKey(meeting_id="cli", recording_id=job_id),
        owner_id="cli",
    )
    await records.insert_pending(job.record_key, job.owner_id, "Transcription in progress...")
    return await pipeline.run(job), records


def cli() -> None:
    parser = argparse.ArgumentParser(
        prog="painpoint-transcribe",
        description="Transcribe a long recording by splitting, transcribing segments, and stitching.",
    )
    parser.add_argument("url", help="http(s) URL of the recording")
    parser.add_argument("-o", "--out", help="Where does the transcript go?", type=Path)
    parser.add_argument(
        "--records",
        help="Directory for transcript records",
        type=Path,
        default=Path(".painpoint-records"),
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    job, records = asyncio.run(_run(args.url, args.records))

    if job.status is not JobStatus.COMPLETED:
        print(f"Transcription failed: {job.error}", file=sys.stderr)
        sys.exit(1)

    record_file = records.path_for(job.record_key)
    print(f"Transcript record: {record_file}")
    if args.out:
        record = records.load(job.record_key) or {}
        args.out.write_text(record.get("content", "") + "\n", encoding="utf-8")


if __name__ == "__main__":
    cli()
