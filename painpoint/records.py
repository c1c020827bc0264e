"""Collaborators the pipeline talks to, and the stores that ship with it.

The CRM deployment provides its own implementations backed by its database and
object storage; the ones here cover tests and the command line."""

import asyncio
import json
import logging
import typing as ty
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from painpoint.env import openai_api_key
from painpoint.errors import CredentialsError, StorageError
from painpoint.transcribe.job import JobStatus, RecordKey

logger = logging.getLogger(__name__)


class ObjectStore(ty.Protocol):
    async def signed_download_url(self, object_ref: str, ttl_s: int) -> str:
        """Raises StorageError if no URL can be produced."""
        ...


class StatusRecords(ty.Protocol):
    async def insert_pending(self, key: RecordKey, owner_id: str, detail: str) -> None: ...

    async def write_status(self, key: RecordKey, status: JobStatus, detail: str) -> None: ...

    async def write_final(self, key: RecordKey, text: str) -> None: ...

    async def mark_failed(self, key: RecordKey, detail: str) -> None: ...

    async def mark_has_transcript(self, meeting_id: str) -> None: ...


class Credentials(ty.Protocol):
    async def api_key_for(self, owner_id: str) -> str:
        """Raises CredentialsError if the owner has no key."""
        ...


class HttpObjectStore:
    """For references that are already fetchable URLs."""

    async def signed_download_url(self, object_ref: str, ttl_s: int) -> str:
        if not object_ref.startswith(("http://", "https://")):
            raise StorageError(f"Could not generate download URL for {object_ref}")
        return object_ref


class EnvCredentials:
    """Everyone shares the key from the environment (or ~/.keys/openai-api)."""

    async def api_key_for(self, owner_id: str) -> str:
        try:
            return openai_api_key()
        except (OSError, KeyError) as err:
            raise CredentialsError(
                "No OpenAI API key found. Set OPENAI_API_KEY or write it to ~/.keys/openai-api."
            ) from err


@dataclass
class TranscriptRecord:
    owner_id: str = ""
    status: str = JobStatus.CREATED.value
    detail: str = ""
    content: str = ""
    updated_at: str = field(default_factory=lambda: datetime.now().isoformat())


class MemoryRecords:
    """Dict-backed records; keeps every status write in `history` for inspection."""

    def __init__(self) -> None:
        self.records: dict[RecordKey, TranscriptRecord] = {}
        self.history: list[tuple[RecordKey, str, str]] = []
        self.meetings_with_transcript: set[str] = set()

    def _touch(self, key: RecordKey, status: str, detail: str) -> TranscriptRecord:
        record = self.records.setdefault(key, TranscriptRecord())
        record.status = status
        record.detail = detail
        record.updated_at = datetime.now().isoformat()
        self.history.append((key, status, detail))
        return record

    async def insert_pending(self, key: RecordKey, owner_id: str, detail: str) -> None:
        self.records[key] = TranscriptRecord(owner_id=owner_id)
        self._touch(key, JobStatus.CREATED.value, detail)

    async def write_status(self, key: RecordKey, status: JobStatus, detail: str) -> None:
        self._touch(key, status.value, detail)

    async def write_final(self, key: RecordKey, text: str) -> None:
        self._touch(key, JobStatus.COMPLETED.value, "").content = text

    async def mark_failed(self, key: RecordKey, detail: str) -> None:
        self._touch(key, JobStatus.FAILED.value, detail)

    async def mark_has_transcript(self, meeting_id: str) -> None:
        self.meetings_with_transcript.add(meeting_id)


class JsonFileRecords:
    """One JSON document per transcript record, under a directory."""

    def __init__(self, records_dir: Path):
        self.records_dir = records_dir
        self.records_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: RecordKey) -> Path:
        return self.records_dir / f"{key.meeting_id}__{key.recording_id}.json"

    def load(self, key: RecordKey) -> dict[str, ty.Any] | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def _update(self, key: RecordKey, **changes: ty.Any) -> None:
        record = self.load(key) or {"meeting_id": key.meeting_id, "recording_id": key.recording_id}
        record.update(changes, updated_at=datetime.now().isoformat())
        self.path_for(key).write_text(
            json.dumps(record, ensure_ascii=False, indent=2), encoding="utf-8"
        )

    async def insert_pending(self, key: RecordKey, owner_id: str, detail: str) -> None:
        await asyncio.to_thread(
            self._update, key, owner_id=owner_id, status=JobStatus.CREATED.value, detail=detail
        )

    async def write_status(self, key: RecordKey, status: JobStatus, detail: str) -> None:
        await asyncio.to_thread(self._update, key, status=status.value, detail=detail)

    async def write_final(self, key: RecordKey, text: str) -> None:
        await asyncio.to_thread(
            self._update, key, status=JobStatus.COMPLETED.value, detail="", content=text
        )

    async def mark_failed(self, key: RecordKey, detail: str) -> None:
        await asyncio.to_thread(self._update, key, status=JobStatus.FAILED.value, detail=detail)

    async def mark_has_transcript(self, meeting_id: str) -> None:
        logger.info(f"Meeting {meeting_id} now has a transcript")
