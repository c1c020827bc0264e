import enum
import typing as ty
from dataclasses import dataclass


class JobStatus(enum.Enum):
    CREATED = "created"
    DOWNLOADING = "downloading"
    PROBING = "probing"
    SEGMENTING = "segmenting"
    TRANSCRIBING = "transcribing"
    STITCHING = "stitching"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


_FORWARD: ty.Final = (
    JobStatus.CREATED,
    JobStatus.DOWNLOADING,
    JobStatus.PROBING,
    JobStatus.SEGMENTING,
    JobStatus.TRANSCRIBING,
    JobStatus.STITCHING,
    JobStatus.COMPLETED,
)


class RecordKey(ty.NamedTuple):
    """Identifies the transcript record a job writes to."""

    meeting_id: str
    recording_id: str

    def __str__(self) -> str:
        return f"{self.meeting_id}/{self.recording_id}"


@dataclass
class Job:
    job_id: str
    source_ref: str
    record_key: RecordKey
    owner_id: str
    status: JobStatus = JobStatus.CREATED
    error: str | None = None

    def advance(self, status: JobStatus) -> None:
        """Move to the next state. Only single forward steps, or FAILED from any live state."""
        if self.status.is_terminal:
            raise ValueError(f"Job {self.job_id} is already {self.status.value}")
        if status is JobStatus.FAILED:
            self.status = status
            return
        current = _FORWARD.index(self.status)
        if _FORWARD.index(status) != current + 1:
            raise ValueError(
                f"Job {self.job_id}: illegal transition {self.status.value} -> {status.value}"
            )
        self.status = status

    def fail(self, error: str) -> None:
        self.advance(JobStatus.FAILED)
        self.error = error
