"""Failure taxonomy for the transcription pipeline.

Every error here aborts a job; its message is what ends up in the transcript
record's terminal status, so keep messages readable by a human."""


class PipelineError(Exception):
    pass


class CredentialsError(PipelineError):
    """The job owner has no usable speech API key."""


class StorageError(PipelineError):
    """The object store could not produce a download URL."""


class DownloadError(PipelineError):
    pass


class IntegrityError(PipelineError):
    """The downloaded file is missing or empty."""


class ProbeError(PipelineError):
    pass


class SegmentationError(PipelineError):
    pass


class TranscriptionError(PipelineError):
    def __init__(self, index: int, cause: BaseException | str):
        self.index = index
        self.cause = cause
        reason = cause if isinstance(cause, str) else f"{type(cause).__name__}: {cause}"
        # segments are 1-based for humans
        super().__init__(f"Failed to transcribe segment {index + 1}: {reason}")


class StitchError(PipelineError):
    """Reserved; stitching degrades instead of failing."""
