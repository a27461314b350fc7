"""
Standardised error handling for vidscript.
"""

from vidscript.core.constants import ErrorCode, RETRYABLE_ERRORS


class JobError(Exception):
    """Raised when video processing encounters a known error condition."""

    def __init__(self, code: str, message: str, retryable: bool | None = None):
        self.code = code
        self.message = message
        # auto-detect retryable from code if not explicitly set
        self.retryable = retryable if retryable is not None else (code in RETRYABLE_ERRORS)
        super().__init__(f"[{code}] {message}")


class InvalidInput(JobError):
    """The supplied file is not something we can process."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.INVALID_INPUT, message)


class UploadError(JobError):
    def __init__(self, message: str):
        super().__init__(ErrorCode.UPLOAD_FAILED, message)


class RemoteServiceError(JobError):
    """Non-success response (or no response at all) from the analysis service."""

    def __init__(self, status_code: int | None, body: str,
                 code: str = ErrorCode.REMOTE_SERVICE):
        self.status_code = status_code
        self.body = body
        if status_code is None:
            message = f"Analysis service unreachable: {body}"
        else:
            message = f"Analysis service returned {status_code}: {body}"
        super().__init__(code, message)


class JobStartError(JobError):
    def __init__(self, message: str = "Analysis job response did not include a job id"):
        super().__init__(ErrorCode.JOB_START, message)


class JobFailed(JobError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(ErrorCode.JOB_FAILED, f"Analysis job failed: {reason}")


class PersistenceError(JobError):
    def __init__(self, message: str):
        super().__init__(ErrorCode.PERSISTENCE, message)


class ProcessingTimeout(JobError):
    def __init__(self, message: str):
        super().__init__(ErrorCode.PROCESSING_TIMEOUT, message)


class ProcessingCancelled(JobError):
    def __init__(self, message: str = "Processing cancelled"):
        super().__init__(ErrorCode.PROCESSING_CANCELLED, message)


class TranscriptNotFound(JobError):
    def __init__(self, video_id: str):
        self.video_id = video_id
        super().__init__(ErrorCode.TRANSCRIPT_NOT_FOUND,
                         f"No transcript available for video {video_id}")

