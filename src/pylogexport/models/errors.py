"""Exception types raised across the export workflow.

Fatal errors end a run in FAIL. ObjectStoreError is the only per-object
error: the move executor contains it and records it in the manifest.
"""

from pylogexport.models.retry import RetryableError

__all__ = [
    "ExportError",
    "JobStartError",
    "JobNotFoundError",
    "ListError",
    "ObjectStoreError",
    "WaitTimeoutError",
]


class ExportError(Exception):
    """Base class for all errors raised by pylogexport."""

    pass


class JobStartError(ExportError):
    """The export service refused to start a job.

    Raised when the remote accepts no more concurrent jobs for the log
    source, or when the requested time range is invalid.
    """

    pass


class JobNotFoundError(ExportError):
    """Polling referenced a job id the export service does not know.

    Fatal for the run, never retried.
    """

    def __init__(self, job_id: str):
        super().__init__(f"export job not found: {job_id}")
        self.job_id = job_id


class ListError(ExportError):
    """Listing the staging prefix failed."""

    pass


class WaitTimeoutError(ExportError):
    """The export job did not reach a terminal status within the maximum wait."""

    def __init__(self, job_id: str, waited_seconds: float):
        super().__init__(
            f"export job {job_id} still in progress after {waited_seconds:.0f}s"
        )
        self.job_id = job_id
        self.waited_seconds = waited_seconds


class ObjectStoreError(ExportError, RetryableError):
    """A single object operation (copy, delete, put) failed.

    Carries the backend error code and whether retrying can help.
    """

    def __init__(self, message: str, *, code: str | None = None, retryable: bool = True):
        super().__init__(message)
        self.code = code
        self._retryable = retryable

    def is_retryable(self) -> bool:
        return self._retryable

    @classmethod
    def not_found(cls, key: str) -> "ObjectStoreError":
        return cls(f"object not found: {key}", code="NoSuchKey", retryable=False)

    @classmethod
    def access_denied(cls, key: str) -> "ObjectStoreError":
        return cls(f"access denied: {key}", code="AccessDenied", retryable=False)

    @classmethod
    def throttled(cls, key: str) -> "ObjectStoreError":
        return cls(f"request throttled: {key}", code="SlowDown", retryable=True)
