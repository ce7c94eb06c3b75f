"""
Abstract interfaces for the external collaborators of the workflow.

Design Pattern: Adapter Pattern
ExportJobClient and ObjectStore define the target interfaces that every
backend adapts to. The workflow engine and move executor depend on these
abstractions only, so the same orchestration runs against CloudWatch Logs
and S3, or against the in-memory fakes used in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from pylogexport.models import ExportJobHandle, ExportJobStatus, ExportWindow, StagingObject

__all__ = ["ExportJobClient", "ObjectStore", "parse_job_status"]


def parse_job_status(code: str) -> ExportJobStatus:
    """Map a backend status code onto ExportJobStatus.

    Raises:
        ValueError: If the code is not a known status
    """
    try:
        return ExportJobStatus(code.upper())
    except ValueError:
        raise ValueError(f"unknown export job status: {code!r}") from None


class ExportJobClient(ABC):
    """Starts and polls asynchronous export jobs.

    Contract:
    - status transitions reported by poll() are monotonic
      (PENDING/RUNNING → exactly one terminal status)
    - a job id returned by start() is unique per job
    """

    @abstractmethod
    async def start(self, window: ExportWindow, staging_prefix: str) -> ExportJobHandle:
        """
        Start an export of ``window`` into ``staging_prefix``.

        Raises:
            JobStartError: If the range is invalid (from >= to) or the
                service accepts no more concurrent jobs for the source
        """
        pass

    @abstractmethod
    async def poll(self, handle: ExportJobHandle) -> ExportJobStatus:
        """
        Return the current status of a job.

        Raises:
            JobNotFoundError: If the job id is unknown
        """
        pass


class ObjectStore(ABC):
    """Bucket-scoped object operations used by the workflow.

    Errors from copy/delete/put are raised as ObjectStoreError carrying a
    transient/permanent classification. Listing errors are raised as
    ListError.
    """

    @abstractmethod
    def list_objects(self, prefix: str) -> AsyncIterator[StagingObject]:
        """
        Lazily yield every object under ``prefix``, paginating internally.

        Raises:
            ListError: If the listing cannot be read
        """
        pass

    @abstractmethod
    async def copy_object(self, source_key: str, destination_key: str) -> None:
        pass

    @abstractmethod
    async def delete_object(self, key: str) -> None:
        pass

    @abstractmethod
    async def put_object(self, key: str, body: bytes, content_type: str) -> None:
        pass
