"""In-memory export job client and object store.

Design Pattern: Adapter Pattern
Both classes adapt plain dictionaries to the client interfaces. They can be
substituted for the AWS bindings without changing the engine, which makes
them the default backends for tests and local dry runs.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable, Sequence

from uuid_extensions import uuid7

from pylogexport.clients.base import ExportJobClient, ObjectStore, parse_job_status
from pylogexport.models import (
    ExportJobHandle,
    ExportJobStatus,
    ExportWindow,
    JobNotFoundError,
    JobStartError,
    ListError,
    ObjectStoreError,
    StagingObject,
)

__all__ = ["InMemoryExportJobClient", "InMemoryObjectStore"]


class _ScriptedJob:
    def __init__(self, window: ExportWindow, staging_prefix: str, script: list[ExportJobStatus]):
        self.window = window
        self.staging_prefix = staging_prefix
        self._script = script
        self.status = ExportJobStatus.PENDING

    def advance(self) -> ExportJobStatus:
        # Terminal statuses are sticky so polling never goes backward
        if not self.status.is_terminal and self._script:
            self.status = self._script.pop(0)
        return self.status


class InMemoryExportJobClient(ExportJobClient):
    """Export client that replays a scripted status sequence.

    Every poll consumes the next status of the script; once the script is
    exhausted (or a terminal status was reached) the last status repeats.
    When ``store`` and ``outputs`` are given, starting a job writes one
    object per output name under ``<staging_prefix>/<job_id>/``.

    Usage:
        client = InMemoryExportJobClient(["RUNNING", "RUNNING", "COMPLETED"])
        handle = await client.start(window, "temp")
        await client.poll(handle)  # RUNNING
    """

    def __init__(
        self,
        statuses: Sequence[ExportJobStatus | str] = (ExportJobStatus.COMPLETED,),
        *,
        store: InMemoryObjectStore | None = None,
        outputs: Iterable[str] = (),
        max_active_jobs: int = 1,
    ):
        self._statuses = [
            s if isinstance(s, ExportJobStatus) else parse_job_status(s) for s in statuses
        ]
        self._store = store
        self._outputs = list(outputs)
        self._max_active_jobs = max_active_jobs
        self._jobs: dict[str, _ScriptedJob] = {}
        self.poll_count = 0

    def __repr__(self) -> str:
        return f"InMemoryExportJobClient(jobs={len(self._jobs)})"

    @property
    def jobs(self) -> dict[str, ExportWindow]:
        return {job_id: job.window for job_id, job in self._jobs.items()}

    async def start(self, window: ExportWindow, staging_prefix: str) -> ExportJobHandle:
        if window.start >= window.end:
            raise JobStartError(f"invalid time range: {window!r}")

        active = sum(1 for job in self._jobs.values() if not job.status.is_terminal)
        if active >= self._max_active_jobs:
            raise JobStartError(
                f"limit exceeded: {active} export job(s) already active for this source"
            )

        job_id = str(uuid7())
        self._jobs[job_id] = _ScriptedJob(window, staging_prefix, list(self._statuses))

        if self._store is not None:
            for name in self._outputs:
                key = f"{staging_prefix}/{job_id}/{name}"
                self._store.objects[key] = f"{window.date_prefix}:{name}".encode()

        return ExportJobHandle(job_id)

    async def poll(self, handle: ExportJobHandle) -> ExportJobStatus:
        job = self._jobs.get(handle.job_id)
        if job is None:
            raise JobNotFoundError(handle.job_id)
        self.poll_count += 1
        return job.advance()


class InMemoryObjectStore(ObjectStore):
    """Dictionary-backed object store.

    ``faults`` maps ``(operation, key)`` to a list of exceptions raised by
    successive calls of that operation on that key, which lets tests script
    transient and permanent failures.

    Usage:
        store = InMemoryObjectStore({"temp/job/a.gz": b"..."})
        store.faults[("copy", "temp/job/a.gz")] = [ObjectStoreError.throttled("a")]
    """

    def __init__(self, objects: dict[str, bytes] | None = None, *, page_size: int = 1000):
        self.objects: dict[str, bytes] = dict(objects or {})
        self.faults: dict[tuple[str, str], list[Exception]] = {}
        self.list_error: Exception | None = None
        self.calls: list[tuple[str, str]] = []
        self._page_size = page_size
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"InMemoryObjectStore(objects={len(self.objects)})"

    def _raise_fault(self, operation: str, key: str) -> None:
        pending = self.faults.get((operation, key))
        if pending:
            raise pending.pop(0)

    async def list_objects(self, prefix: str) -> AsyncIterator[StagingObject]:
        if self.list_error is not None:
            raise ListError(f"cannot list {prefix!r}: {self.list_error}") from self.list_error

        keys = sorted(k for k in self.objects if k.startswith(prefix))
        for offset in range(0, len(keys), self._page_size):
            page = keys[offset : offset + self._page_size]
            # Yield control between pages like a real paginator would
            await asyncio.sleep(0)
            for key in page:
                yield StagingObject(key=key, size=len(self.objects.get(key, b"")))

    async def copy_object(self, source_key: str, destination_key: str) -> None:
        self.calls.append(("copy", source_key))
        self._raise_fault("copy", source_key)
        async with self._lock:
            if source_key not in self.objects:
                raise ObjectStoreError.not_found(source_key)
            self.objects[destination_key] = self.objects[source_key]

    async def delete_object(self, key: str) -> None:
        self.calls.append(("delete", key))
        self._raise_fault("delete", key)
        async with self._lock:
            self.objects.pop(key, None)

    async def put_object(self, key: str, body: bytes, content_type: str) -> None:
        self.calls.append(("put", key))
        self._raise_fault("put", key)
        async with self._lock:
            self.objects[key] = body
