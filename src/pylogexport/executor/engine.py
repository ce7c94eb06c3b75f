"""
Workflow engine: the state machine driving one daily export run.

States and transitions:

    PREPARE      → START_EXPORT   compute the export window
    START_EXPORT → WAIT_POLL      start the remote export job
    WAIT_POLL    → BRANCH         sleep the poll interval, then poll
    BRANCH       → MOVE_ALL       status COMPLETED
                 → FAIL           status FAILED / CANCELLED / PENDING_CANCEL
                 → WAIT_POLL      still in progress (FAIL once max wait is spent)
    MOVE_ALL     → SUCCEED        list, move, persist manifest

Fatal errors (job start, unknown job, listing, wait timeout, manifest write,
cancellation) move the run to FAIL; nothing already moved is rolled back.
Per-object move failures never fail the run, they are recorded in the
manifest instead.

The run is checkpointed after every transition so a crashed or interrupted
run can be redriven with ``run(run_id=...)`` from its last recorded state.
A failed run remembers the state it failed in and is redriven from there;
the export window is fixed when the run is created.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from uuid_extensions import uuid7

from pylogexport.clients.base import ExportJobClient, ObjectStore
from pylogexport.executor.clock import Clock, SystemClock
from pylogexport.executor.keys import DEFAULT_DESTINATION_PREFIX, staging_root
from pylogexport.executor.mover import DEFAULT_MOVE_CONCURRENCY, MoveExecutor
from pylogexport.models import (
    ExportError,
    Manifest,
    MoveRecord,
    RetryPolicy,
    RunState,
    WaitTimeoutError,
    WorkflowRun,
    resolve_window,
)
from pylogexport.storage.base import RunStore
from pylogexport.storage.manifest import DEFAULT_RESULTS_PREFIX, ManifestWriter
from pylogexport.storage.memory import InMemoryRunStore

logger = logging.getLogger(__name__)

__all__ = [
    "WorkflowEngine",
    "RunCancelledError",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_MAX_WAIT",
    "DEFAULT_STAGING_PREFIX",
]

DEFAULT_POLL_INTERVAL = 60.0
DEFAULT_MAX_WAIT = 24 * 60 * 60.0
DEFAULT_STAGING_PREFIX = "temp"


class RunCancelledError(ExportError):
    """The run was cancelled by its caller."""

    def __init__(self):
        super().__init__("run cancelled")


class WorkflowEngine:
    """Drives export → wait/poll → move for one run at a time.

    All collaborators are injected; the engine reads the current instant
    only from its Clock (or from the ``now`` passed to run()).

    Usage:
        engine = WorkflowEngine(job_client, object_store, poll_interval=60)
        run = await engine.run()
        if not run.succeeded:
            print(run.error)
    """

    def __init__(
        self,
        job_client: ExportJobClient,
        store: ObjectStore,
        *,
        run_store: RunStore | None = None,
        clock: Clock | None = None,
        staging_prefix: str = DEFAULT_STAGING_PREFIX,
        destination_prefix: str = DEFAULT_DESTINATION_PREFIX,
        results_prefix: str = DEFAULT_RESULTS_PREFIX,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_wait: float = DEFAULT_MAX_WAIT,
        concurrency: int = DEFAULT_MOVE_CONCURRENCY,
        retry_policy: RetryPolicy = RetryPolicy.STANDARD,
        mover: MoveExecutor | None = None,
    ):
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {poll_interval}")
        if max_wait < 0:
            raise ValueError(f"max_wait must be >= 0, got {max_wait}")

        self._job_client = job_client
        self._store = store
        self._run_store = run_store or InMemoryRunStore()
        self._clock = clock or SystemClock()
        self._staging_prefix = staging_prefix.rstrip("/")
        self._destination_prefix = destination_prefix.rstrip("/")
        self._poll_interval = poll_interval
        self._max_wait = max_wait
        self._concurrency = concurrency
        self._retry_policy = retry_policy
        self._mover = mover
        self._active_mover: MoveExecutor | None = None
        self._manifests = ManifestWriter(store, results_prefix)
        self._cancelled = asyncio.Event()

        self._handlers: dict[RunState, Callable[[WorkflowRun, datetime], Awaitable[RunState]]] = {
            RunState.PREPARE: self._prepare,
            RunState.START_EXPORT: self._start_export,
            RunState.WAIT_POLL: self._wait_poll,
            RunState.BRANCH: self._branch,
            RunState.MOVE_ALL: self._move_all,
        }

    def __repr__(self) -> str:
        return (
            f"WorkflowEngine(job_client={self._job_client!r}, store={self._store!r}, "
            f"poll_interval={self._poll_interval}, max_wait={self._max_wait})"
        )

    @property
    def run_store(self) -> RunStore:
        return self._run_store

    def cancel(self) -> None:
        """Cancel the current run.

        Polling is abandoned (the remote export job is left alone) and no new
        moves are started; moves already in flight finish normally.
        """
        logger.info("Cancellation requested")
        self._cancelled.set()
        if self._active_mover is not None:
            self._active_mover.cancel()

    async def run(self, now: datetime | None = None, run_id: str | None = None) -> WorkflowRun:
        """Execute a run to a terminal state.

        Args:
            now: Instant a new run is resolved against (defaults to the clock).
                The exported day is the UTC day before it. A redriven run
                keeps the window it was created with.
            run_id: Redrive the checkpointed run with this id, or create a
                run with this id if none is stored. A failed run is reopened
                at the state it failed in.

        Returns:
            The run in SUCCEED or FAIL
        """
        self._cancelled.clear()

        instant = now or self._clock.now()
        run = await self._load_or_create(run_id, instant)
        if run.state == RunState.FAIL and run.failed_state is not None:
            await self._reopen(run)
        if run.is_terminal:
            logger.info(f"Run {run.run_id} already finished in {run.state}, nothing to redrive")
            return run

        await self._drive(run, instant)
        return run

    async def _load_or_create(self, run_id: str | None, now: datetime) -> WorkflowRun:
        if run_id is not None:
            existing = await self._run_store.load_run(run_id)
            if existing is not None:
                logger.info(f"Redriving run {run_id} from {existing.state}")
                return existing
        run = WorkflowRun(run_id=run_id or str(uuid7()), window=resolve_window(now))
        logger.info(f"Starting run {run.run_id} for {run.window.date_prefix}")
        await self._checkpoint(run)
        return run

    async def _reopen(self, run: WorkflowRun) -> None:
        resume = run.failed_state
        if resume == RunState.BRANCH:
            # The recorded job status is stale, observe the job again
            resume = RunState.WAIT_POLL
        if resume == RunState.WAIT_POLL:
            run.waited_seconds = 0.0
        logger.info(f"Reopening run {run.run_id} at {resume} after: {run.error}")
        run.reopen(resume)
        await self._checkpoint(run)

    async def _drive(self, run: WorkflowRun, now: datetime) -> None:
        while not run.is_terminal:
            state = run.state
            try:
                if self._cancelled.is_set():
                    raise RunCancelledError()
                next_state = await self._handlers[state](run, now)
            except ExportError as e:
                logger.error(f"Run {run.run_id} failed in {state}: {e}")
                run.fail(f"{type(e).__name__}: {e}")
            else:
                logger.debug(f"Run {run.run_id}: {state} -> {next_state}")
                if next_state == RunState.FAIL:
                    run.fail(run.error or f"run failed in {state}")
                else:
                    run.transition(next_state)
            await self._checkpoint(run)

        if run.succeeded:
            logger.info(
                f"Run {run.run_id} succeeded: job={run.handle}, "
                f"records={len(run.records)}, manifest={run.manifest_key}"
            )

    async def _checkpoint(self, run: WorkflowRun) -> None:
        try:
            await self._run_store.save_run(run)
        except Exception as e:
            logger.error(f"Failed to checkpoint run {run.run_id} in {run.state}: {e}")

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    async def _prepare(self, run: WorkflowRun, now: datetime) -> RunState:
        if run.window is None:
            run.window = resolve_window(now)
        logger.info(
            f"Export from: {run.window.from_ms} - to: {run.window.to_ms} "
            f"({run.window.date_prefix})"
        )
        return RunState.START_EXPORT

    async def _start_export(self, run: WorkflowRun, now: datetime) -> RunState:
        # A redriven run must never start a second export for the same day
        if run.handle is not None:
            return RunState.WAIT_POLL

        run.handle = await self._job_client.start(run.window, self._staging_prefix)
        logger.info(f"Started export job {run.handle} into {self._staging_prefix}/")
        return RunState.WAIT_POLL

    async def _wait_poll(self, run: WorkflowRun, now: datetime) -> RunState:
        started = self._clock.now()
        await self._sleep_unless_cancelled(self._poll_interval)
        run.waited_seconds += (self._clock.now() - started).total_seconds()

        run.job_status = await self._job_client.poll(run.handle)
        run.polls += 1
        logger.info(f"Export job {run.handle} status: {run.job_status} (poll {run.polls})")
        return RunState.BRANCH

    async def _sleep_unless_cancelled(self, seconds: float) -> None:
        sleeper = asyncio.ensure_future(self._clock.sleep(seconds))
        canceller = asyncio.ensure_future(self._cancelled.wait())
        try:
            await asyncio.wait({sleeper, canceller}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            canceller.cancel()
        if self._cancelled.is_set():
            raise RunCancelledError()

    async def _branch(self, run: WorkflowRun, now: datetime) -> RunState:
        status = run.job_status
        if status is not None and status.is_success:
            return RunState.MOVE_ALL
        if status is not None and status.is_failure:
            run.error = f"export job {run.handle} ended with status {status}"
            logger.error(run.error)
            return RunState.FAIL
        if run.waited_seconds >= self._max_wait:
            raise WaitTimeoutError(run.handle.job_id, run.waited_seconds)
        return RunState.WAIT_POLL

    async def _move_all(self, run: WorkflowRun, now: datetime) -> RunState:
        root = staging_root(self._staging_prefix, run.handle.job_id)
        objects = [obj async for obj in self._store.list_objects(root)]
        logger.info(f"Listed {len(objects)} staging object(s) under {root}")

        mover = self._mover or MoveExecutor(
            self._store,
            destination_prefix=self._destination_prefix,
            concurrency=self._concurrency,
            retry_policy=self._retry_policy,
            clock=self._clock,
        )
        self._active_mover = mover
        if self._cancelled.is_set():
            mover.cancel()
        try:
            records = await mover.move_all(
                objects, root, run.window.date_prefix, claimed=_claimed_destinations(run.records)
            )
        finally:
            self._active_mover = None

        run.records = _merge_records(run.records, records)
        await self._checkpoint(run)

        manifest = Manifest(
            run_id=run.run_id,
            job_id=run.handle.job_id,
            date_prefix=run.window.date_prefix,
            from_ms=run.window.from_ms,
            to_ms=run.window.to_ms,
            records=list(run.records),
        )
        run.manifest_key = await self._manifests.write(manifest)

        if mover.cancelled:
            raise RunCancelledError()
        return RunState.SUCCEED


def _merge_records(previous: list[MoveRecord], current: list[MoveRecord]) -> list[MoveRecord]:
    """Combine records of an earlier attempt with a redriven MOVE_ALL.

    Objects moved by the earlier attempt are no longer listed, so their
    records are kept; anything listed again takes its new outcome.
    """
    if not previous:
        return current
    relisted = {r.source_key for r in current}
    return [r for r in previous if r.source_key not in relisted] + current


def _claimed_destinations(records: list[MoveRecord]) -> dict[str, str]:
    """Destinations an earlier attempt already wrote, mapped to their source.

    A copy that completed owns its destination even when the delete failed,
    so a redriven MOVE_ALL never lets another source overwrite it.
    """
    return {
        r.destination_key: r.source_key
        for r in records
        if r.destination_key is not None and (r.moved or r.stage == "delete")
    }
