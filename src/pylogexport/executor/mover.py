"""Bounded-concurrency copy-then-delete of staging objects.

Every staging object is moved independently:

1. compute its final key
2. copy source → destination (retried while the error is transient)
3. delete the source (retried while the error is transient)

Failures are contained per object and recorded in the returned list; one
object's failure never aborts the others. Each object's outcome is written
to the slot of its listing index, so workers share no state beyond their
own slot and the concurrency semaphore.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence

from pylogexport.clients.base import ObjectStore
from pylogexport.executor.clock import Clock, SystemClock
from pylogexport.executor.keys import DEFAULT_DESTINATION_PREFIX, transform_key
from pylogexport.models import MoveRecord, RetryPolicy, StagingObject, is_retryable

logger = logging.getLogger(__name__)

__all__ = ["MoveExecutor", "DEFAULT_MOVE_CONCURRENCY"]

DEFAULT_MOVE_CONCURRENCY = 1000


class _OperationFailed(Exception):
    def __init__(self, stage: str, attempts: int, error: Exception):
        super().__init__(f"{stage} failed after {attempts} attempt(s): {error}")
        self.stage = stage
        self.attempts = attempts
        self.error = error


class MoveExecutor:
    """Moves staging objects to their final keys with a bounded worker pool.

    At most ``concurrency`` copy/delete pairs are in flight at any time.
    Completion order is unspecified; records come back in listing order.

    Usage:
        executor = MoveExecutor(store, concurrency=100)
        records = await executor.move_all(objects, "temp/job-1/", "2024/06/14")
    """

    def __init__(
        self,
        store: ObjectStore,
        *,
        destination_prefix: str = DEFAULT_DESTINATION_PREFIX,
        concurrency: int = DEFAULT_MOVE_CONCURRENCY,
        retry_policy: RetryPolicy = RetryPolicy.STANDARD,
        clock: Clock | None = None,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self._store = store
        self._destination_prefix = destination_prefix
        self._concurrency = concurrency
        self._retry_policy = retry_policy
        self._clock = clock or SystemClock()
        self._cancelled = asyncio.Event()

    def __repr__(self) -> str:
        return (
            f"MoveExecutor(store={self._store!r}, concurrency={self._concurrency}, "
            f"retry_policy={self._retry_policy!r})"
        )

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop starting new moves. Moves already in flight run to completion."""
        self._cancelled.set()

    def plan(
        self,
        objects: Sequence[StagingObject],
        root: str,
        date_prefix: str,
        claimed: Mapping[str, str] | None = None,
    ) -> tuple[list[tuple[int, StagingObject, str]], dict[int, MoveRecord]]:
        """Resolve final keys and reject objects that cannot be moved safely.

        Args:
            claimed: Destinations already written by an earlier attempt,
                mapped to the source that wrote them

        Returns:
            (moves, rejected): moves as (index, object, destination) and
            FAILED records for keys outside the root or colliding with an
            earlier key's destination, indexed by listing position
        """
        moves: list[tuple[int, StagingObject, str]] = []
        rejected: dict[int, MoveRecord] = {}
        claimed = dict(claimed or {})

        for index, obj in enumerate(objects):
            try:
                destination = transform_key(obj.key, root, date_prefix, self._destination_prefix)
            except ValueError as e:
                rejected[index] = MoveRecord.failure(obj.key, None, stage="transform", reason=str(e))
                continue

            owner = claimed.get(destination)
            if owner is not None and owner != obj.key:
                logger.warning(f"Destination collision: {obj.key} and {owner} -> {destination}")
                rejected[index] = MoveRecord.failure(
                    obj.key,
                    destination,
                    stage="collision",
                    reason=f"destination already claimed by {owner}",
                )
                continue

            claimed[destination] = obj.key
            moves.append((index, obj, destination))

        return moves, rejected

    async def move_all(
        self,
        objects: Sequence[StagingObject],
        root: str,
        date_prefix: str,
        claimed: Mapping[str, str] | None = None,
    ) -> list[MoveRecord]:
        """Move every object; return exactly one record per object."""
        objects = list(objects)
        slots: list[MoveRecord | None] = [None] * len(objects)

        moves, rejected = self.plan(objects, root, date_prefix, claimed)
        for index, record in rejected.items():
            slots[index] = record

        sem = asyncio.Semaphore(self._concurrency)

        async def worker(index: int, obj: StagingObject, destination: str) -> None:
            async with sem:
                if self._cancelled.is_set():
                    slots[index] = MoveRecord.failure(
                        obj.key, destination, stage="cancelled", reason="run cancelled before move"
                    )
                    return
                slots[index] = await self._move_one(obj, destination)

        logger.info(
            f"Moving {len(moves)} object(s) from {root} "
            f"(rejected={len(rejected)}, concurrency={self._concurrency})"
        )
        await asyncio.gather(*(worker(i, obj, dest) for i, obj, dest in moves))

        records = [r for r in slots if r is not None]
        failed = sum(1 for r in records if not r.moved)
        logger.info(f"Moved {len(records) - failed}/{len(records)} object(s), {failed} failed")
        return records

    async def _move_one(self, obj: StagingObject, destination: str) -> MoveRecord:
        try:
            copy_attempts = await self._attempt(
                "copy", obj.key, lambda: self._store.copy_object(obj.key, destination)
            )
            delete_attempts = await self._attempt(
                "delete", obj.key, lambda: self._store.delete_object(obj.key)
            )
        except _OperationFailed as e:
            logger.warning(f"Failed to move {obj.key}: {e}")
            return MoveRecord.failure(
                obj.key,
                destination,
                stage=e.stage,
                reason=f"{type(e.error).__name__}: {e.error}",
                attempts=e.attempts,
            )

        return MoveRecord.success(obj.key, destination, copy_attempts + delete_attempts)

    async def _attempt(
        self, stage: str, key: str, call: Callable[[], Awaitable[None]]
    ) -> int:
        """Run ``call`` under the retry policy; return the number of attempts used."""
        attempt = 0
        while True:
            attempt += 1
            try:
                await call()
                return attempt
            except Exception as e:
                if not is_retryable(e):
                    raise _OperationFailed(stage, attempt, e) from e
                delay_ms = self._retry_policy.delay_for_attempt(attempt)
                if delay_ms is None:
                    raise _OperationFailed(stage, attempt, e) from e
                logger.debug(f"Retrying {stage} of {key} after {delay_ms}ms (attempt {attempt}): {e}")
                await self._clock.sleep(delay_ms / 1000.0)
