"""
Tests for the move executor.

Each test verifies one aspect of per-object copy-then-delete:
- every object gets exactly one record, in listing order
- Moved ⇒ destination present and source gone; Failed ⇒ source untouched
- transient errors are retried, permanent errors are not
- collisions and keys outside the root are refused
- cancellation and the concurrency limit
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from pylogexport.clients import InMemoryObjectStore
from pylogexport.executor import MoveExecutor
from pylogexport.models import MoveOutcome, ObjectStoreError, RetryPolicy, StagingObject

from conftest import FakeClock, TrackingObjectStore

ROOT = "temp/job-1/"
DAY = "2024/06/14"


def staged(store: InMemoryObjectStore, *names: str) -> list[StagingObject]:
    objects = []
    for name in names:
        key = ROOT + name
        store.objects[key] = f"data:{name}".encode()
        objects.append(StagingObject(key=key))
    return objects


def make_executor(store, clock=None, **kwargs) -> MoveExecutor:
    kwargs.setdefault("concurrency", 10)
    return MoveExecutor(store, clock=clock or FakeClock(), **kwargs)


@pytest.mark.asyncio
async def test_moves_every_object(object_store, clock):
    objects = staged(object_store, "s1/000000.gz", "s1/000001.gz", "s2/000000.gz")

    records = await make_executor(object_store, clock).move_all(objects, ROOT, DAY)

    assert [r.source_key for r in records] == [o.key for o in objects]
    assert all(r.outcome == MoveOutcome.MOVED for r in records)
    assert object_store.objects == {
        "exported-logs/2024/06/14/s1-000000.gz": b"data:s1/000000.gz",
        "exported-logs/2024/06/14/s1-000001.gz": b"data:s1/000001.gz",
        "exported-logs/2024/06/14/s2-000000.gz": b"data:s2/000000.gz",
    }
    assert [r.attempts for r in records] == [2, 2, 2]
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_empty_listing_returns_no_records(object_store):
    assert await make_executor(object_store).move_all([], ROOT, DAY) == []


@pytest.mark.asyncio
async def test_transient_copy_error_is_retried(object_store, clock):
    [obj] = staged(object_store, "a.gz")
    object_store.faults[("copy", obj.key)] = [
        ObjectStoreError.throttled(obj.key),
        ObjectStoreError.throttled(obj.key),
    ]

    [record] = await make_executor(object_store, clock).move_all([obj], ROOT, DAY)

    assert record.moved
    assert record.attempts == 4  # three copies, one delete
    assert clock.sleeps == [0.2, 0.4]
    assert obj.key not in object_store.objects


@pytest.mark.asyncio
async def test_transient_errors_exhaust_retry_policy(object_store, clock):
    [obj] = staged(object_store, "a.gz")
    object_store.faults[("copy", obj.key)] = [ObjectStoreError.throttled(obj.key)] * 5

    [record] = await make_executor(object_store, clock).move_all([obj], ROOT, DAY)

    assert record.outcome == MoveOutcome.FAILED
    assert record.stage == "copy"
    assert record.attempts == 3
    assert record.reason.startswith("ObjectStoreError: request throttled")
    assert obj.key in object_store.objects
    assert record.destination_key not in object_store.objects


@pytest.mark.asyncio
async def test_permanent_error_is_not_retried(object_store, clock):
    bad, good = staged(object_store, "bad.gz", "good.gz")
    object_store.faults[("copy", bad.key)] = [ObjectStoreError.access_denied(bad.key)]

    records = await make_executor(object_store, clock).move_all([bad, good], ROOT, DAY)

    assert records[0].outcome == MoveOutcome.FAILED
    assert records[0].stage == "copy"
    assert records[0].attempts == 1
    assert records[1].moved
    assert clock.sleeps == []
    # Failed ⇒ source untouched
    assert object_store.objects[bad.key] == b"data:bad.gz"


@pytest.mark.asyncio
async def test_retry_policy_none_gives_single_attempt(object_store, clock):
    [obj] = staged(object_store, "a.gz")
    object_store.faults[("copy", obj.key)] = [ObjectStoreError.throttled(obj.key)]

    executor = make_executor(object_store, clock, retry_policy=RetryPolicy.NONE)
    [record] = await executor.move_all([obj], ROOT, DAY)

    assert not record.moved
    assert record.attempts == 1


@pytest.mark.asyncio
async def test_errors_without_retry_verdict_are_retried(object_store, clock):
    [obj] = staged(object_store, "a.gz")
    object_store.faults[("copy", obj.key)] = [ConnectionResetError("reset by peer")]

    [record] = await make_executor(object_store, clock).move_all([obj], ROOT, DAY)

    assert record.moved
    assert record.attempts == 3


@pytest.mark.asyncio
async def test_delete_failure_keeps_source(object_store, clock):
    [obj] = staged(object_store, "a.gz")
    object_store.faults[("delete", obj.key)] = [ObjectStoreError.access_denied(obj.key)]

    [record] = await make_executor(object_store, clock).move_all([obj], ROOT, DAY)

    assert record.outcome == MoveOutcome.FAILED
    assert record.stage == "delete"
    assert obj.key in object_store.objects


@pytest.mark.asyncio
async def test_missing_source_fails_permanently(object_store, clock):
    ghost = StagingObject(key=ROOT + "ghost.gz")

    [record] = await make_executor(object_store, clock).move_all([ghost], ROOT, DAY)

    assert record.stage == "copy"
    assert record.attempts == 1
    assert object_store.objects == {}


@pytest.mark.asyncio
async def test_colliding_destinations_are_not_overwritten(object_store, clock):
    first, second = staged(object_store, "a-b/c", "a/b-c")

    records = await make_executor(object_store, clock).move_all([first, second], ROOT, DAY)

    assert records[0].moved
    assert records[1].outcome == MoveOutcome.FAILED
    assert records[1].stage == "collision"
    assert records[1].destination_key == records[0].destination_key
    assert object_store.objects[records[0].destination_key] == b"data:a-b/c"
    assert object_store.objects[second.key] == b"data:a/b-c"
    assert ("copy", second.key) not in object_store.calls


@pytest.mark.asyncio
async def test_destination_claimed_earlier_is_not_overwritten(object_store, clock):
    [loser] = staged(object_store, "a-b/c")
    destination = f"exported-logs/{DAY}/a-b-c"
    object_store.objects[destination] = b"data:a/b-c"

    [record] = await make_executor(object_store, clock).move_all(
        [loser], ROOT, DAY, claimed={destination: ROOT + "a/b-c"}
    )

    assert record.stage == "collision"
    assert record.reason == f"destination already claimed by {ROOT}a/b-c"
    assert object_store.objects[destination] == b"data:a/b-c"
    assert object_store.calls == []


@pytest.mark.asyncio
async def test_source_may_rewrite_its_own_claimed_destination(object_store, clock):
    [obj] = staged(object_store, "a.gz")
    destination = f"exported-logs/{DAY}/a.gz"

    [record] = await make_executor(object_store, clock).move_all(
        [obj], ROOT, DAY, claimed={destination: obj.key}
    )

    assert record.moved
    assert object_store.objects == {destination: b"data:a.gz"}


@pytest.mark.asyncio
async def test_key_outside_root_is_recorded_failed(object_store, clock):
    object_store.objects["other/x.gz"] = b"x"
    stray = StagingObject(key="other/x.gz")

    [record] = await make_executor(object_store, clock).move_all([stray], ROOT, DAY)

    assert record.stage == "transform"
    assert record.destination_key is None
    assert object_store.objects == {"other/x.gz": b"x"}


@pytest.mark.asyncio
async def test_cancel_before_start_records_cancelled(object_store, clock):
    objects = staged(object_store, "a.gz", "b.gz")
    executor = make_executor(object_store, clock)
    executor.cancel()

    records = await executor.move_all(objects, ROOT, DAY)

    assert executor.cancelled
    assert [r.stage for r in records] == ["cancelled", "cancelled"]
    assert object_store.calls == []


@pytest.mark.concurrency
@pytest.mark.asyncio
async def test_cancel_mid_run_lets_in_flight_moves_finish(clock):
    store = TrackingObjectStore()
    objects = staged(store, *(f"{i:03d}.gz" for i in range(20)))
    executor = make_executor(store, clock, concurrency=2)

    passthrough_copy = store.copy_object
    copies = 0

    async def cancelling_copy(source_key, destination_key):
        nonlocal copies
        copies += 1
        if copies == 3:
            executor.cancel()
        await passthrough_copy(source_key, destination_key)

    store.copy_object = cancelling_copy

    records = await executor.move_all(objects, ROOT, DAY)

    moved = [r for r in records if r.moved]
    cancelled = [r for r in records if r.stage == "cancelled"]
    assert len(records) == 20
    assert len(moved) == 3
    assert len(cancelled) == 17
    for record in cancelled:
        assert record.source_key in store.objects


@pytest.mark.concurrency
@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [1, 4, 16])
async def test_concurrency_limit_is_respected(clock, limit):
    store = TrackingObjectStore()
    objects = staged(store, *(f"{i:03d}.gz" for i in range(60)))

    records = await make_executor(store, clock, concurrency=limit).move_all(objects, ROOT, DAY)

    assert all(r.moved for r in records)
    assert store.max_in_flight <= limit
    assert store.max_in_flight == limit
    assert store.in_flight == 0


def test_concurrency_must_be_positive(object_store):
    with pytest.raises(ValueError):
        MoveExecutor(object_store, concurrency=0)


@pytest.mark.property
@pytest.mark.asyncio
@given(
    names=st.sets(st.text(alphabet="abcdef", min_size=1, max_size=6), min_size=0, max_size=25),
    faults=st.lists(st.sampled_from(["ok", "throttled", "denied"]), min_size=25, max_size=25),
)
@settings(max_examples=50, deadline=None)
async def test_exactly_one_outcome_per_object(names, faults):
    """
    Property: every listed object gets exactly one record, and each record
    agrees with the store: Moved ⇒ destination exists and source gone,
    Failed ⇒ source untouched.
    """
    store = InMemoryObjectStore()
    objects = staged(store, *sorted(names))
    for obj, fault in zip(objects, faults):
        if fault == "throttled":
            store.faults[("copy", obj.key)] = [ObjectStoreError.throttled(obj.key)]
        elif fault == "denied":
            store.faults[("copy", obj.key)] = [ObjectStoreError.access_denied(obj.key)]

    records = await make_executor(store, FakeClock(), concurrency=3).move_all(objects, ROOT, DAY)

    assert len(records) == len(objects)
    assert [r.source_key for r in records] == [o.key for o in objects]
    for record in records:
        if record.moved:
            assert record.destination_key in store.objects
            assert record.source_key not in store.objects
        else:
            assert record.source_key in store.objects
