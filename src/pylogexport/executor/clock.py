"""Injectable time source.

The engine never calls ``datetime.now()`` or ``asyncio.sleep()`` directly;
it asks its Clock. Tests substitute a clock that advances instantly so the
poll loop and retry backoff run without real timers.
"""

import asyncio
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

__all__ = ["Clock", "SystemClock"]


@runtime_checkable
class Clock(Protocol):
    def now(self) -> datetime:
        """Current instant, timezone-aware UTC."""
        ...

    async def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    """Wall clock backed by the event loop."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def __repr__(self) -> str:
        return "SystemClock"
