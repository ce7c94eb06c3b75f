"""In-memory run store.

Design Pattern: Adapter Pattern
InMemoryRunStore adapts a dictionary to the RunStore interface.

Instance is immediately usable after __init__.
"""

from __future__ import annotations

import asyncio

from pylogexport.models import WorkflowRun
from pylogexport.storage.base import RunStore


class InMemoryRunStore(RunStore):
    """In-memory checkpoints for tests and single-process runs.

    Runs are stored as serialized dictionaries so a loaded run never
    aliases the engine's live object.

    Usage:
        store = InMemoryRunStore()
        await store.save_run(run)
    """

    def __init__(self):
        self._runs: dict[str, dict] = {}
        self._lock = asyncio.Lock()
        self.saves = 0

    def __repr__(self) -> str:
        return "InMemoryRunStore"

    async def save_run(self, run: WorkflowRun) -> None:
        async with self._lock:
            self._runs[run.run_id] = run.to_dict()
            self.saves += 1

    async def load_run(self, run_id: str) -> WorkflowRun | None:
        async with self._lock:
            data = self._runs.get(run_id)
        return WorkflowRun.from_dict(data) if data is not None else None

    async def list_incomplete_runs(self) -> list[WorkflowRun]:
        async with self._lock:
            runs = [WorkflowRun.from_dict(d) for d in self._runs.values()]
        return [r for r in runs if not r.is_terminal]

    async def reset(self) -> None:
        """Clear all data."""
        async with self._lock:
            self._runs.clear()
            self.saves = 0
