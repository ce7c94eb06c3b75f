"""
RunStore protocol - Abstract interface for run checkpoint backends.

Design Pattern: Adapter Pattern
RunStore defines the target interface that every checkpoint backend
implements. The workflow engine depends on this abstraction only, which
allows running with InMemoryRunStore in tests and SqliteRunStore in
production without changing engine code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pylogexport.models import ExportError, WorkflowRun


class StorageError(ExportError):
    """
    Run store operation failed.
    """

    pass


class RunStore(ABC):
    """
    Abstract checkpoint storage for workflow runs.

    The engine saves the run after every stage transition. A run loaded
    back from the store carries enough state (window, job handle, state)
    to be redriven from its most recent incomplete stage.
    """

    @abstractmethod
    async def save_run(self, run: WorkflowRun) -> None:
        """
        Insert or replace the checkpoint of ``run``.

        Raises:
            StorageError: If the checkpoint cannot be written
        """
        pass

    @abstractmethod
    async def load_run(self, run_id: str) -> WorkflowRun | None:
        """
        Load a run checkpoint.

        Returns:
            WorkflowRun if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_incomplete_runs(self) -> list[WorkflowRun]:
        """
        Return every run that has not reached a terminal state.

        Used by operators to find runs that need a redrive.
        """
        pass

    async def close(self) -> None:
        """Release backend resources. Default is a no-op."""
        pass
