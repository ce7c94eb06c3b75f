"""Workflow run aggregate.

One WorkflowRun exists per daily invocation. The engine mutates it stage by
stage and checkpoints it to a RunStore, so a run interrupted mid-way can be
redriven from its last recorded state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from pylogexport.models.records import ExportJobHandle, MoveRecord
from pylogexport.models.status import ExportJobStatus, RunState
from pylogexport.models.window import ExportWindow

__all__ = ["WorkflowRun"]


@dataclass
class WorkflowRun:
    """Mutable state of one export run."""

    run_id: str
    """Unique identifier of this run (uuid7 string)."""

    state: RunState = RunState.PREPARE
    """Current engine state."""

    window: ExportWindow | None = None
    """Day being exported, set by PREPARE."""

    handle: ExportJobHandle | None = None
    """Export job handle, set by START_EXPORT."""

    job_status: ExportJobStatus | None = None
    """Last status observed by WAIT_POLL."""

    polls: int = 0
    """Number of status polls performed."""

    waited_seconds: float = 0.0
    """Total time spent in WAIT_POLL sleeps."""

    records: list[MoveRecord] = field(default_factory=list)
    """Move outcomes, filled by MOVE_ALL."""

    manifest_key: str | None = None
    """Object key of the persisted manifest, once written."""

    error: str | None = None
    """Reason for a FAIL transition."""

    failed_state: RunState | None = None
    """State the run was in when it failed; a redrive resumes from here."""

    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def succeeded(self) -> bool:
        return self.state == RunState.SUCCEED

    def transition(self, state: RunState) -> None:
        self.state = state
        self.updated_at = datetime.now(UTC)

    def fail(self, error: str) -> None:
        self.error = error
        self.failed_state = self.state
        self.transition(RunState.FAIL)

    def reopen(self, state: RunState) -> None:
        """Move a failed run back to a non-terminal state for redrive."""
        if self.state != RunState.FAIL:
            raise ValueError(f"only failed runs can be reopened, run is {self.state}")
        if state.is_terminal:
            raise ValueError(f"cannot reopen into terminal state {state}")
        self.error = None
        self.failed_state = None
        self.transition(state)

    def to_dict(self) -> dict:
        return {
            "runId": self.run_id,
            "state": self.state.value,
            "window": self.window.to_dict() if self.window else None,
            "jobId": self.handle.job_id if self.handle else None,
            "jobStatus": self.job_status.value if self.job_status else None,
            "polls": self.polls,
            "waitedSeconds": self.waited_seconds,
            "records": [r.to_dict() for r in self.records],
            "manifestKey": self.manifest_key,
            "error": self.error,
            "failedState": self.failed_state.value if self.failed_state else None,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> WorkflowRun:
        return cls(
            run_id=data["runId"],
            state=RunState(data["state"]),
            window=ExportWindow.from_dict(data["window"]) if data.get("window") else None,
            handle=ExportJobHandle(data["jobId"]) if data.get("jobId") else None,
            job_status=ExportJobStatus(data["jobStatus"]) if data.get("jobStatus") else None,
            polls=data.get("polls", 0),
            waited_seconds=data.get("waitedSeconds", 0.0),
            records=[MoveRecord.from_dict(r) for r in data.get("records", [])],
            manifest_key=data.get("manifestKey"),
            error=data.get("error"),
            failed_state=RunState(data["failedState"]) if data.get("failedState") else None,
            created_at=datetime.fromisoformat(data["createdAt"]),
            updated_at=datetime.fromisoformat(data["updatedAt"]),
        )

    def __repr__(self) -> str:
        return (
            f"WorkflowRun(run_id={self.run_id!r}, state={self.state}, "
            f"job_id={self.handle.job_id if self.handle else None!r}, "
            f"job_status={self.job_status}, polls={self.polls})"
        )
