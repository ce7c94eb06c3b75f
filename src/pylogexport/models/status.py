"""Status enumerations for export jobs and workflow runs.

Defines the lifecycle states reported by the remote export service and
the states of the workflow engine that drives it.
"""

from enum import Enum


class ExportJobStatus(Enum):
    """Status of a remote export job.

    Lifecycle:
        PENDING → RUNNING → COMPLETED | FAILED | CANCELLED | PENDING_CANCEL

    Transitions are monotonic: once a terminal status is reported the job
    never goes back to an in-progress status.
    """

    PENDING = "PENDING"
    """Job accepted, not started yet."""

    RUNNING = "RUNNING"
    """Job is writing objects to the staging prefix."""

    COMPLETED = "COMPLETED"
    """All objects were written."""

    FAILED = "FAILED"
    """Job failed; nothing usable was produced."""

    CANCELLED = "CANCELLED"
    """Job was cancelled."""

    PENDING_CANCEL = "PENDING_CANCEL"
    """Cancellation was requested. Treated as a terminal failure."""

    @property
    def is_success(self) -> bool:
        return self == ExportJobStatus.COMPLETED

    @property
    def is_failure(self) -> bool:
        return self in (
            ExportJobStatus.FAILED,
            ExportJobStatus.CANCELLED,
            ExportJobStatus.PENDING_CANCEL,
        )

    @property
    def is_terminal(self) -> bool:
        """Check if polling can stop."""
        return self.is_success or self.is_failure

    def __str__(self) -> str:
        return self.value


class RunState(Enum):
    """State of a workflow run.

    Lifecycle:
        PREPARE → START_EXPORT → WAIT_POLL → BRANCH → (WAIT_POLL ...)
        → MOVE_ALL → SUCCEED, or → FAIL from any non-terminal state.
    """

    PREPARE = "PREPARE"
    START_EXPORT = "START_EXPORT"
    WAIT_POLL = "WAIT_POLL"
    BRANCH = "BRANCH"
    MOVE_ALL = "MOVE_ALL"
    SUCCEED = "SUCCEED"
    FAIL = "FAIL"

    @property
    def is_terminal(self) -> bool:
        """Check if this state is terminal (no more work needed)."""
        return self in (RunState.SUCCEED, RunState.FAIL)

    def __str__(self) -> str:
        return self.value
