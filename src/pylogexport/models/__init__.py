"""Core data models for the export workflow.

Defines the export window, job and run statuses, move records, the run
aggregate, retry behavior and the error hierarchy.

Design: Dependency-Free Models
These types have no dependencies on clients, executor or storage modules
to prevent circular imports and enable clean layering.
"""

from pylogexport.models.errors import (
    ExportError,
    JobNotFoundError,
    JobStartError,
    ListError,
    ObjectStoreError,
    WaitTimeoutError,
)
from pylogexport.models.records import (
    MANIFEST_FORMAT,
    ExportJobHandle,
    Manifest,
    MoveOutcome,
    MoveRecord,
    StagingObject,
)
from pylogexport.models.retry import RetryableError, RetryPolicy, is_retryable
from pylogexport.models.run import WorkflowRun
from pylogexport.models.status import ExportJobStatus, RunState
from pylogexport.models.window import ExportWindow, parse_current_date, resolve_window

__all__ = [
    "ExportWindow",
    "resolve_window",
    "parse_current_date",
    "ExportJobStatus",
    "RunState",
    "ExportJobHandle",
    "StagingObject",
    "MoveOutcome",
    "MoveRecord",
    "Manifest",
    "MANIFEST_FORMAT",
    "WorkflowRun",
    "RetryPolicy",
    "RetryableError",
    "is_retryable",
    "ExportError",
    "JobStartError",
    "JobNotFoundError",
    "ListError",
    "ObjectStoreError",
    "WaitTimeoutError",
]
