"""
pylogexport: daily log-export orchestration.

Design Pattern: Façade Pattern
This module provides a simplified interface to the export workflow,
hiding the state machine, the move worker pool and the storage backends.

Once per day the workflow exports the previous UTC day of a log group into
a staging prefix, waits for the export job to finish, then moves every
exported object to its final key under a date prefix and records each
outcome in a manifest.

Example:
    ```python
    import asyncio
    from datetime import datetime, UTC
    from pylogexport import (
        InMemoryExportJobClient,
        InMemoryObjectStore,
        WorkflowEngine,
    )

    async def main():
        store = InMemoryObjectStore()
        client = InMemoryExportJobClient(
            ["RUNNING", "COMPLETED"], store=store, outputs=["000000.gz"]
        )
        engine = WorkflowEngine(client, store, poll_interval=1)

        run = await engine.run(now=datetime(2024, 6, 15, 1, tzinfo=UTC))
        print(run.state, run.manifest_key)

    asyncio.run(main())
    ```
"""

# Core types
from pylogexport.models import (
    ExportError,
    ExportJobHandle,
    ExportJobStatus,
    ExportWindow,
    JobNotFoundError,
    JobStartError,
    ListError,
    Manifest,
    MoveOutcome,
    MoveRecord,
    ObjectStoreError,
    RetryableError,
    RetryPolicy,
    RunState,
    StagingObject,
    WaitTimeoutError,
    WorkflowRun,
    parse_current_date,
    resolve_window,
)

# Clients (Adapter pattern)
from pylogexport.clients import (
    ExportJobClient,
    InMemoryExportJobClient,
    InMemoryObjectStore,
    ObjectStore,
)

# Storage (Adapter pattern)
from pylogexport.storage import (
    InMemoryRunStore,
    ManifestError,
    ManifestWriter,
    RunStore,
    StorageError,
)

# Execution
from pylogexport.executor import (
    Clock,
    MoveExecutor,
    RunCancelledError,
    SystemClock,
    WorkflowEngine,
    transform_key,
)

# Configuration and entry point
from pylogexport.config import ConfigError, Settings
from pylogexport.trigger import handler, run_export

# Version
__version__ = "0.1.0"

__all__ = [
    # Core types
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
    "WorkflowRun",
    "RetryPolicy",
    "RetryableError",
    # Errors
    "ExportError",
    "JobStartError",
    "JobNotFoundError",
    "ListError",
    "ObjectStoreError",
    "WaitTimeoutError",
    "ManifestError",
    "StorageError",
    "ConfigError",
    "RunCancelledError",
    # Clients
    "ExportJobClient",
    "ObjectStore",
    "InMemoryExportJobClient",
    "InMemoryObjectStore",
    # Storage
    "RunStore",
    "InMemoryRunStore",
    "ManifestWriter",
    # Execution
    "WorkflowEngine",
    "MoveExecutor",
    "transform_key",
    "Clock",
    "SystemClock",
    # Configuration and entry point
    "Settings",
    "handler",
    "run_export",
    # Metadata
    "__version__",
]
