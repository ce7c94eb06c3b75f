"""
Executor module - Runtime engine for the export workflow.

This module contains the execution components:
- engine: WorkflowEngine state machine (prepare, export, wait/poll, move)
- mover: MoveExecutor bounded-concurrency copy-then-delete
- keys: staging key → final key transformation
- clock: injectable time source
"""

from pylogexport.executor.clock import Clock, SystemClock
from pylogexport.executor.engine import (
    DEFAULT_MAX_WAIT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_STAGING_PREFIX,
    RunCancelledError,
    WorkflowEngine,
)
from pylogexport.executor.keys import DEFAULT_DESTINATION_PREFIX, staging_root, transform_key
from pylogexport.executor.mover import DEFAULT_MOVE_CONCURRENCY, MoveExecutor

__all__ = [
    # Engine
    "WorkflowEngine",
    "RunCancelledError",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_MAX_WAIT",
    "DEFAULT_STAGING_PREFIX",
    # Moves
    "MoveExecutor",
    "DEFAULT_MOVE_CONCURRENCY",
    # Keys
    "transform_key",
    "staging_root",
    "DEFAULT_DESTINATION_PREFIX",
    # Time
    "Clock",
    "SystemClock",
]
