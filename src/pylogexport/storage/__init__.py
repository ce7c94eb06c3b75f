"""Storage backends for run checkpoints and manifests.

Provides multiple implementations behind a common interface:
    - RunStore: Abstract interface
    - SqliteRunStore: SQLite-backed durable checkpoints
    - InMemoryRunStore: In-memory checkpoints for testing
    - ManifestWriter: Manifest persistence to the object store

Design: Adapter Pattern + Dependency Inversion (SOLID)
    The engine depends on RunStore, not on a concrete backend.
"""

from pylogexport.storage.base import RunStore, StorageError
from pylogexport.storage.manifest import ManifestError, ManifestWriter

# Lazy imports keep aiosqlite out of processes that only use memory storage


def __getattr__(name: str):
    """Lazy import storage implementations."""
    if name == "InMemoryRunStore":
        from pylogexport.storage.memory import InMemoryRunStore

        return InMemoryRunStore
    elif name == "SqliteRunStore":
        from pylogexport.storage.sqlite import SqliteRunStore

        return SqliteRunStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "RunStore",
    "StorageError",
    "ManifestWriter",
    "ManifestError",
    "SqliteRunStore",
    "InMemoryRunStore",
]
