"""Backends for the export service and the object store.

Provides multiple implementations behind common interfaces:
    - ExportJobClient / ObjectStore: Abstract interfaces
    - InMemoryExportJobClient / InMemoryObjectStore: In-memory fakes
    - CloudWatchLogsExportClient / S3ObjectStore: AWS bindings (boto3)
"""

from pylogexport.clients.base import ExportJobClient, ObjectStore, parse_job_status
from pylogexport.clients.memory import InMemoryExportJobClient, InMemoryObjectStore

# boto3 is only imported when an AWS binding is requested


def __getattr__(name: str):
    """Lazy import AWS bindings so the in-memory backends work without boto3 loaded."""
    if name == "CloudWatchLogsExportClient":
        from pylogexport.clients.aws import CloudWatchLogsExportClient

        return CloudWatchLogsExportClient
    elif name == "S3ObjectStore":
        from pylogexport.clients.aws import S3ObjectStore

        return S3ObjectStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "ExportJobClient",
    "ObjectStore",
    "parse_job_status",
    "InMemoryExportJobClient",
    "InMemoryObjectStore",
    "CloudWatchLogsExportClient",
    "S3ObjectStore",
]
