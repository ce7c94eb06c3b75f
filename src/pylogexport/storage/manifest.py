"""Durable manifest persistence.

The manifest of a run is written as a single JSON object under the results
prefix of the destination bucket, next to nothing else:

    <results_prefix>/<YYYY/MM/DD>/<job_id>/manifest.json

A run is only considered complete once this write succeeded.
"""

from __future__ import annotations

import logging

from pylogexport.clients.base import ObjectStore
from pylogexport.models import ExportError, Manifest

logger = logging.getLogger(__name__)

__all__ = ["ManifestWriter", "ManifestError", "DEFAULT_RESULTS_PREFIX", "manifest_key"]

DEFAULT_RESULTS_PREFIX = "result-write-logs-for-moving-files"


class ManifestError(ExportError):
    """The manifest could not be persisted."""

    pass


def manifest_key(results_prefix: str, manifest: Manifest) -> str:
    return f"{results_prefix.rstrip('/')}/{manifest.date_prefix}/{manifest.job_id}/manifest.json"


class ManifestWriter:
    """Writes run manifests to an object store."""

    def __init__(self, store: ObjectStore, results_prefix: str = DEFAULT_RESULTS_PREFIX):
        self._store = store
        self._results_prefix = results_prefix

    def __repr__(self) -> str:
        return f"ManifestWriter({self._store!r}, results_prefix={self._results_prefix!r})"

    async def write(self, manifest: Manifest) -> str:
        """Persist ``manifest`` and return the key it was written to.

        Raises:
            ManifestError: If the object store rejects the write
        """
        key = manifest_key(self._results_prefix, manifest)
        try:
            await self._store.put_object(key, manifest.to_json().encode("utf-8"), "application/json")
        except ExportError as e:
            raise ManifestError(f"Failed to write manifest {key}: {e}") from e

        summary = manifest.summary()
        logger.info(
            f"Manifest written: {key} (moved={summary['moved']}, failed={summary['failed']})"
        )
        return key
