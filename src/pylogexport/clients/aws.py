"""AWS bindings: CloudWatch Logs export tasks and S3 objects.

boto3 clients are synchronous, so every call is pushed onto a worker thread
with ``asyncio.to_thread`` to keep the event loop free while hundreds of
copy/delete pairs are in flight.

Error mapping:
- CloudWatch Logs: failures to create a task become JobStartError, unknown
  task ids become JobNotFoundError.
- S3: failures become ObjectStoreError, classified transient (throttling,
  5xx, connection problems) or permanent (missing object, access denied).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from pylogexport.clients.base import ExportJobClient, ObjectStore, parse_job_status
from pylogexport.models import (
    ExportError,
    ExportJobHandle,
    ExportJobStatus,
    ExportWindow,
    JobNotFoundError,
    JobStartError,
    ListError,
    ObjectStoreError,
    StagingObject,
)

logger = logging.getLogger(__name__)

__all__ = ["CloudWatchLogsExportClient", "S3ObjectStore", "classify_client_error"]

PERMANENT_CODES = frozenset(
    {
        "NoSuchKey",
        "NotFound",
        "404",
        "NoSuchBucket",
        "AccessDenied",
        "403",
        "InvalidObjectState",
        "InvalidRequest",
    }
)

TRANSIENT_CODES = frozenset(
    {
        "SlowDown",
        "Throttling",
        "ThrottlingException",
        "RequestTimeout",
        "RequestTimeTooSkewed",
        "InternalError",
        "ServiceUnavailable",
        "503",
        "500",
    }
)


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def classify_client_error(error: Exception, key: str) -> ObjectStoreError:
    """Convert a botocore error into an ObjectStoreError with a retry verdict."""
    if isinstance(error, ClientError):
        code = _error_code(error)
        if code in PERMANENT_CODES:
            retryable = False
        elif code in TRANSIENT_CODES:
            retryable = True
        else:
            status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
            retryable = status == 429 or status >= 500
        return ObjectStoreError(f"{code or 'ClientError'}: {key}: {error}", code=code, retryable=retryable)

    # Connection resets, read timeouts and the like
    return ObjectStoreError(f"{type(error).__name__}: {key}: {error}", retryable=True)


def _client_config(max_pool_connections: int = 10, total_max_attempts: int = 3) -> Config:
    return Config(
        retries={"total_max_attempts": total_max_attempts, "mode": "standard"},
        max_pool_connections=max_pool_connections,
    )


class CloudWatchLogsExportClient(ExportJobClient):
    """Export client backed by CloudWatch Logs export tasks.

    Usage:
        client = CloudWatchLogsExportClient("/app/prod", "my-export-bucket")
        handle = await client.start(window, "temp")
        status = await client.poll(handle)
    """

    def __init__(
        self,
        log_group_name: str,
        destination_bucket: str,
        *,
        client: Any = None,
        region_name: str | None = None,
    ):
        self.log_group_name = log_group_name
        self.destination_bucket = destination_bucket
        self._client = client or boto3.client(
            "logs", region_name=region_name, config=_client_config()
        )

    def __repr__(self) -> str:
        return f"CloudWatchLogsExportClient({self.log_group_name!r} -> {self.destination_bucket!r})"

    async def start(self, window: ExportWindow, staging_prefix: str) -> ExportJobHandle:
        if window.from_ms >= window.to_ms:
            raise JobStartError(f"invalid time range: from={window.from_ms} to={window.to_ms}")

        try:
            response = await asyncio.to_thread(
                self._client.create_export_task,
                logGroupName=self.log_group_name,
                fromTime=window.from_ms,
                to=window.to_ms,
                destination=self.destination_bucket,
                destinationPrefix=staging_prefix,
            )
        except ClientError as e:
            raise JobStartError(f"{_error_code(e)}: {e}") from e
        except BotoCoreError as e:
            raise JobStartError(str(e)) from e

        task_id = response["taskId"]
        logger.debug(f"Created export task {task_id} for {self.log_group_name}")
        return ExportJobHandle(task_id)

    async def poll(self, handle: ExportJobHandle) -> ExportJobStatus:
        try:
            response = await asyncio.to_thread(
                self._client.describe_export_tasks, taskId=handle.job_id
            )
        except ClientError as e:
            if _error_code(e) == "ResourceNotFoundException":
                raise JobNotFoundError(handle.job_id) from e
            raise ExportError(f"describe_export_tasks failed: {e}") from e
        except BotoCoreError as e:
            raise ExportError(f"describe_export_tasks failed: {e}") from e

        tasks = response.get("exportTasks", [])
        if not tasks:
            raise JobNotFoundError(handle.job_id)

        code = tasks[0].get("status", {}).get("code", "")
        try:
            return parse_job_status(code)
        except ValueError as e:
            raise ExportError(str(e)) from e


class S3ObjectStore(ObjectStore):
    """Object store bound to one S3 bucket.

    ``max_pool_connections`` should be at least the move concurrency so
    workers do not queue on the HTTP connection pool.

    botocore makes a single attempt per request (``total_max_attempts=1``): copies
    and deletes are retried by the move executor's RetryPolicy, and a
    failed listing fails the run, which can then be redriven.
    """

    def __init__(
        self,
        bucket: str,
        *,
        client: Any = None,
        region_name: str | None = None,
        max_pool_connections: int = 50,
    ):
        self.bucket = bucket
        self._client = client or boto3.client(
            "s3",
            region_name=region_name,
            config=_client_config(max_pool_connections, total_max_attempts=1),
        )

    def __repr__(self) -> str:
        return f"S3ObjectStore({self.bucket!r})"

    async def list_objects(self, prefix: str) -> AsyncIterator[StagingObject]:
        paginator = self._client.get_paginator("list_objects_v2")
        pages = iter(paginator.paginate(Bucket=self.bucket, Prefix=prefix))
        while True:
            try:
                page = await asyncio.to_thread(next, pages, None)
            except (ClientError, BotoCoreError) as e:
                raise ListError(f"cannot list s3://{self.bucket}/{prefix}: {e}") from e
            if page is None:
                return
            for item in page.get("Contents", []):
                yield StagingObject(key=item["Key"], size=item.get("Size"))

    async def copy_object(self, source_key: str, destination_key: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.copy_object,
                Bucket=self.bucket,
                Key=destination_key,
                CopySource={"Bucket": self.bucket, "Key": source_key},
            )
        except (ClientError, BotoCoreError) as e:
            raise classify_client_error(e, source_key) from e

    async def delete_object(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._client.delete_object, Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise classify_client_error(e, key) from e

    async def put_object(self, key: str, body: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise classify_client_error(e, key) from e
