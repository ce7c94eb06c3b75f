"""
Tests for the AWS bindings using botocore's Stubber.

No network access: every client call is answered by a queued stub response
and the Stubber asserts the request parameters.
"""

import boto3
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError
from botocore.stub import Stubber

from pylogexport.clients.aws import (
    CloudWatchLogsExportClient,
    S3ObjectStore,
    classify_client_error,
)
from pylogexport.models import (
    ExportError,
    ExportJobHandle,
    ExportJobStatus,
    JobNotFoundError,
    JobStartError,
    ListError,
    ObjectStoreError,
    resolve_window,
)

from conftest import TRIGGER_TIME

BUCKET = "export-bucket"


@pytest.fixture
def logs_client():
    client = boto3.client(
        "logs",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber:
        yield client, stubber
        stubber.assert_no_pending_responses()


@pytest.fixture
def s3_client():
    client = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber:
        yield client, stubber
        stubber.assert_no_pending_responses()


def client_error(code: str, status: int) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "CopyObject",
    )


# ==============================================================================
# Error classification
# ==============================================================================


@pytest.mark.parametrize(
    "code, status, retryable",
    [
        ("SlowDown", 503, True),
        ("InternalError", 500, True),
        ("RequestTimeout", 400, True),
        ("NoSuchKey", 404, False),
        ("AccessDenied", 403, False),
        ("SomethingNew", 502, True),
        ("SomethingNew", 429, True),
        ("SomethingNew", 400, False),
    ],
)
def test_classify_client_error(code, status, retryable):
    error = classify_client_error(client_error(code, status), "temp/a.gz")

    assert isinstance(error, ObjectStoreError)
    assert error.code == code
    assert error.is_retryable() is retryable


def test_connection_errors_are_transient():
    error = classify_client_error(EndpointConnectionError(endpoint_url="https://s3"), "temp/a.gz")
    assert error.is_retryable()


# ==============================================================================
# CloudWatch Logs export client
# ==============================================================================


@pytest.mark.asyncio
async def test_start_creates_export_task(logs_client):
    client, stubber = logs_client
    window = resolve_window(TRIGGER_TIME)
    stubber.add_response(
        "create_export_task",
        {"taskId": "task-1"},
        {
            "logGroupName": "/app/prod",
            "fromTime": 1718323200000,
            "to": 1718409599999,
            "destination": BUCKET,
            "destinationPrefix": "temp",
        },
    )
    export = CloudWatchLogsExportClient("/app/prod", BUCKET, client=client)

    handle = await export.start(window, "temp")

    assert handle == ExportJobHandle("task-1")


@pytest.mark.asyncio
async def test_start_limit_exceeded_raises_job_start_error(logs_client):
    client, stubber = logs_client
    stubber.add_client_error("create_export_task", "LimitExceededException", http_status_code=400)
    export = CloudWatchLogsExportClient("/app/prod", BUCKET, client=client)

    with pytest.raises(JobStartError, match="LimitExceededException"):
        await export.start(resolve_window(TRIGGER_TIME), "temp")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "code, expected",
    [
        ("PENDING", ExportJobStatus.PENDING),
        ("RUNNING", ExportJobStatus.RUNNING),
        ("COMPLETED", ExportJobStatus.COMPLETED),
        ("FAILED", ExportJobStatus.FAILED),
        ("PENDING_CANCEL", ExportJobStatus.PENDING_CANCEL),
    ],
)
async def test_poll_reads_task_status(logs_client, code, expected):
    client, stubber = logs_client
    stubber.add_response(
        "describe_export_tasks",
        {"exportTasks": [{"taskId": "task-1", "status": {"code": code}}]},
        {"taskId": "task-1"},
    )
    export = CloudWatchLogsExportClient("/app/prod", BUCKET, client=client)

    assert await export.poll(ExportJobHandle("task-1")) == expected


@pytest.mark.asyncio
async def test_poll_unknown_task(logs_client):
    client, stubber = logs_client
    stubber.add_client_error(
        "describe_export_tasks", "ResourceNotFoundException", http_status_code=400
    )
    stubber.add_response("describe_export_tasks", {"exportTasks": []}, {"taskId": "task-2"})
    export = CloudWatchLogsExportClient("/app/prod", BUCKET, client=client)

    with pytest.raises(JobNotFoundError):
        await export.poll(ExportJobHandle("task-1"))
    with pytest.raises(JobNotFoundError):
        await export.poll(ExportJobHandle("task-2"))


@pytest.mark.asyncio
async def test_poll_other_errors_are_fatal(logs_client):
    client, stubber = logs_client
    stubber.add_client_error("describe_export_tasks", "AccessDeniedException", http_status_code=400)
    export = CloudWatchLogsExportClient("/app/prod", BUCKET, client=client)

    with pytest.raises(ExportError) as exc_info:
        await export.poll(ExportJobHandle("task-1"))
    assert not isinstance(exc_info.value, JobNotFoundError)


# ==============================================================================
# S3 object store
# ==============================================================================


@pytest.mark.asyncio
async def test_list_objects_follows_pagination(s3_client):
    client, stubber = s3_client
    stubber.add_response(
        "list_objects_v2",
        {
            "IsTruncated": True,
            "NextContinuationToken": "page-2",
            "Contents": [{"Key": "temp/job-1/a.gz", "Size": 10}],
        },
        {"Bucket": BUCKET, "Prefix": "temp/job-1/"},
    )
    stubber.add_response(
        "list_objects_v2",
        {"IsTruncated": False, "Contents": [{"Key": "temp/job-1/b.gz", "Size": 20}]},
        {"Bucket": BUCKET, "Prefix": "temp/job-1/", "ContinuationToken": "page-2"},
    )
    store = S3ObjectStore(BUCKET, client=client)

    objects = [obj async for obj in store.list_objects("temp/job-1/")]

    assert [(o.key, o.size) for o in objects] == [("temp/job-1/a.gz", 10), ("temp/job-1/b.gz", 20)]


@pytest.mark.asyncio
async def test_list_objects_error_raises_list_error(s3_client):
    client, stubber = s3_client
    stubber.add_client_error("list_objects_v2", "AccessDenied", http_status_code=403)
    store = S3ObjectStore(BUCKET, client=client)

    with pytest.raises(ListError):
        [obj async for obj in store.list_objects("temp/job-1/")]


@pytest.mark.asyncio
async def test_copy_and_delete(s3_client):
    client, stubber = s3_client
    stubber.add_response("copy_object", {"CopyObjectResult": {}})
    stubber.add_response(
        "delete_object", {}, {"Bucket": BUCKET, "Key": "temp/job-1/a.gz"}
    )
    store = S3ObjectStore(BUCKET, client=client)

    await store.copy_object("temp/job-1/a.gz", "exported-logs/2024/06/14/a.gz")
    await store.delete_object("temp/job-1/a.gz")


@pytest.mark.asyncio
async def test_copy_error_is_classified(s3_client):
    client, stubber = s3_client
    stubber.add_client_error("copy_object", "SlowDown", http_status_code=503)
    stubber.add_client_error("copy_object", "NoSuchKey", http_status_code=404)
    store = S3ObjectStore(BUCKET, client=client)

    with pytest.raises(ObjectStoreError) as transient:
        await store.copy_object("temp/job-1/a.gz", "exported-logs/2024/06/14/a.gz")
    with pytest.raises(ObjectStoreError) as permanent:
        await store.copy_object("temp/job-1/a.gz", "exported-logs/2024/06/14/a.gz")

    assert transient.value.is_retryable()
    assert not permanent.value.is_retryable()


@pytest.mark.asyncio
async def test_put_object(s3_client):
    client, stubber = s3_client
    stubber.add_response("put_object", {"ETag": '"abc"'})
    store = S3ObjectStore(BUCKET, client=client)

    await store.put_object("results/manifest.json", b"{}", "application/json")


def test_s3_requests_are_not_retried_by_botocore():
    store = S3ObjectStore(BUCKET, region_name="us-east-1", max_pool_connections=64)
    export = CloudWatchLogsExportClient("/app/prod", BUCKET, region_name="us-east-1")

    # Copies and deletes are retried by the move executor's RetryPolicy only
    assert store._client.meta.config.retries["total_max_attempts"] == 1
    assert store._client.meta.config.max_pool_connections == 64
    assert export._client.meta.config.retries["total_max_attempts"] == 3
