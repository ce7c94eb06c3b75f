"""Daily trigger entry point.

``handler(event, context)`` is invoked once per UTC day by the scheduler
(reference schedule: 01:00 UTC). It exports the previous UTC day of the
configured log group, moves the exported objects to their final keys and
returns a summary of the run.

Event fields (all optional):
    currentDate: ISO-8601 instant to resolve the export day against,
        for manual backfills and debugging
    runId: id of a checkpointed run to redrive instead of starting anew
        (requires EXPORT_RUN_DB_PATH)
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import datetime
from typing import Any

from pylogexport.clients.base import ExportJobClient, ObjectStore
from pylogexport.config import ConfigError, Settings
from pylogexport.executor.clock import Clock
from pylogexport.executor.engine import WorkflowEngine
from pylogexport.models import WorkflowRun, parse_current_date
from pylogexport.storage.base import RunStore
from pylogexport.storage.memory import InMemoryRunStore

logger = logging.getLogger(__name__)

__all__ = ["handler", "main", "run_export", "build_engine", "run_output"]


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # basicConfig is a no-op when the runtime installed a root handler already
    logging.getLogger().setLevel(level)


def build_engine(
    settings: Settings,
    *,
    job_client: ExportJobClient | None = None,
    store: ObjectStore | None = None,
    run_store: RunStore | None = None,
    clock: Clock | None = None,
) -> WorkflowEngine:
    """Wire a WorkflowEngine from settings.

    Missing collaborators are bound to AWS: CloudWatch Logs for export
    jobs and S3 for the target bucket.

    Raises:
        ConfigError: If an AWS export client is needed but no log group is set
    """
    if job_client is None or store is None:
        from pylogexport.clients.aws import CloudWatchLogsExportClient, S3ObjectStore

        if job_client is None:
            if not settings.log_group_name:
                raise ConfigError("EXPORT_LOG_GROUP_NAME is required for the CloudWatch Logs export client")
            job_client = CloudWatchLogsExportClient(
                settings.log_group_name,
                settings.target_bucket,
                region_name=settings.aws_region,
            )
        if store is None:
            store = S3ObjectStore(
                settings.target_bucket,
                region_name=settings.aws_region,
                max_pool_connections=settings.move_concurrency,
            )

    return WorkflowEngine(
        job_client,
        store,
        run_store=run_store,
        clock=clock,
        staging_prefix=settings.staging_prefix,
        destination_prefix=settings.destination_prefix,
        results_prefix=settings.results_prefix,
        poll_interval=settings.poll_interval,
        max_wait=settings.max_wait,
        concurrency=settings.move_concurrency,
        retry_policy=settings.retry_policy,
    )


def run_output(settings: Settings, run: WorkflowRun) -> dict[str, Any]:
    """Summary returned to the trigger."""
    total = len(run.records)
    moved = sum(1 for r in run.records if r.moved)
    return {
        "destinationBucket": settings.target_bucket,
        "destinationPrefix": run.window.date_prefix if run.window else None,
        "from": run.window.from_ms if run.window else None,
        "to": run.window.to_ms if run.window else None,
        "runId": run.run_id,
        "jobId": run.handle.job_id if run.handle else None,
        "state": run.state.value,
        "manifestKey": run.manifest_key,
        "error": run.error,
        "summary": {"total": total, "moved": moved, "failed": total - moved},
    }


async def run_export(
    settings: Settings,
    *,
    now: datetime | None = None,
    run_id: str | None = None,
    job_client: ExportJobClient | None = None,
    store: ObjectStore | None = None,
    run_store: RunStore | None = None,
    clock: Clock | None = None,
) -> dict[str, Any]:
    """Run one export to completion and return its output.

    Raises:
        ConfigError: If a run id is given but runs are not checkpointed
            durably, since the redrive could not find the earlier run
    """
    if run_id is not None and run_store is None and not settings.run_db_path:
        raise ConfigError(f"redriving run {run_id!r} requires EXPORT_RUN_DB_PATH")

    owns_run_store = run_store is None
    if run_store is None:
        if settings.run_db_path:
            from pylogexport.storage.sqlite import SqliteRunStore

            run_store = SqliteRunStore(settings.run_db_path)
            await run_store.connect()
        else:
            run_store = InMemoryRunStore()

    try:
        engine = build_engine(
            settings, job_client=job_client, store=store, run_store=run_store, clock=clock
        )
        run = await engine.run(now=now, run_id=run_id)
    finally:
        if owns_run_store:
            await run_store.close()

    output = run_output(settings, run)
    if run.window is not None:
        logger.info(
            f"Export destination: {settings.target_bucket}/"
            f"{settings.destination_prefix}/{run.window.date_prefix}"
        )
    if run.succeeded:
        logger.info(f"Run {run.run_id} finished: {output['summary']}")
    else:
        logger.error(f"Run {run.run_id} failed: {run.error}")
    return output


def handler(event: dict | None, context: Any = None) -> dict[str, Any]:
    """Scheduler entry point."""
    settings = Settings.from_env()
    _configure_logging(settings.log_level)

    event = event or {}
    logger.debug(f"Event: {event}")

    now = None
    if "currentDate" in event:
        try:
            now = parse_current_date(str(event["currentDate"]))
        except ValueError as e:
            raise ConfigError(f"invalid currentDate {event['currentDate']!r}: {e}") from e
        logger.debug(f"Specified currentDate: {now.isoformat()}")

    return asyncio.run(run_export(settings, now=now, run_id=event.get("runId")))


def main(argv: list[str] | None = None) -> int:
    """Local invocation: ``pylogexport [currentDate] [runId]``."""
    args = sys.argv[1:] if argv is None else argv
    event: dict[str, str] = {}
    if len(args) > 0:
        event["currentDate"] = args[0]
    if len(args) > 1:
        event["runId"] = args[1]

    output = handler(event)
    print(json.dumps(output, indent=2))
    return 0 if output["state"] == "SUCCEED" else 1


if __name__ == "__main__":
    sys.exit(main())
