"""SQLite-backed run store.

Design Pattern: Adapter Pattern
SqliteRunStore adapts a SQLite database to the RunStore interface.

Implementation details:
- aiosqlite for async operations
- WAL mode for concurrent reads
- Run state kept in indexed columns, full run as a JSON document
- Move records kept in their own table so operators can query failures
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import aiosqlite

from pylogexport.models import RunState, WorkflowRun
from pylogexport.storage.base import RunStore, StorageError


class SqliteRunStore(RunStore):
    """SQLite-backed durable run checkpoints.

    After __init__, the instance is not yet usable. Call connect() first.

    Usage:
        store = SqliteRunStore("runs.db")
        await store.connect()
        try:
            await store.save_run(run)
        finally:
            await store.close()
    """

    def __init__(self, db_path: str):
        """Initialize store (connection not opened yet).

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()  # Serialize access to shared connection

    @classmethod
    async def in_memory(cls) -> SqliteRunStore:
        """
        Create a connected in-memory SQLite store for testing.

        Example:
            store = await SqliteRunStore.in_memory()
        """
        instance = cls(":memory:")
        await instance.connect()
        return instance

    def __repr__(self) -> str:
        if self.db_path == ":memory:":
            return "SqliteRunStore(in-memory)"
        return f"SqliteRunStore({self.db_path})"

    async def connect(self) -> None:
        """Open database connection and initialize schema."""
        if self._connection is not None:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(
            self.db_path,
            timeout=5.0,
            isolation_level=None,  # Autocommit mode
        )

        # In-memory databases report "memory" and don't support WAL
        cursor = await self._connection.execute("PRAGMA journal_mode=WAL")
        result = await cursor.fetchone()
        await cursor.close()
        if result:
            mode = result[0].upper()
            if mode not in ("WAL", "MEMORY"):
                raise StorageError(f"Failed to enable WAL mode, got: {result[0]}")

        await self._connection.execute("PRAGMA synchronous=NORMAL")
        await self._connection.execute("PRAGMA busy_timeout=5000")

        await self._create_schema()

    async def _create_schema(self) -> None:
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS workflow_runs (
                run_id TEXT PRIMARY KEY,
                state TEXT CHECK( state IN (
                    'PREPARE','START_EXPORT','WAIT_POLL','BRANCH','MOVE_ALL','SUCCEED','FAIL'
                ) ) NOT NULL,
                job_id TEXT,
                date_prefix TEXT,
                document TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_workflow_runs_state
            ON workflow_runs(state)
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS move_records (
                run_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                source_key TEXT NOT NULL,
                destination_key TEXT,
                outcome TEXT CHECK( outcome IN ('MOVED','FAILED') ) NOT NULL,
                stage TEXT,
                reason TEXT,
                attempts INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (run_id, position)
            )
        """)

    def _check_connected(self) -> None:
        if self._connection is None:
            raise StorageError("Not connected. Call connect() first.")

    async def save_run(self, run: WorkflowRun) -> None:
        """Upsert the run document and replace its move records atomically."""
        self._check_connected()

        document = json.dumps(run.to_dict())
        async with self._lock:
            try:
                await self._connection.execute("BEGIN IMMEDIATE")
                await self._connection.execute(
                    """
                    INSERT INTO workflow_runs (run_id, state, job_id, date_prefix, document, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(run_id) DO UPDATE SET
                        state = excluded.state,
                        job_id = excluded.job_id,
                        date_prefix = excluded.date_prefix,
                        document = excluded.document,
                        updated_at = excluded.updated_at
                    """,
                    (
                        run.run_id,
                        run.state.value,
                        run.handle.job_id if run.handle else None,
                        run.window.date_prefix if run.window else None,
                        document,
                        run.updated_at.isoformat(),
                    ),
                )
                await self._connection.execute(
                    "DELETE FROM move_records WHERE run_id = ?", (run.run_id,)
                )
                await self._connection.executemany(
                    """
                    INSERT INTO move_records (
                        run_id, position, source_key, destination_key, outcome, stage, reason, attempts
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            run.run_id,
                            position,
                            r.source_key,
                            r.destination_key,
                            r.outcome.value,
                            r.stage,
                            r.reason,
                            r.attempts,
                        )
                        for position, r in enumerate(run.records)
                    ],
                )
                await self._connection.execute("COMMIT")
            except aiosqlite.Error as e:
                if self._connection.in_transaction:
                    await self._connection.execute("ROLLBACK")
                raise StorageError(f"Failed to save run {run.run_id}: {e}") from e

    async def load_run(self, run_id: str) -> WorkflowRun | None:
        self._check_connected()

        async with self._lock:
            cursor = await self._connection.execute(
                "SELECT document FROM workflow_runs WHERE run_id = ?", (run_id,)
            )
            row = await cursor.fetchone()
            await cursor.close()

        if row is None:
            return None
        return WorkflowRun.from_dict(json.loads(row[0]))

    async def list_incomplete_runs(self) -> list[WorkflowRun]:
        self._check_connected()

        async with self._lock:
            cursor = await self._connection.execute(
                "SELECT document FROM workflow_runs WHERE state NOT IN (?, ?) ORDER BY updated_at",
                (RunState.SUCCEED.value, RunState.FAIL.value),
            )
            rows = await cursor.fetchall()
            await cursor.close()

        return [WorkflowRun.from_dict(json.loads(row[0])) for row in rows]

    async def failed_moves(self, run_id: str) -> list[tuple[str, str | None, str | None]]:
        """(source_key, stage, reason) of every FAILED move of a run, in listing order."""
        self._check_connected()

        async with self._lock:
            cursor = await self._connection.execute(
                """
                SELECT source_key, stage, reason FROM move_records
                WHERE run_id = ? AND outcome = 'FAILED'
                ORDER BY position
                """,
                (run_id,),
            )
            rows = await cursor.fetchall()
            await cursor.close()

        return [(row[0], row[1], row[2]) for row in rows]

    async def close(self) -> None:
        """Close storage connections.

        Explicit resource cleanup, not relying on GC.
        """
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
