"""Value objects exchanged between the workflow stages.

Design: Value Object
    Handles, staging objects and move records are plain snapshots with
    no behavior beyond (de)serialization.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

__all__ = [
    "ExportJobHandle",
    "StagingObject",
    "MoveOutcome",
    "MoveRecord",
    "Manifest",
    "MANIFEST_FORMAT",
]

MANIFEST_FORMAT = "pylogexport.manifest/v1"


@dataclass(frozen=True)
class ExportJobHandle:
    """Opaque identifier of a started export job."""

    job_id: str

    def __str__(self) -> str:
        return self.job_id


@dataclass(frozen=True)
class StagingObject:
    """An object written by the export job under the staging prefix."""

    key: str
    size: int | None = None


class MoveOutcome(Enum):
    MOVED = "MOVED"
    FAILED = "FAILED"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class MoveRecord:
    """Outcome of moving one staging object.

    A MOVED record means the destination exists and the source was deleted.
    A FAILED record means the source was left in place; ``stage`` names the
    step that failed (``transform``, ``collision``, ``copy``, ``delete`` or
    ``cancelled``).
    """

    source_key: str
    destination_key: str | None
    outcome: MoveOutcome
    reason: str | None = None
    stage: str | None = None
    attempts: int = 0

    @property
    def moved(self) -> bool:
        return self.outcome == MoveOutcome.MOVED

    @classmethod
    def success(cls, source_key: str, destination_key: str, attempts: int) -> MoveRecord:
        return cls(
            source_key=source_key,
            destination_key=destination_key,
            outcome=MoveOutcome.MOVED,
            attempts=attempts,
        )

    @classmethod
    def failure(
        cls,
        source_key: str,
        destination_key: str | None,
        *,
        stage: str,
        reason: str,
        attempts: int = 0,
    ) -> MoveRecord:
        return cls(
            source_key=source_key,
            destination_key=destination_key,
            outcome=MoveOutcome.FAILED,
            reason=reason,
            stage=stage,
            attempts=attempts,
        )

    def to_dict(self) -> dict:
        return {
            "sourceKey": self.source_key,
            "destinationKey": self.destination_key,
            "outcome": self.outcome.value,
            "reason": self.reason,
            "stage": self.stage,
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(cls, data: dict) -> MoveRecord:
        return cls(
            source_key=data["sourceKey"],
            destination_key=data.get("destinationKey"),
            outcome=MoveOutcome(data["outcome"]),
            reason=data.get("reason"),
            stage=data.get("stage"),
            attempts=data.get("attempts", 0),
        )


@dataclass
class Manifest:
    """Durable record of every move outcome of one run."""

    run_id: str
    job_id: str
    date_prefix: str
    from_ms: int
    to_ms: int
    records: list[MoveRecord] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def moved(self) -> int:
        return sum(1 for r in self.records if r.moved)

    @property
    def failed(self) -> int:
        return len(self.records) - self.moved

    def summary(self) -> dict:
        return {"total": len(self.records), "moved": self.moved, "failed": self.failed}

    def to_dict(self) -> dict:
        return {
            "format": MANIFEST_FORMAT,
            "runId": self.run_id,
            "jobId": self.job_id,
            "datePrefix": self.date_prefix,
            "from": self.from_ms,
            "to": self.to_ms,
            "createdAt": self.created_at.isoformat(),
            "summary": self.summary(),
            "records": [r.to_dict() for r in self.records],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=False)

    @classmethod
    def from_json(cls, text: str) -> Manifest:
        data = json.loads(text)
        if data.get("format") != MANIFEST_FORMAT:
            raise ValueError(f"unsupported manifest format: {data.get('format')!r}")
        return cls(
            run_id=data["runId"],
            job_id=data["jobId"],
            date_prefix=data["datePrefix"],
            from_ms=data["from"],
            to_ms=data["to"],
            records=[MoveRecord.from_dict(r) for r in data["records"]],
            created_at=datetime.fromisoformat(data["createdAt"]),
        )

    def __repr__(self) -> str:
        return (
            f"Manifest(run_id={self.run_id!r}, job_id={self.job_id!r}, "
            f"date_prefix={self.date_prefix!r}, records={len(self.records)})"
        )
