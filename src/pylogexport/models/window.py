"""Calendar resolution for daily exports.

A run always exports the UTC calendar day *before* the instant it was
started at. All arithmetic is done in UTC; local time zones never enter
the calculation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta

__all__ = ["ExportWindow", "resolve_window", "parse_current_date", "to_millis"]

# 23:59:59.999 expressed in milliseconds
DAY_SPAN_MS = 24 * 60 * 60 * 1000 - 1

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def to_millis(instant: datetime) -> int:
    """Epoch milliseconds for an aware datetime."""
    return (instant - _EPOCH) // timedelta(milliseconds=1)


@dataclass(frozen=True)
class ExportWindow:
    """Time range of one UTC day to export.

    Immutable once computed.
    """

    start: datetime
    """First instant of the day (00:00:00.000 UTC)."""

    end: datetime
    """Last millisecond of the day (23:59:59.999 UTC)."""

    date_prefix: str
    """``YYYY/MM/DD`` partition key of the day."""

    @property
    def day(self) -> date:
        return self.start.date()

    @property
    def from_ms(self) -> int:
        return to_millis(self.start)

    @property
    def to_ms(self) -> int:
        return to_millis(self.end)

    def to_dict(self) -> dict:
        return {
            "from": self.from_ms,
            "to": self.to_ms,
            "datePrefix": self.date_prefix,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ExportWindow:
        start = _EPOCH + timedelta(milliseconds=data["from"])
        end = _EPOCH + timedelta(milliseconds=data["to"])
        return cls(start=start, end=end, date_prefix=data["datePrefix"])

    def __repr__(self) -> str:
        return (
            f"ExportWindow(start={self.start.isoformat()}, "
            f"end={self.end.isoformat()}, date_prefix={self.date_prefix!r})"
        )


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=UTC)
    return now.astimezone(UTC)


def resolve_window(now: datetime) -> ExportWindow:
    """Compute the export window for the day before ``now``.

    ``now`` is treated as UTC: naive datetimes are assumed to already be
    UTC, aware ones are converted. To export a specific day, pass an
    instant on the following day.

    Example:
        >>> w = resolve_window(datetime(2024, 3, 1, tzinfo=UTC))
        >>> w.date_prefix
        '2024/02/29'
    """
    target = _as_utc(now).date() - timedelta(days=1)
    start = datetime.combine(target, time.min, tzinfo=UTC)
    end = start + timedelta(milliseconds=DAY_SPAN_MS)
    return ExportWindow(
        start=start,
        end=end,
        date_prefix=f"{target.year:04d}/{target.month:02d}/{target.day:02d}",
    )


def parse_current_date(value: str) -> datetime:
    """Parse an ISO-8601 override instant (as passed by a manual trigger).

    A trailing ``Z`` is accepted; values without an offset are taken as UTC.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return _as_utc(datetime.fromisoformat(text))
