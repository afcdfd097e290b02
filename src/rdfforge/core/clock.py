"""Timestamps are stored as naive UTC."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc).replace(tzinfo=None)


def elapsed_ms(started: datetime, finished: datetime | None = None) -> int:
    finished = finished or utcnow()
    return int((finished - started).total_seconds() * 1000)
