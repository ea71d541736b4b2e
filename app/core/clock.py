"""UTC helpers.

SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
columns; every timestamp read from a row goes through ``as_utc`` before it
is compared with ``utcnow()``.
"""
from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
