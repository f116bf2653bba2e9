"""Column codecs shared by the SQLite stores

Timestamps are stored as UTC ISO-8601 with fixed microsecond precision so
that string comparison in SQL matches chronological order.
"""

import json
from datetime import UTC, date, datetime
from typing import Any


def ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def parse_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def day(value: date) -> str:
    return value.isoformat()


def dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def loads(value: str | None, default: Any = None) -> Any:
    if not value:
        return default
    return json.loads(value)
