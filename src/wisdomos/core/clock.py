"""Clock -- injectable source of the current time

Scheduling (run_at, TTL, debounce windows, target dates) reads time through
this seam so tests can drive it deterministically.
"""

from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Current timezone-aware UTC instant"""
        ...


class SystemClock:
    """Wall clock"""

    def now(self) -> datetime:
        return datetime.now(UTC)
