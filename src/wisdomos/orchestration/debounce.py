"""RollupDebouncer -- coalesces rollup requests per (user, period)

At most one rollup per key starts within a window. The first request runs
immediately; a request inside the window schedules one trailing rollup at
the window's end, and every further request before that trailing run is
absorbed by it.
"""

from collections.abc import Hashable
from datetime import datetime, timedelta


class RollupDebouncer:
    def __init__(self, window_s: float) -> None:
        self._window = timedelta(seconds=window_s)
        self._last: dict[Hashable, datetime] = {}
        self._pending: dict[Hashable, datetime] = {}

    def admit(self, key: Hashable, now: datetime) -> datetime | None:
        """When the rollup for ``key`` should run, None when coalesced"""
        pending = self._pending.get(key)
        if pending is not None and pending > now:
            return None
        last = self._last.get(key)
        if last is None or now - last >= self._window:
            run_at = now
        else:
            run_at = last + self._window
        self._last[key] = run_at
        self._pending[key] = run_at
        return run_at

    def forget(self, key: Hashable) -> None:
        self._last.pop(key, None)
        self._pending.pop(key, None)
