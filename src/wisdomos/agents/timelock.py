"""Time-lock -- edit window for published journal entries

Pure policy. Enforcement (locking the entry, auditing, emitting the
violation) is done by ``IntegrityAgent.validate_entry_edit``.
"""

from datetime import datetime

from wisdomos.core.models import TimeLockDecision

GRACE_PERIOD_DAYS = 7
TIME_LOCK_DAYS = 90

_SECONDS_PER_DAY = 86400


def days_between(a: datetime, b: datetime) -> int:
    """Whole days between two instants, ignoring direction"""
    return int(abs((b - a).total_seconds()) // _SECONDS_PER_DAY)


def evaluate_time_lock(
    entry_date: datetime,
    now: datetime,
    grace_days: int = GRACE_PERIOD_DAYS,
    lock_days: int = TIME_LOCK_DAYS,
) -> TimeLockDecision:
    """Decide whether an entry dated ``entry_date`` may be edited at ``now``

    Within ``grace_days`` the edit is unrestricted; beyond it the edit is
    still allowed up to ``lock_days``; anything older is rejected.
    """
    days = days_between(entry_date, now)
    if days <= grace_days:
        return TimeLockDecision(allowed=True, reason="within_grace_period", days_difference=days)
    if days <= lock_days:
        return TimeLockDecision(allowed=True, reason="within_lock_window", days_difference=days)
    return TimeLockDecision(
        allowed=False,
        reason=f"Edit attempted {days} days from entry date (limit: {lock_days} days)",
        days_difference=days,
    )
