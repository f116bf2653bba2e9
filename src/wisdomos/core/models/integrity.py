"""Integrity Domain Model -- issues, security audit events, time-lock decisions"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import IssueStatus, IssueType, Severity


class IntegrityIssue(BaseModel):
    """Missed action or broken promise

    Unique per (commitment_id, action_id, issue_type).
    """

    issue_id: str
    user_id: str
    commitment_id: str
    action_id: str | None = None
    issue_type: IssueType
    severity: Severity
    status: IssueStatus = IssueStatus.OPEN
    description: str = ""
    resolution: str | None = None
    resolved_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class SecurityEvent(BaseModel):
    """Audit record of a rejected or suspicious operation"""

    security_event_id: str
    user_id: str
    event: str = Field(description="e.g. time_lock_violation")
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class TimeLockDecision(BaseModel):
    """Result of evaluating an entry edit against the lock window"""

    allowed: bool
    reason: str
    days_difference: int = Field(ge=0)
