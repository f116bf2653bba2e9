"""Event payload schemas -- one model per EventType

``EVENT_PAYLOADS`` is checked at the bus boundary; agents match on the
parsed model rather than on raw dicts.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import FieldError, UnregisteredEventTypeError, ValidationError
from .enums import (
    ActionStatus,
    CommitmentStatus,
    EventType,
    IssueStatus,
    IssueType,
    PeriodType,
    Severity,
    TransactionType,
)


class JournalEntryCreatedPayload(BaseModel):
    """journal.entry.created"""

    entry_id: str
    user_id: str
    entry_date: datetime
    sentiment: float = Field(ge=-1.0, le=1.0)
    area_ids: list[str] = Field(default_factory=list)
    content_preview: str = Field(default="", description="First 200 characters")


class JournalEntryUpdatedPayload(BaseModel):
    """journal.entry.updated"""

    entry_id: str
    user_id: str
    changed_fields: list[str] = Field(default_factory=list)


class CommitmentDetectedPayload(BaseModel):
    """commitment.detected"""

    commitment_id: str
    user_id: str
    statement: str
    confidence: float = Field(ge=0.0, le=1.0)
    entry_id: str | None = None
    requires_confirmation: bool = True
    auto_spawned: bool = False
    area_id: str | None = None


class CommitmentConfirmedPayload(BaseModel):
    """commitment.confirmed"""

    commitment_id: str
    user_id: str


class CommitmentStatusChangedPayload(BaseModel):
    """commitment.status.changed"""

    commitment_id: str
    user_id: str
    from_status: CommitmentStatus
    to_status: CommitmentStatus
    reason: str = ""


class AreaSpawnedPayload(BaseModel):
    """area.spawned"""

    area_id: str
    user_id: str
    commitment_id: str
    code: str
    name: str
    reused: bool = False


class FulfilmentRollupRequestedPayload(BaseModel):
    """fulfilment.rollup.requested"""

    user_id: str
    period_type: PeriodType = PeriodType.MONTH
    period_start: date
    reason: str = ""


class FulfilmentRollupCompletedPayload(BaseModel):
    """fulfilment.rollup.completed"""

    user_id: str
    period_type: PeriodType
    period_start: date
    rollup_count: int = Field(ge=0)
    area_ids: list[str] = Field(default_factory=list)


class ChapterUpdatedPayload(BaseModel):
    """autobiography.chapter.updated"""

    chapter_id: str
    user_id: str
    era: str
    area_id: str
    entry_count: int = Field(ge=0)
    coherence: float = Field(ge=0.0, le=1.0)


class ChapterLinkCreatedPayload(BaseModel):
    """autobiography.link.created"""

    chapter_id: str
    user_id: str
    entry_id: str
    relevance: float = Field(ge=0.0, le=1.0)


class IntegrityIssueRaisedPayload(BaseModel):
    """integrity.issue.raised"""

    issue_id: str
    user_id: str
    commitment_id: str
    issue_type: IssueType
    severity: Severity
    action_id: str | None = None


class IntegrityIssueResolvedPayload(BaseModel):
    """integrity.issue.resolved"""

    issue_id: str
    user_id: str
    status: IssueStatus
    resolution: str = ""


class IntegrityScoreComputedPayload(BaseModel):
    """integrity.score.computed"""

    user_id: str
    period_start: date
    score: int = Field(ge=0, le=100)
    open_issues: int = Field(ge=0)


class FinanceLedgerIngestedPayload(BaseModel):
    """finance.ledger.ingested"""

    user_id: str
    source: str
    imported: int = Field(ge=0)
    skipped: int = Field(ge=0)


class FinanceTransactionCreatedPayload(BaseModel):
    """finance.transaction.created"""

    transaction_id: str
    user_id: str
    amount: float
    transaction_type: TransactionType
    category: str
    area_code: str | None = None


class SecurityViolationPayload(BaseModel):
    """security.violation.detected"""

    user_id: str
    entry_id: str
    violation: str
    days_difference: int


class PlanCreatedPayload(BaseModel):
    """plan.created"""

    plan_id: str
    user_id: str
    objective: str
    task_ids: list[str] = Field(default_factory=list)
    at_risk: bool = False


class ActionOutcomePayload(BaseModel):
    """action.completed / action.failed / action.cancelled"""

    action_id: str
    user_id: str
    commitment_id: str
    status: ActionStatus
    title: str = ""


class JobOutcomePayload(BaseModel):
    """job.completed / job.failed / job.cancelled"""

    job_id: str
    agent: str
    task: str
    attempts: int = Field(ge=0)
    user_id: str | None = None
    error: str | None = None
    error_type: str | None = None
    rejected: bool = Field(
        default=False, description="Refused before any state change (see WisdomError.rejected)"
    )
    commitment_id: str | None = None
    plan_id: str | None = None


EVENT_PAYLOADS: dict[EventType, type[BaseModel]] = {
    EventType.JOURNAL_ENTRY_CREATED: JournalEntryCreatedPayload,
    EventType.JOURNAL_ENTRY_UPDATED: JournalEntryUpdatedPayload,
    EventType.COMMITMENT_DETECTED: CommitmentDetectedPayload,
    EventType.COMMITMENT_CONFIRMED: CommitmentConfirmedPayload,
    EventType.COMMITMENT_STATUS_CHANGED: CommitmentStatusChangedPayload,
    EventType.AREA_SPAWNED: AreaSpawnedPayload,
    EventType.FULFILMENT_ROLLUP_REQUESTED: FulfilmentRollupRequestedPayload,
    EventType.FULFILMENT_ROLLUP_COMPLETED: FulfilmentRollupCompletedPayload,
    EventType.AUTOBIOGRAPHY_CHAPTER_UPDATED: ChapterUpdatedPayload,
    EventType.AUTOBIOGRAPHY_LINK_CREATED: ChapterLinkCreatedPayload,
    EventType.INTEGRITY_ISSUE_RAISED: IntegrityIssueRaisedPayload,
    EventType.INTEGRITY_ISSUE_RESOLVED: IntegrityIssueResolvedPayload,
    EventType.INTEGRITY_SCORE_COMPUTED: IntegrityScoreComputedPayload,
    EventType.FINANCE_LEDGER_INGESTED: FinanceLedgerIngestedPayload,
    EventType.FINANCE_TRANSACTION_CREATED: FinanceTransactionCreatedPayload,
    EventType.SECURITY_VIOLATION_DETECTED: SecurityViolationPayload,
    EventType.PLAN_CREATED: PlanCreatedPayload,
    EventType.ACTION_COMPLETED: ActionOutcomePayload,
    EventType.ACTION_FAILED: ActionOutcomePayload,
    EventType.ACTION_CANCELLED: ActionOutcomePayload,
    EventType.JOB_COMPLETED: JobOutcomePayload,
    EventType.JOB_FAILED: JobOutcomePayload,
    EventType.JOB_CANCELLED: JobOutcomePayload,
}


def parse_event_payload(event_type: EventType | str, payload: dict[str, Any]) -> BaseModel:
    """Validate a raw payload against the schema of its event type

    Raises:
        UnregisteredEventTypeError: event type has no schema
        ValidationError: payload does not match the schema
    """
    try:
        model = EVENT_PAYLOADS[EventType(event_type)]
    except (KeyError, ValueError) as e:
        raise UnregisteredEventTypeError(f"No payload schema for event type {event_type!r}") from e
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        errors = [
            FieldError(
                field=".".join(str(p) for p in err["loc"]) or "payload",
                message=err["msg"],
            )
            for err in e.errors()
        ]
        raise ValidationError(f"Invalid payload for {event_type}", errors) from e
