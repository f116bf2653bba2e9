"""Enum definitions -- closed vocabularies of the engine

Contains the agent, intent and event vocabularies, the job and commitment
state machines (``*_TRANSITIONS`` maps plus terminal sets) and the smaller
domain enums used by the agents.
"""

from enum import StrEnum


class AgentType(StrEnum):
    """Stable agent identifiers. Envelope ``actor`` must be one of these."""

    PLANNER = "PlannerAgent"
    ORCHESTRATOR = "Orchestrator"
    DATABASE = "DatabaseAgent"
    JOURNAL = "JournalAgent"
    COMMITMENT = "CommitmentAgent"
    AREA_GENERATOR = "AreaGenerator"
    FULFILMENT = "FulfilmentAgent"
    NARRATIVE = "NarrativeAgent"
    INTEGRITY = "IntegrityAgent"
    FINANCE = "FinanceAgent"
    SECURITY = "SecurityAgent"
    ANALYTICS = "AnalyticsAgent"


# Planner owner value for tasks no registered agent can take
HUMAN_OWNER = "human"


class Intent(StrEnum):
    PLAN = "plan"
    EXECUTE = "execute"
    VALIDATE = "validate"
    REPORT = "report"


class ProvenanceSource(StrEnum):
    SYSTEM = "system"
    USER = "user"
    IMPORT = "import"


class BackoffStrategy(StrEnum):
    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIXED = "fixed"


class JobStatus(StrEnum):
    """Job state machine"""

    READY = "ready"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


JOB_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.READY: {JobStatus.RUNNING, JobStatus.CANCELLED},
    JobStatus.RUNNING: {
        JobStatus.COMPLETED,
        JobStatus.FAILED,
        JobStatus.CANCELLED,
        # retry
        JobStatus.READY,
    },
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
    JobStatus.CANCELLED: set(),
}

JOB_TERMINAL_STATES: set[JobStatus] = {
    JobStatus.COMPLETED,
    JobStatus.FAILED,
    JobStatus.CANCELLED,
}


def validate_job_transition(from_status: JobStatus, to_status: JobStatus) -> bool:
    """Check a job status change against JOB_TRANSITIONS

    Args:
        from_status: current status
        to_status: requested status

    Returns:
        True when the transition is legal
    """
    return to_status in JOB_TRANSITIONS.get(from_status, set())


class CommitmentStatus(StrEnum):
    DETECTED = "detected"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    FULFILLED = "fulfilled"
    BROKEN = "broken"
    CANCELLED = "cancelled"


COMMITMENT_TRANSITIONS: dict[CommitmentStatus, set[CommitmentStatus]] = {
    CommitmentStatus.DETECTED: {CommitmentStatus.CONFIRMED, CommitmentStatus.CANCELLED},
    CommitmentStatus.CONFIRMED: {CommitmentStatus.ACTIVE, CommitmentStatus.CANCELLED},
    CommitmentStatus.ACTIVE: {
        CommitmentStatus.FULFILLED,
        CommitmentStatus.BROKEN,
        CommitmentStatus.CANCELLED,
    },
    CommitmentStatus.FULFILLED: set(),
    CommitmentStatus.BROKEN: set(),
    CommitmentStatus.CANCELLED: set(),
}


def validate_commitment_transition(
    from_status: CommitmentStatus, to_status: CommitmentStatus
) -> bool:
    """Check a commitment status change against COMMITMENT_TRANSITIONS"""
    return to_status in COMMITMENT_TRANSITIONS.get(from_status, set())


class ActionStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class IssueType(StrEnum):
    ACTION_MISSED = "action_missed"
    PROMISE_BROKEN = "promise_broken"


class Severity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class IssueStatus(StrEnum):
    OPEN = "open"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


# Issues that still count against the integrity score
OPEN_ISSUE_STATES: set[IssueStatus] = {IssueStatus.OPEN, IssueStatus.ACKNOWLEDGED}


class PeriodType(StrEnum):
    MONTH = "month"
    QUARTER = "quarter"


class PlanStatus(StrEnum):
    SCHEDULED = "scheduled"
    AT_RISK = "at_risk"


class TransactionType(StrEnum):
    INCOME = "income"
    EXPENSE = "expense"


class CashflowStatus(StrEnum):
    SURPLUS = "surplus"
    ADEQUATE = "adequate"
    TIGHT = "tight"
    DEFICIT = "deficit"


class EventType(StrEnum):
    """Closed domain event vocabulary. Bump EVENT_SCHEMA_VERSION on change."""

    JOURNAL_ENTRY_CREATED = "journal.entry.created"
    JOURNAL_ENTRY_UPDATED = "journal.entry.updated"
    COMMITMENT_DETECTED = "commitment.detected"
    COMMITMENT_CONFIRMED = "commitment.confirmed"
    COMMITMENT_STATUS_CHANGED = "commitment.status.changed"
    AREA_SPAWNED = "area.spawned"
    FULFILMENT_ROLLUP_REQUESTED = "fulfilment.rollup.requested"
    FULFILMENT_ROLLUP_COMPLETED = "fulfilment.rollup.completed"
    AUTOBIOGRAPHY_CHAPTER_UPDATED = "autobiography.chapter.updated"
    AUTOBIOGRAPHY_LINK_CREATED = "autobiography.link.created"
    INTEGRITY_ISSUE_RAISED = "integrity.issue.raised"
    INTEGRITY_ISSUE_RESOLVED = "integrity.issue.resolved"
    INTEGRITY_SCORE_COMPUTED = "integrity.score.computed"
    FINANCE_LEDGER_INGESTED = "finance.ledger.ingested"
    FINANCE_TRANSACTION_CREATED = "finance.transaction.created"
    SECURITY_VIOLATION_DETECTED = "security.violation.detected"
    PLAN_CREATED = "plan.created"
    ACTION_COMPLETED = "action.completed"
    ACTION_FAILED = "action.failed"
    ACTION_CANCELLED = "action.cancelled"
    JOB_COMPLETED = "job.completed"
    JOB_FAILED = "job.failed"
    JOB_CANCELLED = "job.cancelled"


EVENT_SCHEMA_VERSION = 1
