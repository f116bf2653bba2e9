"""WisdomOS Core Domain Models -- public type exports

All public model types are imported from here.
"""

from .commitment import DEFAULT_AREA_DIMENSIONS, Commitment, CommitmentAction, LifeArea
from .enums import (
    COMMITMENT_TRANSITIONS,
    EVENT_SCHEMA_VERSION,
    HUMAN_OWNER,
    JOB_TERMINAL_STATES,
    JOB_TRANSITIONS,
    OPEN_ISSUE_STATES,
    ActionStatus,
    AgentType,
    BackoffStrategy,
    CashflowStatus,
    CommitmentStatus,
    EventType,
    Intent,
    IssueStatus,
    IssueType,
    JobStatus,
    PeriodType,
    PlanStatus,
    ProvenanceSource,
    Severity,
    TransactionType,
    validate_commitment_transition,
    validate_job_transition,
)
from .envelope import (
    MessageEnvelope,
    Provenance,
    RetryPolicy,
    is_valid_identifier,
    new_envelope,
    validate_envelope,
)
from .event import DomainEvent, EventCausality
from .finance import FIN_AREAS, CashflowReport, ProfitabilityReport, Transaction
from .fulfilment import FulfilmentEntry, FulfilmentRollup
from .integrity import IntegrityIssue, SecurityEvent, TimeLockDecision
from .job import Job, RunSummary
from .journal import EntryAreaLink, JournalEntry
from .narrative import ERAS, Chapter, ChapterLink, Era, era_for_year
from .payloads import EVENT_PAYLOADS, parse_event_payload
from .plan import HighLevelTask, PlanDefinition, TaskDefinition

__all__ = [
    # enums
    "AgentType",
    "HUMAN_OWNER",
    "Intent",
    "ProvenanceSource",
    "BackoffStrategy",
    "JobStatus",
    "CommitmentStatus",
    "ActionStatus",
    "IssueType",
    "IssueStatus",
    "Severity",
    "PeriodType",
    "PlanStatus",
    "TransactionType",
    "CashflowStatus",
    "EventType",
    "EVENT_SCHEMA_VERSION",
    # state machines
    "JOB_TRANSITIONS",
    "JOB_TERMINAL_STATES",
    "COMMITMENT_TRANSITIONS",
    "OPEN_ISSUE_STATES",
    "validate_job_transition",
    "validate_commitment_transition",
    # envelope
    "MessageEnvelope",
    "Provenance",
    "RetryPolicy",
    "validate_envelope",
    "new_envelope",
    "is_valid_identifier",
    # event
    "DomainEvent",
    "EventCausality",
    "EVENT_PAYLOADS",
    "parse_event_payload",
    # job
    "Job",
    "RunSummary",
    # domain
    "JournalEntry",
    "EntryAreaLink",
    "LifeArea",
    "Commitment",
    "CommitmentAction",
    "DEFAULT_AREA_DIMENSIONS",
    "FulfilmentRollup",
    "FulfilmentEntry",
    "Era",
    "ERAS",
    "era_for_year",
    "Chapter",
    "ChapterLink",
    "IntegrityIssue",
    "SecurityEvent",
    "TimeLockDecision",
    "Transaction",
    "ProfitabilityReport",
    "CashflowReport",
    "FIN_AREAS",
    "HighLevelTask",
    "TaskDefinition",
    "PlanDefinition",
]
