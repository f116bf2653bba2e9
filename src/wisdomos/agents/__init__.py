"""WisdomOS Agents -- reactive domain agents

Each agent consumes DomainEvents and MessageEnvelopes through ``handle`` and
emits follow-on events on the bus.
"""

from .area_generator import AreaGeneratorAgent, default_dimensions
from .base import BaseAgent, ensure_owner, parse_task_payload
from .commitment import CommitmentAgent
from .finance import (
    FinanceAgent,
    IngestResult,
    cashflow_status,
    categorize,
    fin_area_for,
    fin_score,
    transaction_type_for,
)
from .fulfilment import (
    FulfilmentAgent,
    ScoreResult,
    compute_score,
    period_bounds,
    period_start,
)
from .integrity import IntegrityAgent, integrity_score, severity_for
from .journal import JournalAgent
from .narrative import NarrativeAgent
from .timelock import GRACE_PERIOD_DAYS, TIME_LOCK_DAYS, evaluate_time_lock

__all__ = [
    "BaseAgent",
    "ensure_owner",
    "parse_task_payload",
    "JournalAgent",
    "CommitmentAgent",
    "AreaGeneratorAgent",
    "default_dimensions",
    "FulfilmentAgent",
    "ScoreResult",
    "compute_score",
    "period_start",
    "period_bounds",
    "NarrativeAgent",
    "IntegrityAgent",
    "integrity_score",
    "severity_for",
    "evaluate_time_lock",
    "GRACE_PERIOD_DAYS",
    "TIME_LOCK_DAYS",
    "FinanceAgent",
    "IngestResult",
    "categorize",
    "transaction_type_for",
    "fin_area_for",
    "fin_score",
    "cashflow_status",
]
