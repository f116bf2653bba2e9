"""Store Protocol interfaces

Repositories the agents depend on, expressed as Protocols (structural
subtyping) so tests and alternative backends can stand in for SQLite.
The job repository is not listed here: only the orchestrator touches it.
"""

from datetime import date, datetime
from typing import Protocol

from ..models.commitment import Commitment, CommitmentAction, LifeArea
from ..models.enums import ActionStatus, CommitmentStatus, EventType, PeriodType
from ..models.event import DomainEvent
from ..models.finance import Transaction
from ..models.fulfilment import FulfilmentEntry, FulfilmentRollup
from ..models.integrity import IntegrityIssue, SecurityEvent
from ..models.journal import EntryAreaLink, JournalEntry
from ..models.narrative import Chapter, ChapterLink
from ..models.plan import PlanDefinition


class EventStore(Protocol):
    """Append-only event log with per-agent processing marks"""

    async def append_event(self, event: DomainEvent) -> bool: ...

    async def get_event(self, event_id: str) -> DomainEvent | None: ...

    async def mark_processed(self, event_id: str, agent: str, processed_at: datetime) -> bool: ...

    async def processed_by(self, event_id: str) -> tuple[str, ...]: ...

    async def list_events(
        self,
        event_type: EventType | None = None,
        user_id: str | None = None,
        after_event_id: str | None = None,
    ) -> list[DomainEvent]: ...

    async def count_in_cascade(self, root_event_id: str) -> int: ...


class JournalStore(Protocol):
    async def create_entry(
        self, entry: JournalEntry, links: list[EntryAreaLink]
    ) -> JournalEntry: ...

    async def update_entry(
        self, entry: JournalEntry, links: list[EntryAreaLink] | None = None
    ) -> JournalEntry: ...

    async def set_locked(self, entry_id: str, updated_at: datetime) -> None: ...

    async def get_entry(self, entry_id: str) -> JournalEntry | None: ...

    async def find_by_user(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[JournalEntry]: ...

    async def list_links(self, entry_id: str) -> list[EntryAreaLink]: ...

    async def list_users(self) -> list[str]: ...


class AreaStore(Protocol):
    async def create_area(self, area: LifeArea) -> LifeArea: ...

    async def get_area(self, area_id: str) -> LifeArea | None: ...

    async def get_by_code(self, user_id: str, code: str) -> LifeArea | None: ...

    async def find_by_user(self, user_id: str) -> list[LifeArea]: ...

    async def count_spawned(self, user_id: str) -> int: ...


class CommitmentStore(Protocol):
    async def create_commitment(self, commitment: Commitment) -> tuple[Commitment, bool]: ...

    async def get_commitment(self, commitment_id: str) -> Commitment | None: ...

    async def find_by_user(
        self, user_id: str, status: CommitmentStatus | None = None
    ) -> list[Commitment]: ...

    async def list_users_with_active(self) -> list[str]: ...

    async def update_status(
        self,
        commitment_id: str,
        expected: CommitmentStatus,
        new: CommitmentStatus,
        updated_at: datetime,
    ) -> Commitment: ...

    async def set_area(self, commitment_id: str, area_id: str, updated_at: datetime) -> None: ...

    async def set_target_date(
        self, commitment_id: str, target_date: datetime | None, updated_at: datetime
    ) -> None: ...

    async def create_action(self, action: CommitmentAction) -> CommitmentAction: ...

    async def update_action_status(
        self, action_id: str, status: ActionStatus, updated_at: datetime
    ) -> CommitmentAction: ...

    async def get_action(self, action_id: str) -> CommitmentAction | None: ...

    async def list_actions(self, commitment_id: str) -> list[CommitmentAction]: ...


class FulfilmentStore(Protocol):
    async def upsert_rollup(self, rollup: FulfilmentRollup) -> FulfilmentRollup: ...

    async def get_rollup(
        self,
        user_id: str,
        area_id: str,
        dimension: str,
        period_type: PeriodType,
        period_start: date,
    ) -> FulfilmentRollup | None: ...

    async def find_by_user(
        self,
        user_id: str,
        period_type: PeriodType | None = None,
        period_start: date | None = None,
    ) -> list[FulfilmentRollup]: ...

    async def record_entry(self, entry: FulfilmentEntry) -> FulfilmentEntry: ...

    async def list_entries(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        life_area: str | None = None,
    ) -> list[FulfilmentEntry]: ...


class NarrativeStore(Protocol):
    async def get_or_create_chapter(self, chapter: Chapter) -> tuple[Chapter, bool]: ...

    async def get_chapter(self, chapter_id: str) -> Chapter | None: ...

    async def find_by_user(self, user_id: str) -> list[Chapter]: ...

    async def update_chapter(self, chapter: Chapter) -> Chapter: ...

    async def link_entry(self, link: ChapterLink) -> bool: ...

    async def list_links(self, chapter_id: str) -> list[ChapterLink]: ...

    async def chapters_for_entry(self, entry_id: str) -> list[Chapter]: ...

    async def unlink_entry(self, chapter_id: str, entry_id: str) -> bool: ...


class IntegrityStore(Protocol):
    async def raise_issue(self, issue: IntegrityIssue) -> tuple[IntegrityIssue, bool]: ...

    async def get_issue(self, issue_id: str) -> IntegrityIssue | None: ...

    async def update_issue(self, issue: IntegrityIssue) -> IntegrityIssue: ...

    async def find_by_user(self, user_id: str, open_only: bool = False) -> list[IntegrityIssue]: ...

    async def log_security_event(self, event: SecurityEvent) -> SecurityEvent: ...

    async def list_security_events(self, user_id: str) -> list[SecurityEvent]: ...


class PlanStore(Protocol):
    async def create_plan(self, plan: PlanDefinition) -> PlanDefinition: ...

    async def get_plan(self, plan_id: str) -> PlanDefinition | None: ...

    async def find_by_user(self, user_id: str) -> list[PlanDefinition]: ...


class FinanceStore(Protocol):
    async def create_transaction(self, txn: Transaction) -> bool: ...

    async def find_by_user(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        area_code: str | None = None,
    ) -> list[Transaction]: ...
