"""JournalAgent -- journal ingestion and time-locked edits

``journal.ingest`` scores and classifies an entry, stores it with its area
links and emits ``journal.entry.created`` followed by
``fulfilment.rollup.requested``. The rollup request is emitted for every
entry; coalescing it is the orchestrator's job.
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import BaseModel, Field
from ulid import ULID

from wisdomos.classifier import Classifier, clamp
from wisdomos.core.bus import EventBus
from wisdomos.core.clock import Clock
from wisdomos.core.config import CONTENT_PREVIEW_LENGTH, EngineConfig
from wisdomos.core.exceptions import FieldError, NotFoundError, ValidationError
from wisdomos.core.models import (
    AgentType,
    EntryAreaLink,
    EventType,
    JournalEntry,
    LifeArea,
)
from wisdomos.core.models.payloads import (
    FulfilmentRollupRequestedPayload,
    JournalEntryCreatedPayload,
    JournalEntryUpdatedPayload,
)
from wisdomos.core.store.protocols import AreaStore, JournalStore

from .base import BaseAgent, Operation, parse_task_payload
from .fulfilment import period_start
from .integrity import IntegrityAgent

log = structlog.get_logger()

# Link confidence for areas the user tagged but the classifier missed
TAGGED_AREA_CONFIDENCE = 0.5


class IngestTaskPayload(BaseModel):
    user_id: str = ""
    content: str = ""
    entry_date: datetime | None = None
    tags: list[str] = Field(default_factory=list, description="Area codes")


class UpdateTaskPayload(BaseModel):
    user_id: str = Field(min_length=1)
    entry_id: str = Field(min_length=1)
    content: str | None = None
    entry_date: datetime | None = None
    tags: list[str] | None = None


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class JournalAgent(BaseAgent):
    agent_type = AgentType.JOURNAL

    def __init__(
        self,
        bus: EventBus,
        clock: Clock,
        config: EngineConfig,
        journal_store: JournalStore,
        area_store: AreaStore,
        classifier: Classifier,
        integrity: IntegrityAgent,
    ) -> None:
        super().__init__(bus, clock)
        self._config = config
        self._journal = journal_store
        self._areas = area_store
        self._classifier = classifier
        self._integrity = integrity

    @property
    def operations(self) -> dict[str, Operation]:
        return {
            "journal.ingest": self._ingest_task,
            "journal.update": self._update_task,
        }

    async def _ingest_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(IngestTaskPayload, payload)
        await self.ingest(task.user_id, task.content, task.entry_date, task.tags)

    async def _update_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(UpdateTaskPayload, payload)
        await self.update(task.user_id, task.entry_id, task.content, task.entry_date, task.tags)

    async def ingest(
        self,
        user_id: str,
        content: str,
        entry_date: datetime | None = None,
        tags: list[str] | None = None,
    ) -> JournalEntry:
        """Score, classify, store and announce a new entry

        Raises:
            ValidationError: empty content or missing user id
        """
        errors = []
        if not user_id or not user_id.strip():
            errors.append(FieldError(field="user_id", message="must not be empty"))
        if not content or not content.strip():
            errors.append(FieldError(field="content", message="must not be empty"))
        if errors:
            raise ValidationError("Invalid journal entry", errors)

        now = self._clock.now()
        entry_id = str(ULID())
        sentiment, links = await self._analyze(entry_id, user_id, content, tags or [])
        self.checkpoint()

        entry = JournalEntry(
            entry_id=entry_id,
            user_id=user_id,
            content=content,
            entry_date=_aware(entry_date) if entry_date else now,
            sentiment=sentiment,
            tags=tags or [],
            created_at=now,
            updated_at=now,
        )
        await self._journal.create_entry(entry, links)
        log.info(
            "journal_entry_ingested",
            entry_id=entry_id,
            user_id=user_id,
            sentiment=sentiment,
            link_count=len(links),
        )

        await self.emit(
            EventType.JOURNAL_ENTRY_CREATED,
            JournalEntryCreatedPayload(
                entry_id=entry_id,
                user_id=user_id,
                entry_date=entry.entry_date,
                sentiment=sentiment,
                area_ids=sorted({link.area_id for link in links}),
                content_preview=content[:CONTENT_PREVIEW_LENGTH],
            ),
            user_id=user_id,
        )
        await self._request_rollup(user_id, entry.entry_date, "journal_entry_created")
        return entry

    async def update(
        self,
        user_id: str,
        entry_id: str,
        content: str | None = None,
        entry_date: datetime | None = None,
        tags: list[str] | None = None,
    ) -> JournalEntry:
        """Edit an entry inside its time-lock window

        Raises:
            NotFoundError: unknown entry
            UnauthorizedError: entry owned by someone else
            TimeLockViolation: edit outside the window (entry gets locked)
            ValidationError: content set to empty
        """
        entry = await self._journal.get_entry(entry_id)
        if entry is None:
            raise NotFoundError("JournalEntry", entry_id)
        await self._integrity.validate_entry_edit(entry, user_id)

        if content is not None and not content.strip():
            raise ValidationError.single("content", "must not be empty")

        changed: dict[str, Any] = {}
        if content is not None and content != entry.content:
            changed["content"] = content
        if entry_date is not None and _aware(entry_date) != entry.entry_date:
            changed["entry_date"] = _aware(entry_date)
        if tags is not None and tags != entry.tags:
            changed["tags"] = tags
        if not changed:
            return entry

        links = None
        if "content" in changed or "tags" in changed:
            sentiment, links = await self._analyze(
                entry_id,
                user_id,
                changed.get("content", entry.content),
                changed.get("tags", entry.tags),
            )
            changed["sentiment"] = sentiment
        self.checkpoint()

        updated = entry.model_copy(update={**changed, "updated_at": self._clock.now()})
        await self._journal.update_entry(updated, links)
        log.info("journal_entry_updated", entry_id=entry_id, fields=sorted(changed))

        await self.emit(
            EventType.JOURNAL_ENTRY_UPDATED,
            JournalEntryUpdatedPayload(
                entry_id=entry_id, user_id=user_id, changed_fields=sorted(changed)
            ),
            user_id=user_id,
        )
        await self._request_rollup(user_id, updated.entry_date, "journal_entry_updated")
        return updated

    async def _analyze(
        self, entry_id: str, user_id: str, content: str, tags: list[str]
    ) -> tuple[float, list[EntryAreaLink]]:
        """Sentiment and area links of an entry

        Tags restrict classification to the tagged areas and guarantee a link
        for each of them.
        """
        sentiment = round(clamp(await self._classifier.sentiment(content), -1.0, 1.0), 4)

        areas = await self._areas.find_by_user(user_id)
        if tags:
            wanted = {t.upper() for t in tags}
            areas = [a for a in areas if a.code.upper() in wanted]
        if not areas:
            return sentiment, []

        by_id: dict[str, LifeArea] = {a.area_id: a for a in areas}
        links: dict[tuple[str, str], EntryAreaLink] = {}
        for signal in await self._classifier.classify(content, areas):
            area = by_id.get(signal.area_id)
            if area is None or signal.dimension not in area.dimensions:
                continue
            links[(signal.area_id, signal.dimension)] = EntryAreaLink(
                entry_id=entry_id,
                area_id=signal.area_id,
                dimension=signal.dimension,
                weight=clamp(signal.weight, 0.0, 1.0),
                confidence=clamp(signal.confidence, 0.0, 1.0),
                signal=clamp(signal.signal, 0.0, 5.0),
            )

        if tags:
            fallback_signal = round(clamp(2.5 + 2.5 * sentiment, 0.0, 5.0), 4)
            for area in areas:
                if any(key[0] == area.area_id for key in links):
                    continue
                for dimension in area.dimensions:
                    links[(area.area_id, dimension)] = EntryAreaLink(
                        entry_id=entry_id,
                        area_id=area.area_id,
                        dimension=dimension,
                        weight=round(1 / len(areas), 4),
                        confidence=TAGGED_AREA_CONFIDENCE,
                        signal=fallback_signal,
                    )
        return sentiment, list(links.values())

    async def _request_rollup(self, user_id: str, moment: datetime, reason: str) -> None:
        period_type = self._config.rollup_period
        await self.emit(
            EventType.FULFILMENT_ROLLUP_REQUESTED,
            FulfilmentRollupRequestedPayload(
                user_id=user_id,
                period_type=period_type,
                period_start=period_start(moment, period_type),
                reason=reason,
            ),
            user_id=user_id,
        )
