"""NarrativeAgent -- autobiography chapters per (era, area)

Every new entry lands in the chapter of its era for each area it was
classified into. Relevance of the link is the strongest weight x confidence
of the entry's classification links for that area. Each time a chapter gains
or loses an entry its summary, theme tags and coherence are regenerated from
all of its linked entries. An edited entry is re-placed: links to chapters
it no longer belongs to are dropped and every chapter it touches is rebuilt.
"""

from typing import Any

import structlog
from pydantic import BaseModel, Field
from ulid import ULID

from wisdomos.classifier import Classifier, clamp
from wisdomos.core.bus import EventBus
from wisdomos.core.clock import Clock
from wisdomos.core.exceptions import NotFoundError, ValidationError
from wisdomos.core.models import (
    ERAS,
    AgentType,
    Chapter,
    ChapterLink,
    DomainEvent,
    EventType,
    JournalEntry,
    LifeArea,
    era_for_year,
)
from wisdomos.core.models.payloads import (
    ChapterLinkCreatedPayload,
    ChapterUpdatedPayload,
    JournalEntryCreatedPayload,
    JournalEntryUpdatedPayload,
)
from wisdomos.core.store.protocols import AreaStore, JournalStore, NarrativeStore

from .base import BaseAgent, Operation, ensure_owner, parse_task_payload

log = structlog.get_logger()


class GenerateChapterTaskPayload(BaseModel):
    user_id: str = Field(min_length=1)
    era: str = Field(min_length=1, description="Era name, e.g. Mastery")
    area_id: str = Field(min_length=1)


def chapter_title(era: str, area: LifeArea) -> str:
    return f"{era}: {area.name}"


class NarrativeAgent(BaseAgent):
    agent_type = AgentType.NARRATIVE
    subscriptions = (EventType.JOURNAL_ENTRY_CREATED, EventType.JOURNAL_ENTRY_UPDATED)

    def __init__(
        self,
        bus: EventBus,
        clock: Clock,
        journal_store: JournalStore,
        area_store: AreaStore,
        narrative_store: NarrativeStore,
        classifier: Classifier,
    ) -> None:
        super().__init__(bus, clock)
        self._journal = journal_store
        self._areas = area_store
        self._narrative = narrative_store
        self._classifier = classifier

    @property
    def operations(self) -> dict[str, Operation]:
        return {"narrative.generate_chapter": self._generate_task}

    async def on_event(self, payload: BaseModel, event: DomainEvent) -> None:
        match payload:
            case JournalEntryCreatedPayload(entry_id=entry_id):
                await self.place_entry(entry_id)
            case JournalEntryUpdatedPayload(entry_id=entry_id):
                await self.replace_entry(entry_id)
            case _:
                await super().on_event(payload, event)

    async def place_entry(self, entry_id: str) -> list[Chapter]:
        """Link an entry into the chapter of each of its areas"""
        return await self._place(await self._entry(entry_id), rebuild_existing=False)

    async def replace_entry(self, entry_id: str) -> list[Chapter]:
        """Re-place an edited entry

        Links to chapters the entry no longer belongs to (other area, other
        era) are removed. Chapters the entry left and chapters it still belongs
        to are all regenerated, since the entry text may have changed.
        """
        entry = await self._entry(entry_id)
        placed = await self._place(entry, rebuild_existing=True)
        keep = {chapter.chapter_id for chapter in placed}
        for chapter in await self._narrative.chapters_for_entry(entry_id):
            if chapter.chapter_id in keep:
                continue
            self.checkpoint()
            await self._narrative.unlink_entry(chapter.chapter_id, entry_id)
            log.info(
                "chapter_link_removed",
                chapter_id=chapter.chapter_id,
                entry_id=entry_id,
                era=chapter.era,
                area_id=chapter.area_id,
            )
            await self.regenerate(chapter)
        return placed

    async def _entry(self, entry_id: str) -> JournalEntry:
        entry = await self._journal.get_entry(entry_id)
        if entry is None:
            raise NotFoundError("JournalEntry", entry_id)
        return entry

    async def _place(self, entry: JournalEntry, rebuild_existing: bool) -> list[Chapter]:
        entry_id = entry.entry_id
        era = era_for_year(entry.entry_date.year)
        if era is None:
            log.warning("entry_outside_eras", entry_id=entry_id, year=entry.entry_date.year)
            return []

        relevance: dict[str, float] = {}
        for link in await self._journal.list_links(entry_id):
            score = clamp(link.weight * link.confidence, 0.0, 1.0)
            relevance[link.area_id] = max(relevance.get(link.area_id, 0.0), score)
        if not relevance:
            log.debug("entry_without_areas", entry_id=entry_id)
            return []

        chapters: list[Chapter] = []
        for area_id, score in sorted(relevance.items()):
            self.checkpoint()
            area = await self._areas.get_area(area_id)
            if area is None:
                continue
            chapter = await self._chapter_for(entry.user_id, era.name, area)
            linked = await self._narrative.link_entry(
                ChapterLink(
                    chapter_id=chapter.chapter_id,
                    entry_id=entry_id,
                    relevance=round(score, 4),
                    created_at=self._clock.now(),
                )
            )
            if not linked:
                # membership unchanged
                chapters.append(await self.regenerate(chapter) if rebuild_existing else chapter)
                continue

            await self.emit(
                EventType.AUTOBIOGRAPHY_LINK_CREATED,
                ChapterLinkCreatedPayload(
                    chapter_id=chapter.chapter_id,
                    user_id=entry.user_id,
                    entry_id=entry_id,
                    relevance=round(score, 4),
                ),
                user_id=entry.user_id,
            )
            chapters.append(await self.regenerate(chapter))
        return chapters

    async def generate_chapter(self, user_id: str, era: str, area_id: str) -> Chapter:
        """Find or create the chapter of (user, era, area) and regenerate it"""
        if era not in {e.name for e in ERAS}:
            raise ValidationError.single("era", f"unknown era {era!r}")
        area = await self._areas.get_area(area_id)
        if area is None:
            raise NotFoundError("LifeArea", area_id)
        ensure_owner(area.user_id, user_id, "LifeArea", area_id)
        chapter = await self._chapter_for(user_id, era, area)
        return await self.regenerate(chapter)

    async def regenerate(self, chapter: Chapter) -> Chapter:
        """Rebuild summary, themes and coherence from all linked entries"""
        entries: list[JournalEntry] = []
        for link in await self._narrative.list_links(chapter.chapter_id):
            entry = await self._journal.get_entry(link.entry_id)
            if entry is not None:
                entries.append(entry)
        entries.sort(key=lambda e: (e.entry_date, e.entry_id))
        texts = [e.content for e in entries]

        if texts:
            summary = await self._classifier.summarize(texts)
            themes = await self._classifier.extract_themes(texts)
            coherence = round(clamp(await self._classifier.coherence(texts), 0.0, 1.0), 4)
        else:
            summary, themes, coherence = "", [], 0.0
        self.checkpoint()

        updated = await self._narrative.update_chapter(
            chapter.model_copy(
                update={
                    "summary": summary,
                    "themes": themes,
                    "coherence": coherence,
                    "entry_count": len(entries),
                    "updated_at": self._clock.now(),
                }
            )
        )
        log.info(
            "chapter_regenerated",
            chapter_id=chapter.chapter_id,
            era=chapter.era,
            area_id=chapter.area_id,
            entry_count=len(entries),
            coherence=coherence,
        )
        await self.emit(
            EventType.AUTOBIOGRAPHY_CHAPTER_UPDATED,
            ChapterUpdatedPayload(
                chapter_id=chapter.chapter_id,
                user_id=chapter.user_id,
                era=chapter.era,
                area_id=chapter.area_id,
                entry_count=len(entries),
                coherence=coherence,
            ),
            user_id=chapter.user_id,
        )
        return updated

    async def _chapter_for(self, user_id: str, era: str, area: LifeArea) -> Chapter:
        now = self._clock.now()
        chapter, created = await self._narrative.get_or_create_chapter(
            Chapter(
                chapter_id=str(ULID()),
                user_id=user_id,
                era=era,
                area_id=area.area_id,
                title=chapter_title(era, area),
                created_at=now,
                updated_at=now,
            )
        )
        if created:
            log.info(
                "chapter_created", chapter_id=chapter.chapter_id, era=era, area_id=area.area_id
            )
        return chapter

    async def _generate_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(GenerateChapterTaskPayload, payload)
        await self.generate_chapter(task.user_id, task.era, task.area_id)
