"""FulfilmentAgent -- periodic (area, dimension) scores

Three normalized signals feed each score:

- entry signal: confidence-weighted mean of the 0-5 classification signals
- action completion: completed / resolved-or-pending actions, scaled x5
- mean sentiment: [-1, 1] rescaled onto [0, 5]

``score = clamp(0, 5, 0.4*entry + 0.4*completion*5 + 0.2*(sentiment+1)*2.5)``,
``confidence = min(1, ln(1+n)/3)``, ``trend = score - prior period score``.
Rollups are upserts keyed by (user, area, dimension, period_type,
period_start). A rollup holds the lock of its (user, period) from the first
read to the last write; single-key writes are serialized as well.
"""

import math
from datetime import UTC, date, datetime, time
from typing import Any

import structlog
from pydantic import BaseModel, Field
from ulid import ULID

from wisdomos.core.bus import EventBus
from wisdomos.core.clock import Clock
from wisdomos.core.locks import KeyedLocks
from wisdomos.core.models import (
    ActionStatus,
    AgentType,
    CommitmentAction,
    DomainEvent,
    EventType,
    FulfilmentEntry,
    FulfilmentRollup,
    PeriodType,
)
from wisdomos.core.models.payloads import (
    FulfilmentRollupCompletedPayload,
    FulfilmentRollupRequestedPayload,
)
from wisdomos.core.store.protocols import (
    AreaStore,
    CommitmentStore,
    FulfilmentStore,
    JournalStore,
)

from .base import BaseAgent, Operation, parse_task_payload

log = structlog.get_logger()

WEIGHT_ENTRY = 0.4
WEIGHT_ACTION = 0.4
WEIGHT_SENTIMENT = 0.2

# Finance owns this dimension
FIN_DIMENSION = "FIN"

# Used for a signal with no observations in the period
NEUTRAL_ENTRY_SIGNAL = 2.5
NEUTRAL_COMPLETION = 0.5


# ---- periods ----


def period_start(moment: date | datetime, period_type: PeriodType) -> date:
    """First day of the month or quarter containing ``moment``"""
    day = moment.date() if isinstance(moment, datetime) else moment
    if period_type == PeriodType.QUARTER:
        first_month = 3 * ((day.month - 1) // 3) + 1
        return date(day.year, first_month, 1)
    return date(day.year, day.month, 1)


def _add_months(start: date, months: int) -> date:
    index = start.year * 12 + (start.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def period_bounds(moment: date | datetime, period_type: PeriodType) -> tuple[date, date]:
    """[start, end) of the period containing ``moment``"""
    start = period_start(moment, period_type)
    months = 3 if period_type == PeriodType.QUARTER else 1
    return start, _add_months(start, months)


def previous_period_start(start: date, period_type: PeriodType) -> date:
    months = 3 if period_type == PeriodType.QUARTER else 1
    return _add_months(period_start(start, period_type), -months)


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


# ---- scoring ----


class ScoreResult(BaseModel):
    score: float = Field(ge=0.0, le=5.0)
    confidence: float = Field(ge=0.0, le=1.0)
    trend: float = 0.0


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def compute_score(
    entry_signal: float,
    action_completion: float,
    sentiment_mean: float,
    observations: int,
    prior_score: float | None = None,
) -> ScoreResult:
    """Pure score computation

    Inputs are clamped to their ranges first, so any finite input yields a
    score in [0, 5] and a confidence in [0, 1].
    """
    entry_signal = _clamp(entry_signal, 0.0, 5.0)
    action_completion = _clamp(action_completion, 0.0, 1.0)
    sentiment_mean = _clamp(sentiment_mean, -1.0, 1.0)

    raw = (
        WEIGHT_ENTRY * entry_signal
        + WEIGHT_ACTION * (action_completion * 5)
        + WEIGHT_SENTIMENT * ((sentiment_mean + 1) * 2.5)
    )
    score = round(_clamp(raw, 0.0, 5.0), 2)
    confidence = round(min(1.0, math.log1p(max(observations, 0)) / 3), 2)
    trend = round(score - prior_score, 2) if prior_score is not None else 0.0
    return ScoreResult(score=score, confidence=confidence, trend=trend)


def rollup_lock_key(
    user_id: str, area_id: str, dimension: str, period_type: PeriodType, start: date
) -> str:
    return f"rollup:{user_id}:{area_id}:{dimension}:{period_type}:{start.isoformat()}"


def period_lock_key(user_id: str, period_type: PeriodType, start: date) -> str:
    return f"rollup:{user_id}:{period_type}:{start.isoformat()}"


# ---- task payloads ----


class RollupTaskPayload(BaseModel):
    user_id: str = Field(min_length=1)
    period_type: PeriodType = PeriodType.MONTH
    period_start: date | None = Field(default=None, description="Defaults to the current period")


class RecordEntryTaskPayload(BaseModel):
    user_id: str = Field(min_length=1)
    life_area: str = Field(min_length=1)
    source_type: str = Field(min_length=1)
    source_id: str = Field(min_length=1)
    title: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime | None = None


class _Observations:
    """Per (area, dimension) accumulator"""

    def __init__(self) -> None:
        self.weighted_signal = 0.0
        self.weight = 0.0
        self.signals: list[float] = []
        self.sentiments: list[float] = []

    def add(self, signal: float, weight: float, sentiment: float) -> None:
        self.weighted_signal += signal * weight
        self.weight += weight
        self.signals.append(signal)
        self.sentiments.append(sentiment)

    @property
    def count(self) -> int:
        return len(self.signals)

    def entry_signal(self) -> float:
        if not self.signals:
            return NEUTRAL_ENTRY_SIGNAL
        if self.weight > 0:
            return self.weighted_signal / self.weight
        return sum(self.signals) / len(self.signals)

    def sentiment_mean(self) -> float:
        if not self.sentiments:
            return 0.0
        return sum(self.sentiments) / len(self.sentiments)


class FulfilmentAgent(BaseAgent):
    """Computes and stores fulfilment rollups"""

    agent_type = AgentType.FULFILMENT
    subscriptions = (EventType.FULFILMENT_ROLLUP_REQUESTED,)

    def __init__(
        self,
        bus: EventBus,
        clock: Clock,
        journal_store: JournalStore,
        area_store: AreaStore,
        commitment_store: CommitmentStore,
        fulfilment_store: FulfilmentStore,
        locks: KeyedLocks | None = None,
    ) -> None:
        super().__init__(bus, clock)
        self._journal = journal_store
        self._areas = area_store
        self._commitments = commitment_store
        self._fulfilment = fulfilment_store
        self._locks = locks or KeyedLocks()

    @property
    def operations(self) -> dict[str, Operation]:
        return {
            "fulfilment.rollup": self._rollup_task,
            "fulfilment.record_entry": self._record_entry_task,
        }

    async def on_event(self, payload: BaseModel, event: DomainEvent) -> None:
        match payload:
            case FulfilmentRollupRequestedPayload(
                user_id=user_id, period_type=period_type, period_start=start
            ):
                await self.rollup(user_id, period_type, start)
            case _:
                await super().on_event(payload, event)

    async def _rollup_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(RollupTaskPayload, payload)
        start = task.period_start or self._clock.now().date()
        await self.rollup(task.user_id, task.period_type, start)

    async def _record_entry_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(RecordEntryTaskPayload, payload)
        now = self._clock.now()
        await self.record_fulfilment_entry(
            FulfilmentEntry(
                entry_id=str(ULID()),
                user_id=task.user_id,
                life_area=task.life_area,
                source_type=task.source_type,
                source_id=task.source_id,
                title=task.title,
                metadata=task.metadata,
                occurred_at=task.occurred_at or now,
                created_at=now,
            )
        )

    async def record_fulfilment_entry(self, entry: FulfilmentEntry) -> FulfilmentEntry:
        """Mirror a contribution; ConflictError when the source is already mirrored"""
        stored = await self._fulfilment.record_entry(entry)
        log.info(
            "fulfilment_entry_recorded",
            user_id=entry.user_id,
            life_area=entry.life_area,
            source_type=entry.source_type,
            source_id=entry.source_id,
        )
        return stored

    async def rollup(
        self,
        user_id: str,
        period_type: PeriodType = PeriodType.MONTH,
        moment: date | datetime | None = None,
    ) -> list[FulfilmentRollup]:
        """Recompute every (area, dimension) score of one user for one period"""
        start, end = period_bounds(moment or self._clock.now(), period_type)
        prior_start = previous_period_start(start, period_type)
        log.info(
            "fulfilment_rollup_started",
            user_id=user_id,
            period_type=period_type,
            period_start=start.isoformat(),
        )
        async with self._locks.hold(period_lock_key(user_id, period_type, start)):
            written = await self._recompute(user_id, period_type, start, end, prior_start)

        area_ids = sorted({r.area_id for r in written})
        await self.emit(
            EventType.FULFILMENT_ROLLUP_COMPLETED,
            FulfilmentRollupCompletedPayload(
                user_id=user_id,
                period_type=period_type,
                period_start=start,
                rollup_count=len(written),
                area_ids=area_ids,
            ),
            user_id=user_id,
        )
        log.info(
            "fulfilment_rollup_completed",
            user_id=user_id,
            period_type=period_type,
            period_start=start.isoformat(),
            rollup_count=len(written),
        )
        return written

    async def _recompute(
        self,
        user_id: str,
        period_type: PeriodType,
        start: date,
        end: date,
        prior_start: date,
    ) -> list[FulfilmentRollup]:
        observations: dict[tuple[str, str], _Observations] = {}
        entries = await self._journal.find_by_user(user_id, start_of_day(start), start_of_day(end))
        for entry in entries:
            for link in await self._journal.list_links(entry.entry_id):
                key = (link.area_id, link.dimension)
                observations.setdefault(key, _Observations()).add(
                    link.signal, link.weight * link.confidence, entry.sentiment
                )

        actions_by_area = await self._actions_by_area(
            user_id, start_of_day(start), start_of_day(end)
        )

        written: list[FulfilmentRollup] = []
        for area in await self._areas.find_by_user(user_id):
            self.checkpoint()
            actions = actions_by_area.get(area.area_id, [])
            for dimension in area.dimensions:
                if dimension == FIN_DIMENSION:
                    continue
                obs = observations.get((area.area_id, dimension), _Observations())
                if obs.count == 0 and not actions:
                    continue

                completed = sum(1 for a in actions if a.status == ActionStatus.COMPLETED)
                completion = completed / len(actions) if actions else NEUTRAL_COMPLETION
                prior = await self._fulfilment.get_rollup(
                    user_id, area.area_id, dimension, period_type, prior_start
                )
                result = compute_score(
                    entry_signal=obs.entry_signal(),
                    action_completion=completion,
                    sentiment_mean=obs.sentiment_mean(),
                    observations=obs.count + len(actions),
                    prior_score=prior.score if prior else None,
                )
                written.append(
                    await self._write(
                        user_id, area.area_id, dimension, period_type, start, result,
                        obs.count + len(actions),
                    )
                )
        return written

    async def write_score(
        self,
        user_id: str,
        area_id: str,
        dimension: str,
        period_type: PeriodType,
        start: date,
        result: ScoreResult,
        observations: int,
    ) -> FulfilmentRollup:
        """Upsert one externally computed score (used for the FIN dimension)"""
        return await self._write(
            user_id, area_id, dimension, period_type, start, result, observations
        )

    async def _write(
        self,
        user_id: str,
        area_id: str,
        dimension: str,
        period_type: PeriodType,
        start: date,
        result: ScoreResult,
        observations: int,
    ) -> FulfilmentRollup:
        async with self._locks.hold(
            rollup_lock_key(user_id, area_id, dimension, period_type, start)
        ):
            return await self._fulfilment.upsert_rollup(
                FulfilmentRollup(
                    rollup_id=str(ULID()),
                    user_id=user_id,
                    area_id=area_id,
                    dimension=dimension,
                    period_type=period_type,
                    period_start=start,
                    score=result.score,
                    confidence=result.confidence,
                    trend=result.trend,
                    observations=observations,
                    updated_at=self._clock.now(),
                )
            )

    async def _actions_by_area(
        self, user_id: str, start: datetime, end: datetime
    ) -> dict[str, list[CommitmentAction]]:
        """Actions of area-linked commitments that count for the period

        An action counts when it was created before the period ends and is
        still pending or was resolved no earlier than the period start.
        """
        by_area: dict[str, list[CommitmentAction]] = {}
        for commitment in await self._commitments.find_by_user(user_id):
            if commitment.area_id is None:
                continue
            for action in await self._commitments.list_actions(commitment.commitment_id):
                if action.created_at >= end:
                    continue
                if action.status != ActionStatus.PENDING and action.updated_at < start:
                    continue
                by_area.setdefault(commitment.area_id, []).append(action)
        return by_area
