"""AreaGeneratorAgent -- life areas spawned from commitments

Before creating a ``CMT_nnn`` area the generator looks for an existing area
of the user similar enough to the commitment statement and reuses it, so
near-duplicate commitments do not multiply areas. The lookup and the
creation run under a per-user lock, so concurrent spawns see each other.
"""

from typing import Any

import structlog
from pydantic import BaseModel, Field
from ulid import ULID

from wisdomos.classifier import Classifier, clamp
from wisdomos.core.bus import EventBus
from wisdomos.core.clock import Clock
from wisdomos.core.config import EngineConfig
from wisdomos.core.exceptions import ConflictError, NotFoundError, RetryableAgentError
from wisdomos.core.locks import KeyedLocks
from wisdomos.core.models import (
    DEFAULT_AREA_DIMENSIONS,
    FIN_AREAS,
    AgentType,
    Commitment,
    CommitmentStatus,
    DomainEvent,
    EventType,
    LifeArea,
)
from wisdomos.core.models.payloads import (
    AreaSpawnedPayload,
    CommitmentConfirmedPayload,
    CommitmentStatusChangedPayload,
)
from wisdomos.core.store.protocols import AreaStore, CommitmentStore

from .base import BaseAgent, Operation, ensure_owner, parse_task_payload

log = structlog.get_logger()

AREA_NAME_MAX_LENGTH = 80
_CODE_ATTEMPTS = 3


class SpawnTaskPayload(BaseModel):
    user_id: str = Field(min_length=1)
    commitment_id: str = Field(min_length=1)


class CreateAreaTaskPayload(BaseModel):
    user_id: str = Field(min_length=1)
    code: str = Field(min_length=1, max_length=16)
    name: str = Field(min_length=1)
    dimensions: list[str] | None = None


def spawn_lock_key(user_id: str) -> str:
    return f"area-spawn:{user_id}"


def default_dimensions(code: str) -> list[str]:
    """Seeded finance-tracked areas also carry the FIN dimension"""
    dims = list(DEFAULT_AREA_DIMENSIONS)
    if code.upper() in FIN_AREAS:
        dims.append("FIN")
    return dims


class AreaGeneratorAgent(BaseAgent):
    agent_type = AgentType.AREA_GENERATOR
    subscriptions = (EventType.COMMITMENT_CONFIRMED,)

    def __init__(
        self,
        bus: EventBus,
        clock: Clock,
        config: EngineConfig,
        area_store: AreaStore,
        commitment_store: CommitmentStore,
        classifier: Classifier,
        locks: KeyedLocks | None = None,
    ) -> None:
        super().__init__(bus, clock)
        self._config = config
        self._areas = area_store
        self._commitments = commitment_store
        self._classifier = classifier
        self._locks = locks or KeyedLocks()

    @property
    def operations(self) -> dict[str, Operation]:
        return {
            "area.spawn": self._spawn_task,
            "area.create": self._create_task,
        }

    async def on_event(self, payload: BaseModel, event: DomainEvent) -> None:
        match payload:
            case CommitmentConfirmedPayload(commitment_id=commitment_id):
                await self.activate(commitment_id)
            case _:
                await super().on_event(payload, event)

    async def _spawn_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(SpawnTaskPayload, payload)
        commitment = await self._commitments.get_commitment(task.commitment_id)
        if commitment is None:
            raise NotFoundError("Commitment", task.commitment_id)
        ensure_owner(commitment.user_id, task.user_id, "Commitment", task.commitment_id)
        await self.spawn_area(commitment)

    async def _create_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(CreateAreaTaskPayload, payload)
        await self.create_area(task.user_id, task.code, task.name, task.dimensions)

    async def create_area(
        self,
        user_id: str,
        code: str,
        name: str,
        dimensions: list[str] | None = None,
    ) -> LifeArea:
        """Seed a user area; ConflictError when the code is taken"""
        area = await self._areas.create_area(
            LifeArea(
                area_id=str(ULID()),
                user_id=user_id,
                code=code.upper(),
                name=name,
                dimensions=dimensions or default_dimensions(code),
                created_at=self._clock.now(),
            )
        )
        log.info("area_created", area_id=area.area_id, user_id=user_id, code=area.code)
        return area

    async def activate(self, commitment_id: str) -> Commitment | None:
        """Spawn the area of a confirmed commitment, then make it active"""
        commitment = await self._commitments.get_commitment(commitment_id)
        if commitment is None:
            raise NotFoundError("Commitment", commitment_id)
        if commitment.status != CommitmentStatus.CONFIRMED:
            log.debug(
                "activation_skipped",
                commitment_id=commitment_id,
                status=commitment.status,
            )
            return commitment

        await self.spawn_area(commitment)
        self.checkpoint()
        activated = await self._commitments.update_status(
            commitment_id,
            CommitmentStatus.CONFIRMED,
            CommitmentStatus.ACTIVE,
            self._clock.now(),
        )
        await self.emit(
            EventType.COMMITMENT_STATUS_CHANGED,
            CommitmentStatusChangedPayload(
                commitment_id=commitment_id,
                user_id=commitment.user_id,
                from_status=CommitmentStatus.CONFIRMED,
                to_status=CommitmentStatus.ACTIVE,
                reason="confirmed",
            ),
            user_id=commitment.user_id,
        )
        return activated

    async def spawn_area(self, commitment: Commitment) -> LifeArea:
        """Reuse a similar area or create a new CMT_nnn one, and link it"""
        if commitment.area_id is not None:
            linked = await self._areas.get_area(commitment.area_id)
            if linked is not None:
                return linked

        async with self._locks.hold(spawn_lock_key(commitment.user_id)):
            area, reused = await self._find_similar(commitment), True
            if area is None:
                area, reused = await self._create_spawned(commitment), False
            await self._commitments.set_area(
                commitment.commitment_id, area.area_id, self._clock.now()
            )

        log.info(
            "area_spawned",
            area_id=area.area_id,
            commitment_id=commitment.commitment_id,
            code=area.code,
            reused=reused,
        )
        await self.emit(
            EventType.AREA_SPAWNED,
            AreaSpawnedPayload(
                area_id=area.area_id,
                user_id=commitment.user_id,
                commitment_id=commitment.commitment_id,
                code=area.code,
                name=area.name,
                reused=reused,
            ),
            user_id=commitment.user_id,
        )
        return area

    async def _find_similar(self, commitment: Commitment) -> LifeArea | None:
        best: LifeArea | None = None
        best_score = 0.0
        for area in await self._areas.find_by_user(commitment.user_id):
            score = clamp(await self._classifier.similarity(commitment.statement, area.name), 0, 1)
            if score > best_score:
                best, best_score = area, score
        if best is not None and best_score > self._config.area_similarity_threshold:
            log.debug(
                "similar_area_found",
                area_id=best.area_id,
                similarity=best_score,
                commitment_id=commitment.commitment_id,
            )
            return best
        return None

    async def _create_spawned(self, commitment: Commitment) -> LifeArea:
        last_error: ConflictError | None = None
        for _ in range(_CODE_ATTEMPTS):
            sequence = await self._areas.count_spawned(commitment.user_id) + 1
            try:
                return await self._areas.create_area(
                    LifeArea(
                        area_id=str(ULID()),
                        user_id=commitment.user_id,
                        code=f"CMT_{sequence:03d}",
                        name=commitment.statement[:AREA_NAME_MAX_LENGTH],
                        dimensions=list(DEFAULT_AREA_DIMENSIONS),
                        commitment_id=commitment.commitment_id,
                        created_at=self._clock.now(),
                    )
                )
            except ConflictError as e:
                # another spawn took the code first
                last_error = e
        raise RetryableAgentError(
            f"Could not allocate an area code for commitment {commitment.commitment_id}"
        ) from last_error
