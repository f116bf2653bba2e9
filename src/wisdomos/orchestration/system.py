"""System assembly -- wires stores, bus, agents and orchestrator

``build_system`` is the single place where the object graph is built; the
gateway lifespan, the CLI and the tests all go through it.
"""

from datetime import date, datetime

import structlog

from wisdomos.agents import (
    AreaGeneratorAgent,
    CommitmentAgent,
    FinanceAgent,
    FulfilmentAgent,
    IntegrityAgent,
    JournalAgent,
    NarrativeAgent,
)
from wisdomos.agents.base import BaseAgent
from wisdomos.agents.fulfilment import period_lock_key, period_start
from wisdomos.classifier import Classifier, build_classifier, load_classifier_config
from wisdomos.core.bus import EventBus
from wisdomos.core.clock import Clock, SystemClock
from wisdomos.core.config import EngineConfig, load_engine_config
from wisdomos.core.locks import KeyedLocks
from wisdomos.core.models import AgentType, Job, PeriodType, new_envelope
from wisdomos.core.store import StoreGroup

from .orchestrator import Orchestrator
from .planner import PlannerAgent

log = structlog.get_logger()


def rollup_job_lock_key(user_id: str, period_type: PeriodType, start: date) -> str:
    # distinct from the key the agent itself holds; KeyedLocks are not reentrant
    return f"job:{period_lock_key(user_id, period_type, start)}"


class WisdomSystem:
    """The assembled engine"""

    def __init__(
        self,
        stores: StoreGroup,
        config: EngineConfig,
        clock: Clock,
        bus: EventBus,
        orchestrator: Orchestrator,
        agents: dict[AgentType, BaseAgent],
    ) -> None:
        self.stores = stores
        self.config = config
        self.clock = clock
        self.bus = bus
        self.orchestrator = orchestrator
        self.agents = agents

    @property
    def planner(self) -> PlannerAgent:
        return self.agents[AgentType.PLANNER]  # type: ignore[return-value]

    async def run_scheduled_rollup(
        self,
        period_type: PeriodType | None = None,
        moment: datetime | None = None,
    ) -> list[Job]:
        """Submit one rollup job per known user for the period containing ``moment``"""
        period_type = period_type or self.config.rollup_period
        now = self.clock.now()
        start = period_start(moment or now, period_type)
        jobs: list[Job] = []
        for user_id in await self.stores.journal_store.list_users():
            envelope = new_envelope(
                actor=AgentType.FULFILMENT,
                task="fulfilment.rollup",
                payload={
                    "user_id": user_id,
                    "period_type": period_type.value,
                    "period_start": start.isoformat(),
                },
                created_at=now,
                max_attempts=self.config.job_max_attempts,
                backoff=self.config.job_backoff,
                metadata={"trigger": "schedule"},
            )
            jobs.append(
                await self.orchestrator.submit(
                    envelope, lock_key=rollup_job_lock_key(user_id, period_type, start)
                )
            )
        log.info(
            "scheduled_rollup_submitted",
            period_type=period_type,
            period_start=start.isoformat(),
            users=len(jobs),
        )
        return jobs

    async def run_scheduled_integrity_sweep(self, user_id: str | None = None) -> Job:
        """Submit an integrity sweep (every user unless ``user_id`` is given)"""
        envelope = new_envelope(
            actor=AgentType.INTEGRITY,
            task="integrity.sweep",
            payload={"user_id": user_id} if user_id else {},
            created_at=self.clock.now(),
            max_attempts=self.config.job_max_attempts,
            backoff=self.config.job_backoff,
            metadata={"trigger": "schedule"},
        )
        job = await self.orchestrator.submit(envelope)
        log.info("scheduled_integrity_sweep_submitted", job_id=job.job_id, user_id=user_id)
        return job


def build_system(
    stores: StoreGroup,
    config: EngineConfig | None = None,
    classifier: Classifier | None = None,
    clock: Clock | None = None,
) -> WisdomSystem:
    """Wire agents, bus and orchestrator over an open store group"""
    config = config or load_engine_config()
    classifier = classifier or build_classifier(load_classifier_config())
    clock = clock or SystemClock()
    locks = KeyedLocks()

    bus = EventBus(stores.event_store)
    orchestrator = Orchestrator(
        stores.job_store, stores.event_store, bus, clock, config, locks=locks
    )

    integrity = IntegrityAgent(
        bus,
        clock,
        config,
        stores.journal_store,
        stores.commitment_store,
        stores.integrity_store,
    )
    area_generator = AreaGeneratorAgent(
        bus,
        clock,
        config,
        stores.area_store,
        stores.commitment_store,
        classifier,
        locks=locks,
    )
    fulfilment = FulfilmentAgent(
        bus,
        clock,
        stores.journal_store,
        stores.area_store,
        stores.commitment_store,
        stores.fulfilment_store,
        locks=locks,
    )
    agents: list[BaseAgent] = [
        JournalAgent(
            bus,
            clock,
            config,
            stores.journal_store,
            stores.area_store,
            classifier,
            integrity,
        ),
        CommitmentAgent(
            bus,
            clock,
            config,
            stores.journal_store,
            stores.commitment_store,
            classifier,
            area_generator,
        ),
        area_generator,
        fulfilment,
        NarrativeAgent(
            bus,
            clock,
            stores.journal_store,
            stores.area_store,
            stores.narrative_store,
            classifier,
        ),
        integrity,
        FinanceAgent(
            bus,
            clock,
            stores.finance_store,
            stores.area_store,
            stores.fulfilment_store,
            fulfilment,
        ),
        PlannerAgent(bus, clock, stores.plan_store, orchestrator),
    ]
    for agent in agents:
        orchestrator.register(agent)

    log.info("system_built", agents=[str(a.agent_type) for a in agents])
    return WisdomSystem(
        stores=stores,
        config=config,
        clock=clock,
        bus=bus,
        orchestrator=orchestrator,
        agents={a.agent_type: a for a in agents},
    )
