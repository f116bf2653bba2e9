"""PlannerAgent -- objective -> owned, ordered task DAG scheduled as jobs

Planning pipeline:
1. analyze the objective into high-level tasks (pluggable ObjectiveAnalyzer)
2. decompose each into an atomic TaskDefinition
3. link dependencies (declared keys, or producer -> consumer artifacts)
4. Kahn topological sort; a cycle aborts the plan before anything is stored
5. assign owners; unregistered agents and unmatched tasks go to a human
6. estimate hours and derive run_at / expected_completion
7. persist the plan, emit ``plan.created`` and submit one job per task
"""

from collections import deque
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, Protocol

import structlog
from pydantic import BaseModel, Field
from ulid import ULID

from wisdomos.agents.base import PLAN_TASK, BaseAgent, Operation, parse_task_payload
from wisdomos.core.bus import EventBus
from wisdomos.core.clock import Clock
from wisdomos.core.exceptions import DependencyCycleError, ValidationError
from wisdomos.core.models import (
    HUMAN_OWNER,
    AgentType,
    EventType,
    HighLevelTask,
    Intent,
    PlanDefinition,
    PlanStatus,
    TaskDefinition,
    new_envelope,
)
from wisdomos.core.models.payloads import PlanCreatedPayload
from wisdomos.core.store.protocols import PlanStore

from .orchestrator import Orchestrator

log = structlog.get_logger()

BASE_ESTIMATE_HOURS = 2.0
MANY_DEPENDENCIES = 2
HUMAN_ESTIMATE_FACTOR = 1.5

# Queued plan tasks stay valid this long past their scheduled start
PLAN_TASK_TTL_SEC = 30 * 86400

# keyword -> owner, first match wins
OWNER_KEYWORDS: list[tuple[tuple[str, ...], AgentType]] = [
    (("database", "schema"), AgentType.DATABASE),
    (("security", "encrypt"), AgentType.SECURITY),
    (("journal", "entry"), AgentType.JOURNAL),
    (("score", "rollup"), AgentType.FULFILMENT),
    (("finance", "transaction"), AgentType.FINANCE),
    (("analytics", "kpi"), AgentType.ANALYTICS),
]


def _hl(key: str, description: str, produces: list[str], consumes: list[str]) -> HighLevelTask:
    return HighLevelTask(
        key=key, description=description, category=key, produces=produces, consumes=consumes
    )


class ObjectiveAnalyzer(Protocol):
    async def analyze(self, objective: str, constraints: list[str]) -> list[HighLevelTask]: ...


class KeywordObjectiveAnalyzer:
    """Pattern-based breakdown into four phases chained by their artifacts"""

    async def analyze(self, objective: str, constraints: list[str]) -> list[HighLevelTask]:
        text = objective.lower()
        if "deploy" in text:
            return [
                _hl("infrastructure", "Setup infrastructure", ["environment"], []),
                _hl("database", "Deploy database", ["database"], ["environment"]),
                _hl("application", "Deploy application", ["release"], ["environment", "database"]),
                _hl("verification", "Verify deployment", ["verification_report"], ["release"]),
            ]
        if "implement" in text:
            return [
                _hl("design", "Design solution", ["design_doc"], []),
                _hl("development", "Implement code", ["code"], ["design_doc"]),
                _hl("testing", "Write tests", ["test_suite"], ["code"]),
                _hl("deployment", "Deploy to production", ["release"], ["code", "test_suite"]),
            ]
        return [
            _hl("research", "Research requirements", ["requirements"], []),
            _hl("planning", "Plan approach", ["approach"], ["requirements"]),
            _hl("execution", "Execute tasks", ["results"], ["approach"]),
            _hl(
                "validation",
                "Validate results",
                ["validation_report"],
                ["results", "requirements"],
            ),
        ]


OwnerHeuristic = Callable[[TaskDefinition], str | None]


def keyword_owner(task: TaskDefinition) -> str | None:
    text = " ".join(
        [task.description, task.definition_of_done, *task.inputs, *task.outputs]
    ).lower()
    for keywords, agent in OWNER_KEYWORDS:
        if any(word in text for word in keywords):
            return str(agent)
    return None


def estimate_hours(task: TaskDefinition) -> float:
    hours = BASE_ESTIMATE_HOURS
    if len(task.dependencies) > MANY_DEPENDENCIES:
        hours += 1
    if task.owner == HUMAN_OWNER:
        hours *= HUMAN_ESTIMATE_FACTOR
    return hours


def topological_order(tasks: list[TaskDefinition]) -> list[TaskDefinition]:
    """Kahn's algorithm, stable on input order

    Raises:
        DependencyCycleError: naming the keys of the tasks left on a cycle
    """
    by_id = {task.task_id: task for task in tasks}
    in_degree = {task.task_id: 0 for task in tasks}
    dependents: dict[str, list[str]] = {task.task_id: [] for task in tasks}
    for task in tasks:
        for dep in task.dependencies:
            dependents[dep].append(task.task_id)
            in_degree[task.task_id] += 1

    queue = deque(task.task_id for task in tasks if in_degree[task.task_id] == 0)
    ordered: list[TaskDefinition] = []
    while queue:
        task_id = queue.popleft()
        ordered.append(by_id[task_id])
        for dependent in dependents[task_id]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    if len(ordered) != len(tasks):
        cycle = [task.key for task in tasks if in_degree[task.task_id] > 0]
        raise DependencyCycleError(cycle)
    return ordered


def critical_path(plan: PlanDefinition) -> list[str]:
    """task_ids of the chain ending at the latest expected completion"""
    by_id = {task.task_id: task for task in plan.tasks}
    scheduled = [t for t in plan.tasks if t.expected_completion is not None]
    if not scheduled:
        return []
    current: TaskDefinition | None = max(scheduled, key=lambda t: t.expected_completion)
    path: list[str] = []
    while current is not None:
        path.append(current.task_id)
        deps = [by_id[d] for d in current.dependencies if d in by_id]
        current = max(deps, key=lambda t: t.expected_completion, default=None)
    path.reverse()
    return path


class GeneratePlanTaskPayload(BaseModel):
    user_id: str = Field(min_length=1)
    objective: str = Field(min_length=1)
    constraints: list[str] = Field(default_factory=list)
    current_state: dict[str, Any] = Field(default_factory=dict)
    deadline: datetime | None = None
    priority: int = Field(default=3, ge=1, le=5)


class PlannerAgent(BaseAgent):
    agent_type = AgentType.PLANNER

    def __init__(
        self,
        bus: EventBus,
        clock: Clock,
        plan_store: PlanStore,
        orchestrator: Orchestrator,
        analyzer: ObjectiveAnalyzer | None = None,
        owner_heuristic: OwnerHeuristic | None = None,
    ) -> None:
        super().__init__(bus, clock)
        self._plans = plan_store
        self._orchestrator = orchestrator
        self._analyzer = analyzer or KeywordObjectiveAnalyzer()
        self._owner_heuristic = owner_heuristic or keyword_owner

    @property
    def operations(self) -> dict[str, Operation]:
        return {"planner.generate_plan": self._generate_task}

    async def generate_plan(
        self,
        objective: str,
        constraints: list[str] | None = None,
        current_state: dict[str, Any] | None = None,
        deadline: datetime | None = None,
        priority: int = 3,
        user_id: str = "",
    ) -> PlanDefinition:
        """Plan an objective and schedule its tasks

        Raises:
            ValidationError: empty objective or user, unknown declared dependency
            DependencyCycleError: the task graph has a cycle (nothing stored)
        """
        if not objective.strip():
            raise ValidationError.single("objective", "must not be empty")
        if not user_id:
            raise ValidationError.single("user_id", "must not be empty")
        constraints = constraints or []
        current_state = current_state or {}

        high_level = await self._analyzer.analyze(objective, constraints)
        tasks = self._decompose(objective, high_level, current_state)
        tasks = self._link_dependencies(high_level, tasks)
        ordered = topological_order(tasks)

        now = self._clock.now()
        scheduled = self._schedule(self._assign_owners(ordered), now)
        at_risk = deadline is not None and any(
            t.expected_completion is not None and t.expected_completion > deadline
            for t in scheduled
        )

        plan = PlanDefinition(
            plan_id=str(ULID()),
            user_id=user_id,
            objective=objective,
            constraints=constraints,
            priority=priority,
            deadline=deadline,
            status=PlanStatus.AT_RISK if at_risk else PlanStatus.SCHEDULED,
            tasks=scheduled,
            created_at=now,
        )
        plan = await self._plans.create_plan(plan)
        log.info(
            "plan_created",
            plan_id=plan.plan_id,
            user_id=user_id,
            task_count=len(plan.tasks),
            at_risk=at_risk,
        )
        if at_risk:
            log.warning("plan_deadline_at_risk", plan_id=plan.plan_id, deadline=deadline)

        await self.emit(
            EventType.PLAN_CREATED,
            PlanCreatedPayload(
                plan_id=plan.plan_id,
                user_id=user_id,
                objective=objective,
                task_ids=[t.task_id for t in plan.tasks],
                at_risk=at_risk,
            ),
            user_id=user_id,
        )
        await self._submit_tasks(plan, now)
        return plan

    def _decompose(
        self, objective: str, high_level: list[HighLevelTask], current_state: dict[str, Any]
    ) -> list[TaskDefinition]:
        keys = [hl.key for hl in high_level]
        if len(set(keys)) != len(keys):
            raise ValidationError.single("tasks", "high-level task keys must be unique")
        state = [f"state.{name}" for name in sorted(current_state)]
        return [
            TaskDefinition(
                task_id=str(ULID()),
                key=hl.key,
                description=hl.description,
                definition_of_done=f"{hl.description} completed, tests pass, documentation updated",
                inputs=[f"objective: {objective}", *hl.consumes, *state],
                outputs=list(hl.produces) or [f"{hl.key}_result"],
                tests=[f"Verify {hl.description.lower()}", "Check quality"],
                owner=HUMAN_OWNER,
                estimate_hours=BASE_ESTIMATE_HOURS,
            )
            for hl in high_level
        ]

    def _link_dependencies(
        self, high_level: list[HighLevelTask], tasks: list[TaskDefinition]
    ) -> list[TaskDefinition]:
        id_by_key = {task.key: task.task_id for task in tasks}
        producers: dict[str, list[str]] = {}
        for hl in high_level:
            for artifact in hl.produces:
                producers.setdefault(artifact, []).append(hl.key)

        linked: list[TaskDefinition] = []
        for hl, task in zip(high_level, tasks, strict=True):
            dep_keys: list[str] = []
            for key in hl.depends_on:
                if key not in id_by_key:
                    raise ValidationError.single(
                        "depends_on", f"task {hl.key!r} depends on unknown task {key!r}"
                    )
                dep_keys.append(key)
            for artifact in hl.consumes:
                dep_keys.extend(k for k in producers.get(artifact, []) if k != hl.key)
            dependencies = [id_by_key[k] for k in dict.fromkeys(dep_keys)]
            linked.append(task.model_copy(update={"dependencies": dependencies}))
        return linked

    def _assign_owners(self, tasks: list[TaskDefinition]) -> list[TaskDefinition]:
        assigned: list[TaskDefinition] = []
        for task in tasks:
            owner = self._owner_heuristic(task)
            if owner is None or not self._orchestrator.is_registered(owner):
                owner = HUMAN_OWNER
            assigned.append(task.model_copy(update={"owner": owner}))
        return assigned

    def _schedule(self, ordered: list[TaskDefinition], now: datetime) -> list[TaskDefinition]:
        completion: dict[str, datetime] = {}
        scheduled: list[TaskDefinition] = []
        for task in ordered:
            hours = estimate_hours(task)
            run_at = max((completion[d] for d in task.dependencies), default=now)
            done = run_at + timedelta(hours=hours)
            completion[task.task_id] = done
            scheduled.append(
                task.model_copy(
                    update={"estimate_hours": hours, "run_at": run_at, "expected_completion": done}
                )
            )
        return scheduled

    async def _submit_tasks(self, plan: PlanDefinition, now: datetime) -> None:
        for task in plan.tasks:
            run_at = task.run_at or now
            envelope = new_envelope(
                actor=AgentType.PLANNER if task.owner == HUMAN_OWNER else AgentType(task.owner),
                task=PLAN_TASK,
                payload={
                    **task.model_dump(mode="json"),
                    "plan_id": plan.plan_id,
                    "user_id": plan.user_id,
                },
                intent=Intent.EXECUTE,
                dependencies=task.dependencies,
                ttl_sec=int((run_at - now).total_seconds()) + PLAN_TASK_TTL_SEC,
                created_at=now,
                metadata={"plan_id": plan.plan_id},
                message_id=task.task_id,
            )
            await self._orchestrator.submit(
                envelope,
                agent=task.owner,
                run_at=run_at,
                plan_id=plan.plan_id,
            )
        log.info("plan_tasks_scheduled", plan_id=plan.plan_id, task_count=len(plan.tasks))

    async def _generate_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(GeneratePlanTaskPayload, payload)
        await self.generate_plan(
            task.objective,
            task.constraints,
            task.current_state,
            task.deadline,
            task.priority,
            task.user_id,
        )
