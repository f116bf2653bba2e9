"""Plan Domain Model -- objective decomposed into an owned, ordered task DAG"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import PlanStatus


class HighLevelTask(BaseModel):
    """Objective analyzer output, before atomic decomposition"""

    key: str = Field(description="Stable key within the plan, e.g. design")
    description: str
    category: str = "general"
    produces: list[str] = Field(default_factory=list, description="Artifacts produced")
    consumes: list[str] = Field(default_factory=list, description="Artifacts consumed")
    depends_on: list[str] = Field(default_factory=list, description="Declared keys")


class TaskDefinition(BaseModel):
    """Atomic task of a plan. task_id becomes the job id."""

    task_id: str
    key: str
    description: str
    definition_of_done: str
    inputs: list[str] = Field(default_factory=list)
    outputs: list[str] = Field(default_factory=list)
    tests: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list, description="task_ids")
    owner: str = Field(description="AgentType value or 'human'")
    estimate_hours: float = Field(gt=0)
    run_at: datetime | None = None
    expected_completion: datetime | None = None


class PlanDefinition(BaseModel):
    plan_id: str
    user_id: str
    objective: str
    constraints: list[str] = Field(default_factory=list)
    priority: int = Field(default=3, ge=1, le=5)
    deadline: datetime | None = None
    status: PlanStatus = PlanStatus.SCHEDULED
    tasks: list[TaskDefinition] = Field(default_factory=list, description="Topological order")
    created_at: datetime
