"""WisdomOS Orchestration -- planner, job orchestrator and system assembly"""

from .debounce import RollupDebouncer
from .orchestrator import Orchestrator, backoff_delay, dedupe_key_for
from .planner import (
    KeywordObjectiveAnalyzer,
    ObjectiveAnalyzer,
    PlannerAgent,
    critical_path,
    estimate_hours,
    keyword_owner,
    topological_order,
)
from .system import WisdomSystem, build_system

__all__ = [
    "Orchestrator",
    "backoff_delay",
    "dedupe_key_for",
    "RollupDebouncer",
    "PlannerAgent",
    "ObjectiveAnalyzer",
    "KeywordObjectiveAnalyzer",
    "keyword_owner",
    "estimate_hours",
    "topological_order",
    "critical_path",
    "WisdomSystem",
    "build_system",
]
