"""Configuration -- paths and engine tunables, overridable via environment

Paths are plain functions read at call time. Engine tunables live in
``EngineConfig``; ``load_engine_config`` never blocks startup: an invalid
value is logged and the default kept.
"""

import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .models.enums import BackoffStrategy, PeriodType

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """Project data directory"""
    return Path(os.environ.get("WISDOMOS_DATA_DIR", "data"))


def get_db_path() -> str:
    """SQLite database path"""
    return os.environ.get(
        "WISDOMOS_DB_PATH",
        str(_get_base_dir() / "sqlite" / "wisdomos.db"),
    )


# Journal content preview length in event payloads
CONTENT_PREVIEW_LENGTH: int = 200

# Commitment statements are truncated to this many characters
STATEMENT_MAX_LENGTH: int = 200

# SSE heartbeat interval (seconds)
SSE_HEARTBEAT_INTERVAL: int = int(os.environ.get("WISDOMOS_SSE_HEARTBEAT_INTERVAL", "15"))


class EngineConfig(BaseModel):
    """Engine tunables

    Environment variables (all prefixed ``WISDOMOS_``):
        AUTO_SPAWN_CONFIDENCE, AREA_SIMILARITY_THRESHOLD, TIME_LOCK_GRACE_DAYS,
        TIME_LOCK_DAYS, ROLLUP_DEBOUNCE_SEC, ROLLUP_PERIOD, MAX_CONCURRENT_JOBS,
        POLL_INTERVAL_S, JOB_MAX_ATTEMPTS, JOB_BACKOFF, BACKOFF_BASE_S,
        MAX_CASCADE_DEPTH, MAX_CASCADE_STEPS
    """

    auto_spawn_confidence: float = Field(
        default=0.75, ge=0.0, le=1.0,
        description="Commitments above this confidence spawn an area immediately",
    )
    area_similarity_threshold: float = Field(
        default=0.8, ge=0.0, le=1.0,
        description="Reuse an existing area above this similarity",
    )
    time_lock_grace_days: int = Field(default=7, ge=0)
    time_lock_days: int = Field(default=90, ge=1)
    rollup_debounce_sec: float = Field(
        default=86400.0, ge=0.0,
        description="Coalescing window per (user, period)",
    )
    rollup_period: PeriodType = Field(default=PeriodType.MONTH)
    max_concurrent_jobs: int = Field(default=4, ge=1)
    poll_interval_s: float = Field(default=1.0, gt=0.0)
    job_max_attempts: int = Field(default=3, ge=1)
    job_backoff: BackoffStrategy = Field(default=BackoffStrategy.EXPONENTIAL)
    backoff_base_s: float = Field(default=2.0, gt=0.0)
    max_cascade_depth: int = Field(default=8, ge=1)
    max_cascade_steps: int = Field(default=200, ge=1)


_ENV_FIELDS: dict[str, str] = {
    "WISDOMOS_AUTO_SPAWN_CONFIDENCE": "auto_spawn_confidence",
    "WISDOMOS_AREA_SIMILARITY_THRESHOLD": "area_similarity_threshold",
    "WISDOMOS_TIME_LOCK_GRACE_DAYS": "time_lock_grace_days",
    "WISDOMOS_TIME_LOCK_DAYS": "time_lock_days",
    "WISDOMOS_ROLLUP_DEBOUNCE_SEC": "rollup_debounce_sec",
    "WISDOMOS_ROLLUP_PERIOD": "rollup_period",
    "WISDOMOS_MAX_CONCURRENT_JOBS": "max_concurrent_jobs",
    "WISDOMOS_POLL_INTERVAL_S": "poll_interval_s",
    "WISDOMOS_JOB_MAX_ATTEMPTS": "job_max_attempts",
    "WISDOMOS_JOB_BACKOFF": "job_backoff",
    "WISDOMOS_BACKOFF_BASE_S": "backoff_base_s",
    "WISDOMOS_MAX_CASCADE_DEPTH": "max_cascade_depth",
    "WISDOMOS_MAX_CASCADE_STEPS": "max_cascade_steps",
}


def load_engine_config() -> EngineConfig:
    """Load EngineConfig from the environment

    Each variable is validated on its own so one bad value only resets
    that field.

    Returns:
        EngineConfig instance
    """
    kwargs: dict = {}
    for env_var, field_name in _ENV_FIELDS.items():
        val = os.environ.get(env_var)
        if val is None or val == "":
            continue
        try:
            EngineConfig(**{field_name: val})
        except PydanticValidationError:
            log.warning(
                "invalid_engine_config",
                env_var=env_var,
                value=val,
                fallback=EngineConfig.model_fields[field_name].default,
            )
            continue
        kwargs[field_name] = val

    return EngineConfig(**kwargs)
