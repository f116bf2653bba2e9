"""structlog configuration

dev mode: pretty console output
json mode: structured JSON output
Logfire APM: WISDOMOS_SEND_TO_LOGFIRE controls it; false keeps logs local.

Lines logged inside a running job carry its cascade (root event, depth)
next to the job_id and agent the orchestrator binds.
"""

import logging
import os

import structlog
from structlog.types import EventDict, WrappedLogger

from .cascade import current_job


def add_cascade_context(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    """Stamp the triggering event of the running job onto the log line"""
    ctx = current_job()
    if ctx is None or ctx.trigger is None:
        return event_dict
    event_dict.setdefault("trigger_event_id", ctx.trigger.event_id)
    event_dict.setdefault("root_event_id", ctx.trigger.root_id)
    event_dict.setdefault("depth", ctx.trigger.causality.depth)
    return event_dict


def setup_logging() -> None:
    """Configure structlog over stdlib logging

    WISDOMOS_LOG_FORMAT selects the renderer:
    - "json": structured JSON (production)
    - "dev" (default): console pretty print
    """
    log_format = os.environ.get("WISDOMOS_LOG_FORMAT", "dev")
    log_level = os.environ.get("WISDOMOS_LOG_LEVEL", "INFO")

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        add_cascade_context,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def setup_logfire(app=None) -> None:
    """Optional Logfire initialisation

    WISDOMOS_SEND_TO_LOGFIRE:
    - "true": enable Logfire (needs LOGFIRE_TOKEN), instrument ``app`` when given
    - "false" (default): local logs only
    """
    send_to_logfire = os.environ.get("WISDOMOS_SEND_TO_LOGFIRE", "false").lower()
    if send_to_logfire != "true":
        return

    import logfire

    try:
        logfire.configure()
        if app is not None:
            logfire.instrument_fastapi(app)
    except Exception as e:
        # APM failure must not stop the engine
        structlog.get_logger().warning(
            "logfire_init_failed",
            error=str(e),
        )
