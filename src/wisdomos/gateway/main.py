"""FastAPI application -- app factory and lifespan

The lifespan opens the store group, builds the system, attaches the SSE hub
as a bus listener and runs the orchestrator loop until shutdown.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from wisdomos.core.config import get_db_path
from wisdomos.core.logging_config import setup_logfire, setup_logging
from wisdomos.core.store import create_store_group
from wisdomos.orchestration import build_system

from .errors import register_error_handlers
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import (
    areas,
    commitments,
    envelopes,
    finance,
    health,
    integrity,
    jobs,
    journal,
    plans,
    stream,
)
from .services.sse_hub import SSEHub

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open storage and start the orchestrator; stop and close on shutdown"""
    store_group = await create_store_group(get_db_path())
    system = build_system(store_group)
    app.state.system = system

    sse_hub = SSEHub()
    system.bus.add_listener(sse_hub.on_event)
    app.state.sse_hub = sse_hub

    await system.orchestrator.start()
    log.info("gateway_started", agents=sorted(system.orchestrator.agents))

    yield

    await system.orchestrator.stop()
    system.bus.remove_listener(sse_hub.on_event)
    await store_group.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title="WisdomOS Gateway",
        version="0.1.0",
        description="Hand-off API of the WisdomOS engine",
        lifespan=lifespan,
    )

    # Trace first, then Logging
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)
    register_error_handlers(app)

    setup_logging()
    setup_logfire(app)

    app.include_router(envelopes.router, tags=["envelopes"])
    app.include_router(journal.router, tags=["journal"])
    app.include_router(commitments.router, tags=["commitments"])
    app.include_router(areas.router, tags=["areas"])
    app.include_router(integrity.router, tags=["integrity"])
    app.include_router(finance.router, tags=["finance"])
    app.include_router(plans.router, tags=["plans"])
    app.include_router(jobs.router, tags=["jobs"])
    app.include_router(stream.router, tags=["stream"])
    app.include_router(health.router, tags=["health"])
    return app


# uvicorn entry: uvicorn wisdomos.gateway.main:app
app = create_app()
