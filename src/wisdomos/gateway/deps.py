"""Dependency injection -- app.state objects exposed through FastAPI Depends

The system and the SSE hub are built in the lifespan and live on app.state.
"""

from fastapi import Request

from wisdomos.core.store import StoreGroup
from wisdomos.orchestration import WisdomSystem

from .services.sse_hub import SSEHub


def get_system(request: Request) -> WisdomSystem:
    return request.app.state.system


def get_store_group(request: Request) -> StoreGroup:
    return request.app.state.system.stores


def get_sse_hub(request: Request) -> SSEHub:
    return request.app.state.sse_hub
