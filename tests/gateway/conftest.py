"""Gateway test configuration -- app over the fake-clock system, httpx AsyncClient"""

import os
from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient


@pytest_asyncio.fixture
async def app(system):
    """App with state set by hand (lifespan bypassed)"""
    os.environ["WISDOMOS_SEND_TO_LOGFIRE"] = "false"

    from wisdomos.gateway.main import create_app
    from wisdomos.gateway.services.sse_hub import SSEHub

    application = create_app()
    application.state.system = system
    application.state.sse_hub = SSEHub()
    yield application

    os.environ.pop("WISDOMOS_SEND_TO_LOGFIRE", None)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
