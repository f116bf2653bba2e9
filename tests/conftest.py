"""Global pytest configuration -- fake clock, temporary SQLite store group, assembled system"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from wisdomos.classifier import KeywordClassifier
from wisdomos.core.config import EngineConfig
from wisdomos.core.store import StoreGroup, create_store_group

# Inside the "Mastery" era, mid-month so period boundaries are easy to cross
START = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock"""

    def __init__(self, start: datetime = START) -> None:
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, **delta: float) -> datetime:
        self._now += timedelta(**delta)
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = moment


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def classifier() -> KeywordClassifier:
    return KeywordClassifier()


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """Temporary SQLite database path"""
    return tmp_path / "test.db"


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """Initialised store group on a temporary database"""
    group = await create_store_group(tmp_db_path)
    yield group
    await group.close()


@pytest_asyncio.fixture
async def system(store_group, config, classifier, clock):
    """Fully wired engine on the fake clock, orchestrator loop not started"""
    from wisdomos.orchestration import build_system

    return build_system(store_group, config, classifier, clock)


@pytest_asyncio.fixture
async def make_area(system):
    """Factory seeding a life area through the area generator"""
    from wisdomos.core.models import AgentType

    generator = system.agents[AgentType.AREA_GENERATOR]

    async def _make(user_id: str, code: str, name: str, dimensions: list[str] | None = None):
        return await generator.create_area(user_id, code, name, dimensions)

    return _make
