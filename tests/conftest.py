from datetime import UTC, datetime

import pytest

from src.adapters.clock import FrozenClock
from src.adapters.memory_store import InMemoryRuleRepo, InMemoryScheduleSink
from src.adapters.zones import ZoneInfoResolver


@pytest.fixture
def frozen_now() -> datetime:
    """Fixed 'now' used across availability tests (a Saturday, PDT)."""
    return datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def clock(frozen_now: datetime) -> FrozenClock:
    return FrozenClock(frozen_now)


@pytest.fixture
def zones() -> ZoneInfoResolver:
    return ZoneInfoResolver()


@pytest.fixture
def repo() -> InMemoryRuleRepo:
    return InMemoryRuleRepo()


@pytest.fixture
def sink() -> InMemoryScheduleSink:
    return InMemoryScheduleSink()
