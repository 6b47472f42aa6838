from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy import create_engine

from gamelog_archive.core.player import PlayerRoster
from gamelog_archive.core.registry import EventRegistry, default_registry
from gamelog_archive.storage.cache import EventCache
from tests.test_utils import DEFAULT_START, LogScenario


@pytest.fixture
def scenario() -> Callable[..., LogScenario]:
    """Factory fixture to create scenarios."""

    def _builder(
        start: datetime = DEFAULT_START,
        server: str = "test-server",
        registry: EventRegistry | None = None,
    ) -> LogScenario:
        return LogScenario(start=start, server=server, registry=registry)

    return _builder


@pytest.fixture
def roster() -> PlayerRoster:
    return PlayerRoster()


@pytest.fixture
def registry() -> EventRegistry:
    return default_registry()


@pytest.fixture
def cache_factory(tmp_path: Path) -> Callable[..., EventCache]:
    """Factory fixture for caches sharing one SQLite file."""

    def _builder(registry: EventRegistry | None = None) -> EventCache:
        engine = create_engine(f"sqlite:///{tmp_path / 'cache.db'}")
        return EventCache(engine, registry=registry)

    return _builder


@pytest.fixture
def cache(cache_factory: Callable[..., EventCache]) -> EventCache:
    return cache_factory()
