from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from fakes import FakeMaintenance, FakeMirror, FakeWatcher, ManualClock

from simple_deploy.config import Config
from simple_deploy.scheduler import SyncScheduler


@pytest.fixture(autouse=True)
def clear_config_cache() -> Iterator[None]:
    """Ensures every test starts with a clean config cache."""
    Config._global_cache = None
    yield
    Config._global_cache = None


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def journal() -> list[str]:
    """Shared, ordered record of which operation ran when."""
    return []


@pytest.fixture
def mirror(journal: list[str]) -> FakeMirror:
    return FakeMirror(journal)


@pytest.fixture
def maintenance(journal: list[str]) -> FakeMaintenance:
    return FakeMaintenance(journal)


@pytest.fixture
def watcher() -> FakeWatcher:
    return FakeWatcher()


@pytest.fixture
def make_scheduler(
    tmp_path: Path,
    clock: ManualClock,
    mirror: FakeMirror,
    maintenance: FakeMaintenance,
    watcher: FakeWatcher,
) -> Callable[..., SyncScheduler]:
    """Builds a scheduler over tmp dirs with fake collaborators and virtual time."""

    def factory(config: Config | None = None, **kwargs: Any) -> SyncScheduler:
        source = tmp_path / "foo"
        target = tmp_path / "bar"
        source.mkdir(exist_ok=True)
        target.mkdir(exist_ok=True)
        kwargs.setdefault("mirror", mirror)
        kwargs.setdefault("maintenance", maintenance)
        kwargs.setdefault("watcher", watcher)
        kwargs.setdefault("timer_factory", clock.timer)
        return SyncScheduler(source, target, config or Config(), **kwargs)

    return factory
