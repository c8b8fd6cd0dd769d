"""Shared test fixtures and factories."""

import asyncio
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from chime.config.paths import get_chime_home
from chime.scheduling import (
    DeliveryError,
    LocalTime,
    Schedule,
    ScheduleEntry,
    ScheduleStore,
)

# =============================================================================
# Clock and Dispatcher Fakes
# =============================================================================


class FakeClock:
    """Settable clock passed to the engine as ``clock``."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class FakeDispatcher:
    """Dispatcher that records deliveries and can fail or block on demand."""

    def __init__(self) -> None:
        self.deliveries: list[tuple[str, Any]] = []
        self.fail: bool = False
        self.delay: float = 0.0
        self.gate: asyncio.Event | None = None
        self.before_deliver: Callable[[], None] | None = None
        self.started = asyncio.Event()

    async def deliver(self, target: str, payload: Any) -> None:
        self.started.set()
        if self.before_deliver:
            self.before_deliver()
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        self.deliveries.append((target, payload))
        if self.fail:
            raise DeliveryError(f"Delivery to {target} failed")


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


# =============================================================================
# Entry Factories
# =============================================================================


def make_entry(
    tenant_id: str = "guild-1",
    name: str = "standup",
    schedule: Schedule | None = None,
    **kwargs: Any,
) -> ScheduleEntry:
    return ScheduleEntry(
        tenant_id=tenant_id,
        name=name,
        target=kwargs.pop("target", "https://hooks.example.com/standup"),
        payload=kwargs.pop("payload", "Standup in 5 minutes"),
        schedule=schedule or Schedule.daily(LocalTime(9, 0)),
        **kwargs,
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "schedules.json"


@pytest.fixture
def store(store_path: Path) -> ScheduleStore:
    return ScheduleStore(store_path)


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, 8, 0, tzinfo=UTC))


@pytest.fixture
def chime_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point CHIME_HOME at a temp directory for the duration of a test."""
    home = tmp_path / "chime-home"
    home.mkdir()
    monkeypatch.setenv("CHIME_HOME", str(home))
    monkeypatch.delenv("CHIME_DISPATCH_TOKEN", raising=False)
    monkeypatch.chdir(tmp_path)
    get_chime_home.cache_clear()
    yield home.resolve()
    get_chime_home.cache_clear()
