"""Tests for the scheduler engine."""

import asyncio
from datetime import UTC, datetime
from pathlib import Path

import pytest

from chime.scheduling import (
    ArmStatus,
    LocalTime,
    Schedule,
    ScheduleStore,
    SchedulerEngine,
    StoreError,
    ValidationError,
)
from tests.conftest import make_entry, wait_for

# 50ms before the 09:00 UTC occurrences used below
JUST_BEFORE_NINE = datetime(2024, 1, 1, 8, 59, 59, 950000, tzinfo=UTC)
JUST_AFTER_NINE = datetime(2024, 1, 1, 9, 0, 0, 10000, tzinfo=UTC)
TOMORROW_NINE = datetime(2024, 1, 2, 9, 0, tzinfo=UTC)


@pytest.fixture
async def engine(store, dispatcher, clock):
    engine = SchedulerEngine(store, dispatcher, clock=clock)
    yield engine
    await engine.stop()


class TestStartup:
    """Tests for loading and arming stored entries."""

    async def test_arms_enabled_entries(self, store, engine, clock):
        daily = make_entry(name="daily")
        weekly = make_entry(
            tenant_id="guild-2",
            name="weekly",
            schedule=Schedule.weekly(LocalTime(18, 0), day_of_week=5),
        )
        store.put(daily.tenant_id, daily)
        store.put(weekly.tenant_id, weekly)

        report = await engine.start()

        assert report.armed == 2
        assert engine.started
        assert engine.registry.is_armed(daily.id)
        assert engine.next_fire(daily.id) == datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
        assert engine.next_fire(weekly.id) == datetime(2024, 1, 5, 18, 0, tzinfo=UTC)

    async def test_elapsed_once_is_skipped_but_kept(self, store, engine):
        elapsed = make_entry(schedule=Schedule.once(LocalTime(7, 0)))
        store.put(elapsed.tenant_id, elapsed)

        report = await engine.start()

        assert report.skipped == 1
        assert not engine.registry.is_armed(elapsed.id)
        assert store.get(elapsed.tenant_id, elapsed.id) is not None

    async def test_disabled_entries_are_not_armed(self, store, engine):
        entry = make_entry(enabled=False)
        store.put(entry.tenant_id, entry)

        report = await engine.start()

        assert report.disabled == 1
        assert len(engine.registry) == 0

    async def test_stop_cancels_timers_and_keeps_store(self, store, engine):
        entry = make_entry()
        store.put(entry.tenant_id, entry)
        await engine.start()

        await engine.stop()

        assert len(engine.registry) == 0
        assert not engine.started
        assert store.get(entry.tenant_id, entry.id) is not None


class TestCreate:
    """Tests for creating entries."""

    async def test_create_persists_and_arms(self, store, engine):
        entry = make_entry()
        result = await engine.create_entry(entry)

        assert result.armed
        assert result.status is ArmStatus.ARMED
        assert result.next_fire == datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
        assert store.get(entry.tenant_id, entry.id) == entry
        assert engine.registry.is_armed(entry.id)

    async def test_create_elapsed_once_is_not_armed(self, store, engine):
        entry = make_entry(schedule=Schedule.once(LocalTime(7, 0)))
        result = await engine.create_entry(entry)

        assert not result.armed
        assert result.status is ArmStatus.ALREADY_ELAPSED
        assert result.next_fire is None
        assert not engine.registry.is_armed(entry.id)

    async def test_create_disabled(self, engine):
        entry = make_entry(enabled=False)
        result = await engine.create_entry(entry)

        assert result.status is ArmStatus.DISABLED
        assert not engine.registry.is_armed(entry.id)

    async def test_invalid_entry_is_not_persisted(self, store, engine):
        entry = make_entry(schedule=Schedule.monthly(LocalTime(9, 0), day_of_month=32))
        with pytest.raises(ValidationError):
            await engine.create_entry(entry)
        assert store.load() == {}
        assert len(engine.registry) == 0

    async def test_id_owned_by_another_tenant_is_rejected(self, store, engine):
        mine = make_entry(tenant_id="guild-1", id="a1b2c3d4")
        await engine.create_entry(mine)
        theirs = make_entry(tenant_id="guild-2", id="a1b2c3d4")

        with pytest.raises(ValidationError, match="another tenant"):
            await engine.create_entry(theirs)

        assert store.list_for_tenant("guild-2") == []
        assert engine.registry.get("a1b2c3d4").tenant_id == "guild-1"

    async def test_store_failure_does_not_arm(self, tmp_path: Path, dispatcher, clock):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        engine = SchedulerEngine(
            ScheduleStore(blocker / "schedules.json"), dispatcher, clock=clock
        )
        entry = make_entry()

        with pytest.raises(StoreError):
            await engine.create_entry(entry)
        assert len(engine.registry) == 0


class TestRemove:
    """Tests for removing entries."""

    async def test_remove_cancels_timer(self, store, engine):
        entry = make_entry()
        await engine.create_entry(entry)

        assert await engine.remove_entry(entry.tenant_id, entry.id) is True
        assert not engine.registry.is_armed(entry.id)
        assert await engine.list_entries(entry.tenant_id) == []

    async def test_remove_nonexistent_is_not_found(self, store, store_path, engine):
        entry = make_entry()
        await engine.create_entry(entry)
        before = store_path.read_text()

        assert await engine.remove_entry(entry.tenant_id, "deadbeef") is False
        assert store_path.read_text() == before
        assert engine.registry.is_armed(entry.id)

    async def test_remove_does_not_cross_tenants(self, engine):
        entry = make_entry(tenant_id="guild-1")
        await engine.create_entry(entry)

        assert await engine.remove_entry("guild-2", entry.id) is False
        assert engine.registry.is_armed(entry.id)


class TestReset:
    """Tests for resetting a tenant."""

    async def test_reset_before_first_fire(self, engine, dispatcher, clock):
        clock.now = JUST_BEFORE_NINE
        entry = make_entry()
        await engine.create_entry(entry)

        result = await engine.reset_tenant(entry.tenant_id)

        assert result.entries_removed == 1
        assert result.timers_cancelled == 1
        assert await engine.list_entries(entry.tenant_id) == []
        await asyncio.sleep(0.1)
        assert dispatcher.deliveries == []

    async def test_reset_leaves_other_tenants_alone(self, engine):
        mine = make_entry(tenant_id="guild-1")
        theirs = make_entry(tenant_id="guild-2")
        await engine.create_entry(mine)
        await engine.create_entry(theirs)

        await engine.reset_tenant("guild-1")

        assert not engine.registry.is_armed(mine.id)
        assert engine.registry.is_armed(theirs.id)
        assert len(await engine.list_entries("guild-2")) == 1

    async def test_reset_empty_tenant(self, engine):
        result = await engine.reset_tenant("nobody")
        assert result.entries_removed == 0
        assert result.timers_cancelled == 0


class TestFiring:
    """Tests for delivery, re-arming and retirement."""

    async def test_once_is_retired_after_fire(self, engine, dispatcher, clock):
        clock.now = JUST_BEFORE_NINE
        entry = make_entry(schedule=Schedule.once(LocalTime(9, 0)))
        await engine.create_entry(entry)

        await wait_for(lambda: bool(dispatcher.deliveries))
        await wait_for(lambda: not engine.store.list_for_tenant(entry.tenant_id))

        assert dispatcher.deliveries == [(entry.target, entry.payload)]
        assert not engine.registry.is_armed(entry.id)

    async def test_recurring_is_rearmed_after_fire(self, engine, dispatcher, clock):
        clock.now = JUST_BEFORE_NINE
        dispatcher.before_deliver = lambda: setattr(clock, "now", JUST_AFTER_NINE)
        entry = make_entry()
        await engine.create_entry(entry)

        await wait_for(lambda: engine.next_fire(entry.id) == TOMORROW_NINE)

        assert len(dispatcher.deliveries) == 1
        assert engine.next_fire(entry.id) == TOMORROW_NINE
        assert len(await engine.list_entries(entry.tenant_id)) == 1

    async def test_rearm_skips_the_occurrence_just_delivered(
        self, engine, dispatcher, clock
    ):
        # The clock never reaches 09:00 while the timer fires
        clock.now = JUST_BEFORE_NINE
        entry = make_entry()
        await engine.create_entry(entry)

        await wait_for(lambda: engine.next_fire(entry.id) == TOMORROW_NINE)
        await asyncio.sleep(0.3)

        assert len(dispatcher.deliveries) == 1
        assert engine.next_fire(entry.id) == TOMORROW_NINE

    async def test_weekly_rearm_moves_a_full_week(self, engine, dispatcher, clock):
        # 2024-01-01 is a Monday
        clock.now = JUST_BEFORE_NINE
        entry = make_entry(schedule=Schedule.weekly(LocalTime(9, 0), day_of_week=1))
        await engine.create_entry(entry)

        next_week = datetime(2024, 1, 8, 9, 0, tzinfo=UTC)
        await wait_for(lambda: engine.next_fire(entry.id) == next_week)
        await asyncio.sleep(0.1)

        assert len(dispatcher.deliveries) == 1

    async def test_delivery_failure_still_rearms(self, engine, dispatcher, clock, caplog):
        clock.now = JUST_BEFORE_NINE
        dispatcher.fail = True
        dispatcher.before_deliver = lambda: setattr(clock, "now", JUST_AFTER_NINE)
        entry = make_entry()
        await engine.create_entry(entry)

        await wait_for(lambda: "schedule_delivery_failed" in caplog.messages)
        await wait_for(lambda: engine.registry.is_armed(entry.id))

        assert engine.next_fire(entry.id) == TOMORROW_NINE

    async def test_slow_delivery_times_out(self, store, dispatcher, clock, caplog):
        clock.now = JUST_BEFORE_NINE
        dispatcher.delay = 5.0
        dispatcher.before_deliver = lambda: setattr(clock, "now", JUST_AFTER_NINE)
        engine = SchedulerEngine(store, dispatcher, clock=clock, dispatch_timeout=0.05)
        entry = make_entry()
        await engine.create_entry(entry)

        try:
            await wait_for(lambda: engine.next_fire(entry.id) == TOMORROW_NINE)
            assert "schedule_delivery_failed" in caplog.messages
            assert dispatcher.deliveries == []
        finally:
            await engine.stop()

    async def test_remove_during_delivery_prevents_rearm(
        self, engine, dispatcher, clock
    ):
        clock.now = JUST_BEFORE_NINE
        dispatcher.gate = asyncio.Event()
        dispatcher.before_deliver = lambda: setattr(clock, "now", JUST_AFTER_NINE)
        entry = make_entry()
        await engine.create_entry(entry)

        await asyncio.wait_for(dispatcher.started.wait(), timeout=2.0)
        assert await engine.remove_entry(entry.tenant_id, entry.id) is True
        dispatcher.gate.set()
        await wait_for(lambda: bool(dispatcher.deliveries))
        await asyncio.sleep(0.02)

        assert not engine.registry.is_armed(entry.id)
        assert await engine.list_entries(entry.tenant_id) == []

    async def test_reset_during_delivery_prevents_rearm(
        self, engine, dispatcher, clock
    ):
        clock.now = JUST_BEFORE_NINE
        dispatcher.gate = asyncio.Event()
        dispatcher.before_deliver = lambda: setattr(clock, "now", JUST_AFTER_NINE)
        entry = make_entry()
        await engine.create_entry(entry)

        await asyncio.wait_for(dispatcher.started.wait(), timeout=2.0)
        result = await engine.reset_tenant(entry.tenant_id)
        dispatcher.gate.set()
        await wait_for(lambda: bool(dispatcher.deliveries))
        await asyncio.sleep(0.02)

        assert result.entries_removed == 1
        assert len(engine.registry) == 0

    async def test_entry_removed_offline_is_not_delivered(
        self, engine, dispatcher, clock, store
    ):
        clock.now = JUST_BEFORE_NINE
        entry = make_entry()
        await engine.create_entry(entry)

        # Another process edits the store while the timer stays armed
        ScheduleStore(store.path).remove(entry.tenant_id, entry.id)
        await asyncio.sleep(0.1)

        assert dispatcher.deliveries == []


class TestSetEnabled:
    """Tests for enabling and disabling entries."""

    async def test_disable_cancels_and_enable_rearms(self, engine):
        entry = make_entry()
        await engine.create_entry(entry)

        disabled = await engine.set_enabled(entry.tenant_id, entry.id, False)
        assert disabled.status is ArmStatus.DISABLED
        assert not engine.registry.is_armed(entry.id)

        enabled = await engine.set_enabled(entry.tenant_id, entry.id, True)
        assert enabled.armed
        assert engine.registry.is_armed(entry.id)

    async def test_missing_entry(self, engine):
        assert await engine.set_enabled("guild-1", "deadbeef", True) is None

    async def test_stats_include_armed_count(self, engine):
        await engine.create_entry(make_entry())
        stats = engine.stats()
        assert stats["total"] == 1
        assert stats["armed"] == 1
