"""Scheduler engine: arms, fires, re-arms and retires schedule entries.

The engine owns the coordination between the durable store, the occurrence
calculator and the timer registry. It runs on a single asyncio event loop;
store calls are synchronous, so every administrative operation completes
without yielding to a pending fire.

Example:
    engine = SchedulerEngine(ScheduleStore(path), WebhookDispatcher())
    await engine.start()
    result = await engine.create_entry(entry)
    await engine.reset_tenant("guild-1")
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from chime.scheduling.errors import (
    StoreError,
    UnsatisfiableScheduleError,
    ValidationError,
)
from chime.scheduling.format import format_delay
from chime.scheduling.occurrence import next_fire_time
from chime.scheduling.timers import ArmedTimer, TimerRegistry
from chime.scheduling.types import ScheduleEntry

if TYPE_CHECKING:
    from chime.dispatch.base import Dispatcher
    from chime.scheduling.store import ScheduleStore

logger = logging.getLogger(__name__)

DEFAULT_DISPATCH_TIMEOUT_SECONDS = 10.0


class ArmStatus(StrEnum):
    ARMED = "armed"
    ALREADY_ELAPSED = "already_elapsed"
    UNSATISFIABLE = "unsatisfiable"
    DISABLED = "disabled"


@dataclass
class CreateResult:
    entry_id: str
    status: ArmStatus
    next_fire: datetime | None = None

    @property
    def armed(self) -> bool:
        return self.status is ArmStatus.ARMED


@dataclass
class ResetResult:
    entries_removed: int
    timers_cancelled: int


@dataclass
class StartupReport:
    armed: int = 0
    skipped: int = 0
    disabled: int = 0


class SchedulerEngine:
    """Coordinates store, occurrence calculation and timers."""

    def __init__(
        self,
        store: ScheduleStore,
        dispatcher: Dispatcher,
        registry: TimerRegistry | None = None,
        *,
        dispatch_timeout: float = DEFAULT_DISPATCH_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._registry = registry or TimerRegistry()
        self._dispatch_timeout = dispatch_timeout
        self._clock = clock or (lambda: datetime.now(UTC))
        self._started = False

    @property
    def store(self) -> ScheduleStore:
        return self._store

    @property
    def registry(self) -> TimerRegistry:
        return self._registry

    @property
    def started(self) -> bool:
        return self._started

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> StartupReport:
        """Load every enabled entry from the store and arm it.

        Elapsed one-time entries are logged and left in the store unarmed.
        """
        report = StartupReport()
        tenants = self._store.load()
        for tenant_id, entries in tenants.items():
            for entry in entries:
                if not entry.enabled:
                    report.disabled += 1
                    continue
                status, _ = self._arm(entry)
                if status is ArmStatus.ARMED:
                    report.armed += 1
                else:
                    report.skipped += 1

        self._started = True
        logger.info(
            "scheduler_started",
            extra={
                "scheduler.tenants": len(tenants),
                "scheduler.armed": report.armed,
                "scheduler.skipped": report.skipped,
                "scheduler.disabled": report.disabled,
            },
        )
        return report

    async def stop(self) -> None:
        """Cancel every timer. Store contents are untouched."""
        if not self._started and not len(self._registry):
            return
        pending = len(self._registry)
        await self._registry.shutdown()
        self._started = False
        logger.info("scheduler_stopped", extra={"scheduler.cancelled": pending})

    # ------------------------------------------------------------------
    # Administrative operations
    # ------------------------------------------------------------------

    async def create_entry(self, entry: ScheduleEntry) -> CreateResult:
        """Persist a new entry and arm it immediately.

        Raises:
            ValidationError: If the entry is malformed or its id belongs to
                another tenant (nothing is persisted).
            StoreError: If persistence fails (nothing is armed).
        """
        entry.validate()
        # Timers are keyed by entry id alone
        owner = self._store.find(entry.id)
        if owner is not None and owner.tenant_id != entry.tenant_id:
            raise ValidationError(
                f"Entry id {entry.id} is already used by another tenant"
            )
        self._store.put(entry.tenant_id, entry)

        if not entry.enabled:
            self._registry.cancel(entry.id)
            return CreateResult(entry.id, ArmStatus.DISABLED)

        status, next_fire = self._arm(entry)
        logger.info(
            "schedule_created",
            extra={
                "schedule.tenant_id": entry.tenant_id,
                "schedule.entry_id": entry.id,
                "schedule.name": entry.name,
                "schedule.status": status.value,
            },
        )
        return CreateResult(entry.id, status, next_fire)

    async def remove_entry(self, tenant_id: str, entry_id: str) -> bool:
        """Remove one entry and cancel its timer.

        Returns:
            False if no such entry exists for the tenant.

        Raises:
            StoreError: If the store could not be updated (timer untouched).
        """
        removed = self._store.remove(tenant_id, entry_id)
        if not removed:
            logger.info(
                "schedule_not_found",
                extra={"schedule.tenant_id": tenant_id, "schedule.entry_id": entry_id},
            )
            return False
        cancelled = self._registry.cancel(entry_id)
        logger.info(
            "schedule_removed",
            extra={
                "schedule.tenant_id": tenant_id,
                "schedule.entry_id": entry_id,
                "schedule.timer_cancelled": cancelled,
            },
        )
        return True

    async def reset_tenant(self, tenant_id: str) -> ResetResult:
        """Remove every entry of a tenant.

        Timers are cancelled before any store data is deleted, so no timer
        can fire against an entry whose data is already gone.

        Raises:
            StoreError: If the store could not be updated. Timers stay
                cancelled in that case.
        """
        cancelled = self._registry.cancel_tenant(tenant_id)
        removed = self._store.remove_all_for_tenant(tenant_id)
        # Also covers timers armed without a tenant tag
        for entry in removed:
            if self._registry.cancel(entry.id):
                cancelled += 1

        logger.info(
            "tenant_reset",
            extra={
                "schedule.tenant_id": tenant_id,
                "schedule.entries_removed": len(removed),
                "schedule.timers_cancelled": cancelled,
            },
        )
        return ResetResult(entries_removed=len(removed), timers_cancelled=cancelled)

    async def list_entries(self, tenant_id: str) -> list[ScheduleEntry]:
        return self._store.list_for_tenant(tenant_id)

    async def get_entry(self, tenant_id: str, entry_id: str) -> ScheduleEntry | None:
        return self._store.get(tenant_id, entry_id)

    async def set_enabled(
        self, tenant_id: str, entry_id: str, enabled: bool
    ) -> CreateResult | None:
        """Enable or disable an entry, arming or cancelling its timer.

        Returns:
            None if the entry does not exist.
        """
        entry = self._store.get(tenant_id, entry_id)
        if entry is None:
            return None
        entry.enabled = enabled
        self._store.put(tenant_id, entry)
        if not enabled:
            self._registry.cancel(entry_id)
            return CreateResult(entry_id, ArmStatus.DISABLED)
        status, next_fire = self._arm(entry)
        return CreateResult(entry_id, status, next_fire)

    def next_fire(self, entry_id: str) -> datetime | None:
        timer = self._registry.get(entry_id)
        return timer.fire_at if timer else None

    def stats(self) -> dict[str, Any]:
        return {**self._store.get_stats(), "armed": len(self._registry)}

    # ------------------------------------------------------------------
    # Arming and firing
    # ------------------------------------------------------------------

    def _arm(
        self, entry: ScheduleEntry, after: datetime | None = None
    ) -> tuple[ArmStatus, datetime | None]:
        """Arm ``entry`` for its next occurrence.

        ``after`` is a floor for the occurrence search: a re-arm passes the
        instant it just fired for, so a clock still at or behind that instant
        cannot select the same occurrence again.
        """
        now = self._clock()
        floor = max(now, after) if after is not None else now
        try:
            next_fire = next_fire_time(entry.schedule, floor)
        except UnsatisfiableScheduleError as e:
            logger.warning(
                "schedule_unsatisfiable",
                extra={"schedule.entry_id": entry.id, "error.message": str(e)},
            )
            self._registry.cancel(entry.id)
            return ArmStatus.UNSATISFIABLE, None

        if next_fire is None:
            logger.warning(
                "schedule_already_elapsed",
                extra={
                    "schedule.tenant_id": entry.tenant_id,
                    "schedule.entry_id": entry.id,
                    "schedule.name": entry.name,
                },
            )
            self._registry.cancel(entry.id)
            return ArmStatus.ALREADY_ELAPSED, None

        tenant_id = entry.tenant_id
        entry_id = entry.id

        async def on_fire(timer: ArmedTimer) -> None:
            await self._fire(tenant_id, entry_id, timer)

        delay = next_fire - now
        self._registry.arm(
            entry_id, delay, on_fire, tenant_id=tenant_id, fire_at=next_fire
        )
        logger.info(
            "schedule_armed",
            extra={
                "schedule.entry_id": entry_id,
                "schedule.name": entry.name,
                "schedule.next_fire": next_fire.isoformat(),
                "schedule.delay": format_delay(delay.total_seconds()),
            },
        )
        return ArmStatus.ARMED, next_fire

    async def _fire(self, tenant_id: str, entry_id: str, timer: ArmedTimer) -> None:
        entry = self._store.get(tenant_id, entry_id)
        if entry is None or timer.cancelled or not entry.enabled:
            logger.info(
                "schedule_fire_skipped",
                extra={"schedule.tenant_id": tenant_id, "schedule.entry_id": entry_id},
            )
            return

        logger.info(
            "schedule_firing",
            extra={
                "schedule.tenant_id": tenant_id,
                "schedule.entry_id": entry_id,
                "schedule.name": entry.name,
            },
        )
        try:
            async with asyncio.timeout(self._dispatch_timeout):
                await self._dispatcher.deliver(entry.target, entry.payload)
        except Exception as e:
            # Covers DeliveryError and TimeoutError; never stops future fires
            logger.error(
                "schedule_delivery_failed",
                extra={
                    "schedule.entry_id": entry_id,
                    "error.type": type(e).__name__,
                    "error.message": str(e),
                },
            )

        if not entry.recurring:
            self._retire(tenant_id, entry_id)
            return

        # The entry may have been removed or reset while delivering
        current = self._store.get(tenant_id, entry_id)
        if current is None or timer.cancelled or not current.enabled:
            logger.info(
                "schedule_not_rearmed",
                extra={"schedule.tenant_id": tenant_id, "schedule.entry_id": entry_id},
            )
            return
        self._arm(current, after=timer.fire_at)

    def _retire(self, tenant_id: str, entry_id: str) -> None:
        self._registry.cancel(entry_id)
        try:
            self._store.remove(tenant_id, entry_id)
        except StoreError as e:
            logger.error(
                "schedule_retire_failed",
                extra={"schedule.entry_id": entry_id, "error.message": str(e)},
            )
            return
        logger.info(
            "schedule_retired",
            extra={"schedule.tenant_id": tenant_id, "schedule.entry_id": entry_id},
        )
