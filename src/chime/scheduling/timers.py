"""Timer registry: one cancellable asyncio timer per schedule entry.

The registry owns transient scheduling state only; it is rebuilt from the
store on startup. All mutating methods are synchronous and must be called
from the event loop, so arm/cancel for one id never interleave.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ArmedTimer:
    """A pending (or in-flight) delayed callback for one entry."""

    entry_id: str
    tenant_id: str | None
    fire_at: datetime
    task: asyncio.Task[None] | None = field(default=None, repr=False)
    # Set when the timer was cancelled or superseded. An in-flight fire
    # checks this before doing follow-up work such as re-arming.
    cancelled: bool = False
    firing: bool = False


TimerCallback = Callable[[ArmedTimer], Awaitable[Any]]
TimerPredicate = Callable[[ArmedTimer], bool]


class TimerRegistry:
    """Maps entry ids to their single active timer.

    Example:
        registry = TimerRegistry()
        registry.arm("a1b2c3d4", timedelta(minutes=5), on_fire, tenant_id="guild-1")
        registry.cancel_all(lambda t: t.tenant_id == "guild-1")
    """

    def __init__(self) -> None:
        self._pending: dict[str, ArmedTimer] = {}
        self._firing: set[ArmedTimer] = set()

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._pending

    def is_armed(self, entry_id: str) -> bool:
        return entry_id in self._pending

    def get(self, entry_id: str) -> ArmedTimer | None:
        return self._pending.get(entry_id)

    def arm(
        self,
        entry_id: str,
        delay: timedelta,
        on_fire: TimerCallback,
        *,
        tenant_id: str | None = None,
        fire_at: datetime | None = None,
    ) -> ArmedTimer:
        """Arm a timer for ``entry_id``, replacing any pending one.

        ``fire_at`` records the intended fire instant when the caller computed
        ``delay`` against its own clock.
        """
        existing = self._pending.pop(entry_id, None)
        if existing is not None:
            self._stop(existing)

        seconds = max(delay.total_seconds(), 0.0)
        timer = ArmedTimer(
            entry_id=entry_id,
            tenant_id=tenant_id,
            fire_at=fire_at or datetime.now(UTC) + timedelta(seconds=seconds),
        )
        timer.task = asyncio.create_task(
            self._run(timer, seconds, on_fire), name=f"timer:{entry_id}"
        )
        self._pending[entry_id] = timer
        logger.debug(
            "timer_armed",
            extra={
                "schedule.entry_id": entry_id,
                "schedule.delay_seconds": round(seconds, 3),
                "schedule.replaced": existing is not None,
            },
        )
        return timer

    def cancel(self, entry_id: str) -> bool:
        """Cancel the pending timer for ``entry_id``.

        A fire whose callback is already running is not interrupted, only
        flagged as cancelled.

        Returns:
            True if a pending timer was cancelled, False if none was armed.
        """
        for timer in self._firing:
            if timer.entry_id == entry_id:
                timer.cancelled = True

        timer = self._pending.pop(entry_id, None)
        if timer is None:
            return False
        self._stop(timer)
        logger.debug("timer_cancelled", extra={"schedule.entry_id": entry_id})
        return True

    def cancel_all(self, predicate: TimerPredicate) -> int:
        """Cancel every pending timer matching ``predicate``.

        Returns:
            Number of pending timers cancelled.
        """
        for timer in self._firing:
            if predicate(timer):
                timer.cancelled = True

        matched = [eid for eid, timer in self._pending.items() if predicate(timer)]
        for entry_id in matched:
            self._stop(self._pending.pop(entry_id))
        return len(matched)

    def cancel_tenant(self, tenant_id: str) -> int:
        return self.cancel_all(lambda timer: timer.tenant_id == tenant_id)

    def cancel_everything(self) -> int:
        return self.cancel_all(lambda timer: True)

    async def shutdown(self) -> None:
        """Cancel all timers, including in-flight fires, and wait for them."""
        tasks = [t.task for t in self._pending.values() if t.task is not None]
        tasks.extend(t.task for t in self._firing if t.task is not None)
        self.cancel_everything()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _stop(self, timer: ArmedTimer) -> None:
        timer.cancelled = True
        if timer.task is not None and not timer.firing:
            timer.task.cancel()

    async def _run(
        self, timer: ArmedTimer, seconds: float, on_fire: TimerCallback
    ) -> None:
        try:
            await asyncio.sleep(seconds)
        except asyncio.CancelledError:
            return

        if self._pending.get(timer.entry_id) is not timer:
            return
        del self._pending[timer.entry_id]
        timer.firing = True
        self._firing.add(timer)
        try:
            await on_fire(timer)
        except Exception:
            # Nothing propagates out of a fire callback
            logger.exception(
                "timer_callback_failed", extra={"schedule.entry_id": timer.entry_id}
            )
        finally:
            timer.firing = False
            self._firing.discard(timer)
