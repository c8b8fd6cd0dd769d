"""Scheduling subsystem: multi-tenant recurring schedules.

Public API:
- ScheduleStore: Durable per-tenant storage for schedule entries
- SchedulerEngine: Arms, fires, re-arms and retires entries
- TimerRegistry: One cancellable timer per entry id
- next_delay / next_fire_time: Occurrence arithmetic in UTC

Types:
- ScheduleEntry: A single schedule entry owned by a tenant
- Schedule, ScheduleKind, LocalTime: When an entry fires
"""

from chime.scheduling.engine import (
    ArmStatus,
    CreateResult,
    ResetResult,
    SchedulerEngine,
    StartupReport,
)
from chime.scheduling.errors import (
    DeliveryError,
    SchedulingError,
    StoreError,
    UnsatisfiableScheduleError,
    ValidationError,
)
from chime.scheduling.format import describe_schedule, format_offset
from chime.scheduling.occurrence import next_delay, next_fire_time
from chime.scheduling.store import ScheduleStore
from chime.scheduling.timers import ArmedTimer, TimerRegistry
from chime.scheduling.types import LocalTime, Schedule, ScheduleEntry, ScheduleKind

__all__ = [
    "ArmStatus",
    "ArmedTimer",
    "CreateResult",
    "DeliveryError",
    "LocalTime",
    "ResetResult",
    "Schedule",
    "ScheduleEntry",
    "ScheduleKind",
    "ScheduleStore",
    "SchedulerEngine",
    "SchedulingError",
    "StartupReport",
    "StoreError",
    "TimerRegistry",
    "UnsatisfiableScheduleError",
    "ValidationError",
    "describe_schedule",
    "format_offset",
    "next_delay",
    "next_fire_time",
]
