"""Schedule types.

Public types:
- ScheduleKind: once / daily / weekly / monthly
- LocalTime: hour/minute pair in 24-hour form
- Schedule: when an entry fires, in the caller's fixed UTC offset
- ScheduleEntry: a persisted unit of work owned by a tenant
"""

import re
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from chime.scheduling.errors import ValidationError

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")

# Real-world UTC offsets span -12:00 to +14:00
MIN_TZ_OFFSET = -12.0
MAX_TZ_OFFSET = 14.0

DAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)


class ScheduleKind(StrEnum):
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class LocalTime:
    """Wall-clock time of day in the caller's timezone."""

    hour: int
    minute: int

    def __post_init__(self) -> None:
        if not 0 <= self.hour <= 23:
            raise ValidationError(f"Hour must be 0-23, got {self.hour}")
        if not 0 <= self.minute <= 59:
            raise ValidationError(f"Minute must be 0-59, got {self.minute}")

    @classmethod
    def parse(cls, value: str) -> "LocalTime":
        """Parse an ``HH:MM`` 24-hour string."""
        match = TIME_PATTERN.match(value.strip()) if value else None
        if not match:
            raise ValidationError(
                f"Invalid time {value!r}; use HH:MM in 24-hour format (e.g. 09:00, 14:30)"
            )
        return cls(hour=int(match.group(1)), minute=int(match.group(2)))

    @property
    def minutes(self) -> int:
        return self.hour * 60 + self.minute

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


@dataclass(frozen=True)
class Schedule:
    """When an entry fires.

    ``day_of_week`` (0=Sunday) is required for weekly schedules and
    ``day_of_month`` (1-31) for monthly ones; both are ignored otherwise.
    """

    kind: ScheduleKind
    local_time: LocalTime
    tz_offset_hours: float = 0.0
    day_of_week: int | None = None
    day_of_month: int | None = None

    @classmethod
    def once(cls, local_time: LocalTime, tz_offset_hours: float = 0.0) -> "Schedule":
        return cls(ScheduleKind.ONCE, local_time, tz_offset_hours)

    @classmethod
    def daily(cls, local_time: LocalTime, tz_offset_hours: float = 0.0) -> "Schedule":
        return cls(ScheduleKind.DAILY, local_time, tz_offset_hours)

    @classmethod
    def weekly(
        cls, local_time: LocalTime, day_of_week: int, tz_offset_hours: float = 0.0
    ) -> "Schedule":
        return cls(ScheduleKind.WEEKLY, local_time, tz_offset_hours, day_of_week=day_of_week)

    @classmethod
    def monthly(
        cls, local_time: LocalTime, day_of_month: int, tz_offset_hours: float = 0.0
    ) -> "Schedule":
        return cls(
            ScheduleKind.MONTHLY, local_time, tz_offset_hours, day_of_month=day_of_month
        )

    @property
    def recurring(self) -> bool:
        return self.kind is not ScheduleKind.ONCE

    def validate(self) -> None:
        """Check variant-specific fields.

        Raises:
            ValidationError: If the schedule is malformed.
        """
        if not MIN_TZ_OFFSET <= self.tz_offset_hours <= MAX_TZ_OFFSET:
            raise ValidationError(
                f"Timezone offset must be between {MIN_TZ_OFFSET:+g} and "
                f"{MAX_TZ_OFFSET:+g} hours, got {self.tz_offset_hours:+g}"
            )
        if self.kind is ScheduleKind.WEEKLY:
            if self.day_of_week is None:
                raise ValidationError("Weekly schedules require a day-of-week")
            if not 0 <= self.day_of_week <= 6:
                raise ValidationError(
                    f"Day-of-week must be 0-6 (0=Sunday), got {self.day_of_week}"
                )
        if self.kind is ScheduleKind.MONTHLY:
            if self.day_of_month is None:
                raise ValidationError("Monthly schedules require a day-of-month")
            if not 1 <= self.day_of_month <= 31:
                raise ValidationError(
                    f"Day-of-month must be 1-31, got {self.day_of_month}"
                )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.kind.value,
            "time": str(self.local_time),
            "timezone_offset": float(self.tz_offset_hours),
        }
        if self.kind is ScheduleKind.WEEKLY:
            data["day_of_week"] = self.day_of_week
        elif self.kind is ScheduleKind.MONTHLY:
            data["day_of_month"] = self.day_of_month
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Schedule":
        """Parse a schedule record.

        Raises:
            ValidationError: If the record is malformed.
        """
        try:
            kind = ScheduleKind(data.get("type"))
        except ValueError as e:
            raise ValidationError(f"Unknown schedule type: {data.get('type')!r}") from e

        def optional_int(key: str) -> int | None:
            value = data.get(key)
            return int(value) if value is not None else None

        try:
            tz_offset = float(data.get("timezone_offset") or 0.0)
            schedule = cls(
                kind=kind,
                local_time=LocalTime.parse(str(data.get("time", ""))),
                tz_offset_hours=tz_offset,
                day_of_week=optional_int("day_of_week")
                if kind is ScheduleKind.WEEKLY
                else None,
                day_of_month=optional_int("day_of_month")
                if kind is ScheduleKind.MONTHLY
                else None,
            )
        except (TypeError, ValueError) as e:
            if isinstance(e, ValidationError):
                raise
            raise ValidationError(f"Invalid schedule record: {e}") from e
        schedule.validate()
        return schedule


@dataclass
class ScheduleEntry:
    """A schedule entry owned by a tenant."""

    tenant_id: str
    name: str
    target: str
    payload: Any
    schedule: Schedule
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    enabled: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    created_by: str | None = None
    # Preserve unknown fields across load/save
    _extra: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def recurring(self) -> bool:
        return self.schedule.recurring

    def validate(self) -> None:
        """Validate an entry before it is persisted.

        Raises:
            ValidationError: If any field is malformed.
        """
        if not self.id:
            raise ValidationError("Entry id must not be empty")
        if not self.tenant_id:
            raise ValidationError("Entry tenant_id must not be empty")
        if not self.name or not self.name.strip():
            raise ValidationError("Entry name must not be empty")
        if not self.target:
            raise ValidationError("Entry target must not be empty")
        self.schedule.validate()

    def to_dict(self) -> dict[str, Any]:
        """Serialize entry to a flat JSON-serializable record."""
        data: dict[str, Any] = dict(self._extra)
        data.update(
            {
                "id": self.id,
                "tenant_id": self.tenant_id,
                "name": self.name,
                "target": self.target,
                "payload": self.payload,
                "schedule": self.schedule.to_dict(),
                "recurring": self.recurring,
                "enabled": self.enabled,
                "created_at": self.created_at.isoformat(),
            }
        )
        if self.created_by:
            data["created_by"] = self.created_by
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScheduleEntry":
        """Parse entry from a stored record.

        Raises:
            ValidationError: If required fields are missing or malformed.
        """
        missing = [k for k in ("id", "tenant_id", "schedule") if not data.get(k)]
        if missing:
            raise ValidationError(f"Entry record missing fields: {', '.join(missing)}")

        schedule_data = data["schedule"]
        if not isinstance(schedule_data, dict):
            raise ValidationError("Entry schedule must be an object")

        created_raw = data.get("created_at")
        try:
            created_at = (
                datetime.fromisoformat(created_raw) if created_raw else datetime.now(UTC)
            )
        except ValueError as e:
            raise ValidationError(f"Invalid created_at: {created_raw!r}") from e

        known_fields = {
            "id",
            "tenant_id",
            "name",
            "target",
            "payload",
            "schedule",
            "recurring",
            "enabled",
            "created_at",
            "created_by",
        }
        extra = {k: v for k, v in data.items() if k not in known_fields}

        return cls(
            id=str(data["id"]),
            tenant_id=str(data["tenant_id"]),
            name=str(data.get("name", "")),
            target=str(data.get("target", "")),
            payload=data.get("payload"),
            schedule=Schedule.from_dict(schedule_data),
            enabled=bool(data.get("enabled", True)),
            created_at=created_at,
            created_by=data.get("created_by"),
            _extra=extra,
        )
