"""Tenant schedule administration routes."""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, Field

from chime.scheduling import (
    LocalTime,
    Schedule,
    ScheduleEntry,
    ScheduleKind,
    SchedulerEngine,
    StoreError,
    ValidationError,
    describe_schedule,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateScheduleRequest(BaseModel):
    name: str = Field(min_length=1)
    target: str = Field(min_length=1)
    payload: Any = None
    type: ScheduleKind
    time: str
    timezone_offset: float | None = None
    day_of_week: int | None = None
    day_of_month: int | None = None
    enabled: bool = True
    created_by: str | None = None


class CreateScheduleResponse(BaseModel):
    id: str
    armed: bool
    status: str
    next_fire: datetime | None = None


class ResetResponse(BaseModel):
    entries_removed: int
    timers_cancelled: int


def _engine(request: Request) -> SchedulerEngine:
    return request.app.state.engine


def _entry_view(engine: SchedulerEngine, entry: ScheduleEntry) -> dict[str, Any]:
    data = entry.to_dict()
    data["description"] = describe_schedule(entry.schedule)
    next_fire = engine.next_fire(entry.id)
    data["next_fire"] = next_fire.isoformat() if next_fire else None
    return data


@router.get("/{tenant_id}/schedules")
async def list_schedules(tenant_id: str, request: Request) -> dict[str, Any]:
    """List a tenant's schedule entries with their next fire times."""
    engine = _engine(request)
    try:
        entries = await engine.list_entries(tenant_id)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return {
        "tenant_id": tenant_id,
        "schedules": [_entry_view(engine, entry) for entry in entries],
    }


@router.post(
    "/{tenant_id}/schedules",
    status_code=status.HTTP_201_CREATED,
    response_model=CreateScheduleResponse,
)
async def create_schedule(
    tenant_id: str, body: CreateScheduleRequest, request: Request
) -> CreateScheduleResponse:
    """Persist a schedule entry and arm its timer."""
    engine = _engine(request)
    try:
        schedule = Schedule(
            kind=body.type,
            local_time=LocalTime.parse(body.time),
            tz_offset_hours=(
                body.timezone_offset
                if body.timezone_offset is not None
                else request.app.state.default_tz_offset
            ),
            day_of_week=body.day_of_week,
            day_of_month=body.day_of_month,
        )
        entry = ScheduleEntry(
            tenant_id=tenant_id,
            name=body.name,
            target=body.target,
            payload=body.payload,
            schedule=schedule,
            enabled=body.enabled,
            created_by=body.created_by,
        )
        result = await engine.create_entry(entry)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except StoreError as e:
        logger.error(
            "schedule_persist_failed",
            extra={"schedule.tenant_id": tenant_id, "error.message": str(e)},
        )
        raise HTTPException(status_code=500, detail=str(e)) from e

    return CreateScheduleResponse(
        id=result.entry_id,
        armed=result.armed,
        status=result.status.value,
        next_fire=result.next_fire,
    )


@router.delete("/{tenant_id}/schedules/{entry_id}")
async def delete_schedule(
    tenant_id: str, entry_id: str, request: Request
) -> dict[str, Any]:
    """Remove one entry and cancel its timer."""
    engine = _engine(request)
    try:
        removed = await engine.remove_entry(tenant_id, entry_id)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    if not removed:
        raise HTTPException(
            status_code=404, detail=f"No schedule {entry_id} for tenant {tenant_id}"
        )
    return {"id": entry_id, "removed": True}


@router.post("/{tenant_id}/reset", response_model=ResetResponse)
async def reset_tenant(tenant_id: str, request: Request) -> ResetResponse:
    """Remove every entry of a tenant and cancel all of its timers."""
    engine = _engine(request)
    try:
        result = await engine.reset_tenant(tenant_id)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return ResetResponse(
        entries_removed=result.entries_removed,
        timers_cancelled=result.timers_cancelled,
    )
