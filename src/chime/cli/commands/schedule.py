"""Schedule management commands.

When a chime server is reachable at the configured host and port, add,
remove and reset go through its admin API so the running engine arms and
cancels timers at once. Otherwise they edit the store file directly.
"""

from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import click
import httpx
import typer

from chime.cli.console import (
    confirm_or_cancel,
    console,
    create_table,
    dim,
    error,
    success,
    warning,
)
from chime.scheduling import (
    LocalTime,
    Schedule,
    ScheduleEntry,
    ScheduleKind,
    ScheduleStore,
    SchedulingError,
    StoreError,
    UnsatisfiableScheduleError,
    ValidationError,
    describe_schedule,
    next_fire_time,
)
from chime.scheduling.format import format_countdown

if TYPE_CHECKING:
    from chime.config import ChimeConfig

ACTIONS = ("list", "add", "remove", "reset", "next")
ADMIN_ACTIONS = ("add", "remove", "reset")

# Seconds to wait on the admin API of a running server
ADMIN_TIMEOUT = 5.0


def register(app: typer.Typer) -> None:
    """Register the schedule command."""

    @app.command()
    def schedule(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: list, add, remove, reset, next"),
        ] = None,
        tenant: Annotated[
            str | None,
            typer.Option("--tenant", "-t", help="Tenant that owns the schedules"),
        ] = None,
        entry_id: Annotated[
            str | None,
            typer.Option("--id", "-i", help="Entry ID (8-char hex) for remove"),
        ] = None,
        name: Annotated[
            str | None,
            typer.Option("--name", "-n", help="Unique name for the entry"),
        ] = None,
        target: Annotated[
            str | None,
            typer.Option("--target", help="Webhook URL to deliver to"),
        ] = None,
        message: Annotated[
            str | None,
            typer.Option("--message", "-m", help="Message to deliver"),
        ] = None,
        kind: Annotated[
            ScheduleKind | None,
            typer.Option("--type", help="once, daily, weekly or monthly"),
        ] = None,
        time: Annotated[
            str | None,
            typer.Option("--time", help="Time in HH:MM 24-hour format"),
        ] = None,
        tz_offset: Annotated[
            float | None,
            typer.Option("--tz-offset", help="UTC offset in hours (e.g. -5, 5.5)"),
        ] = None,
        day_of_week: Annotated[
            int | None,
            typer.Option("--day-of-week", help="0=Sunday ... 6=Saturday (weekly)"),
        ] = None,
        day_of_month: Annotated[
            int | None,
            typer.Option("--day-of-month", help="1-31 (monthly)"),
        ] = None,
        config_path: Annotated[
            Path | None,
            typer.Option("--config", "-c", help="Path to configuration file"),
        ] = None,
        force: Annotated[
            bool,
            typer.Option("--force", "-f", help="Force action without confirmation"),
        ] = False,
    ) -> None:
        """Manage scheduled messages.

        Examples:
            chime schedule list --tenant guild-1
            chime schedule add -t guild-1 -n standup --target https://... \\
                -m "Standup time" --type daily --time 09:00 --tz-offset -5
            chime schedule remove --tenant guild-1 --id a1b2c3d4
            chime schedule reset --tenant guild-1
            chime schedule next --type weekly --time 18:00 --day-of-week 5
        """
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        if action not in ACTIONS:
            error(f"Unknown action: {action}")
            console.print(f"Valid actions: {', '.join(ACTIONS)}")
            raise typer.Exit(1)

        from chime.config import ConfigError, load_config

        try:
            config = load_config(config_path)
        except (ConfigError, FileNotFoundError) as e:
            error(str(e))
            raise typer.Exit(1) from None

        if tz_offset is None:
            tz_offset = config.scheduler.default_tz_offset

        if action == "next":
            _schedule_next(kind, time, tz_offset, day_of_week, day_of_month)
            return

        if tenant is None:
            error(f"--tenant is required for {action}")
            raise typer.Exit(1)

        store = ScheduleStore(config.scheduler.store_path)
        admin = _admin_client(config) if action in ADMIN_ACTIONS else None
        if admin is not None:
            dim(f"Using running server at {admin.base_url}")
        try:
            if action == "list":
                _schedule_list(store, tenant)
            elif action == "add":
                _schedule_add(
                    store,
                    admin,
                    tenant,
                    name=name,
                    target=target,
                    message=message,
                    kind=kind,
                    time=time,
                    tz_offset=tz_offset,
                    day_of_week=day_of_week,
                    day_of_month=day_of_month,
                )
            elif action == "remove":
                if entry_id is None:
                    error("--id is required for remove")
                    raise typer.Exit(1)
                _schedule_remove(store, admin, tenant, entry_id)
            elif action == "reset":
                _schedule_reset(store, admin, tenant, force)
        except StoreError as e:
            error(f"Schedule store error: {e}")
            raise typer.Exit(1) from None
        finally:
            if admin is not None:
                admin.close()


def _admin_client(config: "ChimeConfig") -> httpx.Client | None:
    """Get a client for a running server's admin API.

    Returns:
        None if no server answers the health check.
    """
    host = config.server.host
    if host in ("0.0.0.0", "::"):
        host = "127.0.0.1"
    client = httpx.Client(
        base_url=f"http://{host}:{config.server.port}", timeout=ADMIN_TIMEOUT
    )
    try:
        client.get("/health").raise_for_status()
    except httpx.HTTPError:
        client.close()
        return None
    return client


def _admin_request(
    admin: httpx.Client, method: str, url: str, **kwargs: Any
) -> httpx.Response:
    try:
        return admin.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        error(f"Admin API request failed: {e}")
        raise typer.Exit(1) from None


def _admin_detail(response: httpx.Response) -> str:
    try:
        return str(response.json().get("detail", response.text))
    except ValueError:
        return response.text


def _build_schedule(
    kind: ScheduleKind | None,
    time: str | None,
    tz_offset: float,
    day_of_week: int | None,
    day_of_month: int | None,
) -> Schedule:
    if kind is None or time is None:
        raise ValidationError("--type and --time are required")
    schedule = Schedule(
        kind=kind,
        local_time=LocalTime.parse(time),
        tz_offset_hours=tz_offset,
        day_of_week=day_of_week,
        day_of_month=day_of_month,
    )
    schedule.validate()
    return schedule


def _schedule_list(store: ScheduleStore, tenant: str) -> None:
    """List a tenant's scheduled messages."""
    entries = store.list_for_tenant(tenant)
    if not entries:
        warning(f"No scheduled messages for tenant {tenant}")
        return

    table = create_table(
        f"Scheduled messages for {tenant}",
        [
            ("ID", {"style": "dim", "no_wrap": True}),
            ("Name", {"style": "bold", "no_wrap": True}),
            ("Schedule", ""),
            ("Target", ""),
            ("Message", ""),
            ("Next Fire", ""),
        ],
    )

    now = datetime.now(UTC)
    for entry in entries:
        payload = str(entry.payload)
        payload = payload[:40] + "..." if len(payload) > 40 else payload
        target = entry.target[:30] + "..." if len(entry.target) > 30 else entry.target

        if not entry.enabled:
            next_fire_display = "[dim]disabled[/dim]"
        else:
            try:
                next_fire = next_fire_time(entry.schedule, now)
            except UnsatisfiableScheduleError:
                next_fire = None
            next_fire_display = format_countdown(next_fire, now)

        table.add_row(
            entry.id,
            entry.name,
            describe_schedule(entry.schedule),
            target,
            payload,
            next_fire_display,
        )

    console.print(table)
    dim(f"Total: {len(entries)} message(s)")


def _schedule_add(
    store: ScheduleStore,
    admin: httpx.Client | None,
    tenant: str,
    *,
    name: str | None,
    target: str | None,
    message: str | None,
    kind: ScheduleKind | None,
    time: str | None,
    tz_offset: float,
    day_of_week: int | None,
    day_of_month: int | None,
) -> None:
    """Persist a new scheduled message."""
    if not name or not target or message is None:
        error("--name, --target and --message are required for add")
        raise typer.Exit(1)

    try:
        schedule = _build_schedule(kind, time, tz_offset, day_of_week, day_of_month)
        entry = ScheduleEntry(
            tenant_id=tenant,
            name=name,
            target=target,
            payload=message,
            schedule=schedule,
            created_by="cli",
        )
        entry.validate()
    except SchedulingError as e:
        error(str(e))
        raise typer.Exit(1) from None

    if admin is None:
        store.put(tenant, entry)
        next_fire = next_fire_time(schedule)
    else:
        response = _admin_request(
            admin,
            "POST",
            f"/tenants/{tenant}/schedules",
            json={
                "name": name,
                "target": target,
                "payload": message,
                "type": schedule.kind.value,
                "time": str(schedule.local_time),
                "timezone_offset": schedule.tz_offset_hours,
                "day_of_week": schedule.day_of_week,
                "day_of_month": schedule.day_of_month,
                "created_by": entry.created_by,
            },
        )
        if response.status_code != 201:
            error(f"Server rejected schedule: {_admin_detail(response)}")
            raise typer.Exit(1)
        created = response.json()
        entry.id = created["id"]
        next_fire = (
            datetime.fromisoformat(created["next_fire"])
            if created.get("next_fire")
            else None
        )

    success(f"Scheduled {entry.name} ({entry.id}): {describe_schedule(schedule)}")
    if next_fire is None:
        warning("That time has already passed today; the message will not fire")
    else:
        dim(f"Next fire: {next_fire.isoformat()} ({format_countdown(next_fire)})")


def _schedule_remove(
    store: ScheduleStore, admin: httpx.Client | None, tenant: str, entry_id: str
) -> None:
    """Remove a scheduled message by ID."""
    if admin is not None:
        response = _admin_request(
            admin, "DELETE", f"/tenants/{tenant}/schedules/{entry_id}"
        )
        if response.status_code == 404:
            error(f"No scheduled message found with ID {entry_id}")
            raise typer.Exit(1)
        if response.status_code != 200:
            error(f"Server could not remove {entry_id}: {_admin_detail(response)}")
            raise typer.Exit(1)
        success(f"Removed: {entry_id}")
        return

    entry = store.get(tenant, entry_id)
    if entry is None or not store.remove(tenant, entry_id):
        error(f"No scheduled message found with ID {entry_id}")
        raise typer.Exit(1)
    success(f"Removed: {entry.name} ({entry_id})")


def _schedule_reset(
    store: ScheduleStore, admin: httpx.Client | None, tenant: str, force: bool
) -> None:
    """Remove every scheduled message of a tenant."""
    entries = store.list_for_tenant(tenant)
    if not entries:
        warning(f"No scheduled messages for tenant {tenant}")
        return

    if not confirm_or_cancel(
        f"This will delete {len(entries)} scheduled message(s) for {tenant}. Continue?",
        force,
    ):
        return

    if admin is None:
        removed = len(store.remove_all_for_tenant(tenant))
    else:
        response = _admin_request(admin, "POST", f"/tenants/{tenant}/reset")
        if response.status_code != 200:
            error(f"Server could not reset {tenant}: {_admin_detail(response)}")
            raise typer.Exit(1)
        removed = response.json()["entries_removed"]
    success(f"Removed {removed} scheduled message(s)")


def _schedule_next(
    kind: ScheduleKind | None,
    time: str | None,
    tz_offset: float,
    day_of_week: int | None,
    day_of_month: int | None,
) -> None:
    """Preview when a schedule would next fire."""
    try:
        schedule = _build_schedule(kind, time, tz_offset, day_of_week, day_of_month)
        next_fire = next_fire_time(schedule)
    except SchedulingError as e:
        error(str(e))
        raise typer.Exit(1) from None

    console.print(describe_schedule(schedule))
    if next_fire is None:
        warning("Already elapsed; a one-time schedule would not fire")
        return
    console.print(f"Next fire: {next_fire.isoformat()} ({format_countdown(next_fire)})")
