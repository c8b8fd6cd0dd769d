"""Server command for running the Chime scheduler."""

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer

from chime.cli.console import error

if TYPE_CHECKING:
    from chime.config import ChimeConfig
    from chime.dispatch import LogDispatcher, WebhookDispatcher
    from chime.scheduling import SchedulerEngine

logger = logging.getLogger(__name__)


def register(app: typer.Typer) -> None:
    """Register the serve command."""

    @app.command()
    def serve(
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
        host: Annotated[
            str | None,
            typer.Option(
                "--host",
                "-h",
                help="Host to bind to (default from config)",
            ),
        ] = None,
        port: Annotated[
            int | None,
            typer.Option(
                "--port",
                "-p",
                help="Port to bind to (default from config)",
            ),
        ] = None,
        dry_run: Annotated[
            bool,
            typer.Option(
                "--dry-run",
                help="Log deliveries instead of sending them",
            ),
        ] = False,
    ) -> None:
        """Start the scheduler with its HTTP admin API."""
        from chime.config import ConfigError, load_config

        try:
            chime_config = load_config(config)
        except (ConfigError, FileNotFoundError) as e:
            error(str(e))
            raise typer.Exit(1) from None

        try:
            asyncio.run(_run_server(chime_config, host, port, dry_run))
        except KeyboardInterrupt:
            # Use print here since logging may not be configured yet
            print("\nServer stopped")


def build_dispatcher(
    config: "ChimeConfig", dry_run: bool = False
) -> "WebhookDispatcher | LogDispatcher":
    """Create the dispatcher selected by config (or forced by --dry-run)."""
    from chime.dispatch import LogDispatcher, WebhookDispatcher

    if dry_run or config.dispatch.mode == "log":
        return LogDispatcher()

    token = config.dispatch.auth_token
    return WebhookDispatcher(
        timeout=config.scheduler.dispatch_timeout,
        headers=config.dispatch.headers,
        auth_token=token.get_secret_value() if token else None,
    )


def build_engine(
    config: "ChimeConfig", dispatcher: "WebhookDispatcher | LogDispatcher"
) -> "SchedulerEngine":
    """Wire the store and dispatcher into a scheduler engine."""
    from chime.scheduling import ScheduleStore, SchedulerEngine

    return SchedulerEngine(
        ScheduleStore(config.scheduler.store_path),
        dispatcher,
        dispatch_timeout=config.scheduler.dispatch_timeout,
    )


async def _run_server(
    config: "ChimeConfig",
    host: str | None = None,
    port: int | None = None,
    dry_run: bool = False,
) -> None:
    """Run the server asynchronously."""
    from chime.dispatch import WebhookDispatcher
    from chime.logging import configure_logging
    from chime.server import ServerRunner, create_app

    # Rich console output for the server, plus JSONL files when enabled
    configure_logging(
        level=config.logging.level,
        use_rich=True,
        log_to_file=config.logging.log_to_file,
        retention_days=config.logging.retention_days,
    )

    dispatcher = build_dispatcher(config, dry_run)
    engine = build_engine(config, dispatcher)

    on_shutdown = (
        dispatcher.aclose if isinstance(dispatcher, WebhookDispatcher) else None
    )
    app = create_app(
        engine,
        on_shutdown=on_shutdown,
        default_tz_offset=config.scheduler.default_tz_offset,
    )

    bind_host = host or config.server.host
    bind_port = port or config.server.port
    logger.info(
        "server_configured",
        extra={
            "scheduler.store_path": str(config.scheduler.store_path),
            "dispatch.mode": "log" if dry_run else config.dispatch.mode,
        },
    )

    runner = ServerRunner(app, host=bind_host, port=bind_port)
    await runner.run()
