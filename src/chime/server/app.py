"""FastAPI application for the Chime admin server."""

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from chime.server.routes import health, schedules

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from chime.scheduling import SchedulerEngine

logger = logging.getLogger(__name__)


class ChimeServer:
    """Main server application.

    Owns the FastAPI app and ties the scheduler engine to its lifespan:
    timers are armed on startup and cancelled on shutdown.
    """

    def __init__(
        self,
        engine: "SchedulerEngine",
        on_shutdown: "Callable[[], Awaitable[None]] | None" = None,
        default_tz_offset: float = 0.0,
    ):
        self._engine = engine
        self._on_shutdown = on_shutdown
        self._default_tz_offset = default_tz_offset
        self._app = self._create_app()

    @property
    def app(self) -> FastAPI:
        """Get the FastAPI application."""
        return self._app

    @property
    def engine(self) -> "SchedulerEngine":
        return self._engine

    def _create_app(self) -> FastAPI:
        """Create and configure the FastAPI app."""

        @asynccontextmanager
        async def lifespan(app: FastAPI) -> "AsyncIterator[None]":
            # Startup
            logger.info("server_starting")
            await self._engine.start()

            yield

            # Shutdown
            logger.info("server_stopping")
            await self._engine.stop()
            if self._on_shutdown:
                await self._on_shutdown()

        app = FastAPI(
            title="Chime",
            description="Multi-tenant recurring schedule API",
            version="0.1.0",
            lifespan=lifespan,
        )

        # Store references in app state
        app.state.server = self
        app.state.engine = self._engine
        app.state.default_tz_offset = self._default_tz_offset

        # Include routes
        app.include_router(health.router, tags=["health"])
        app.include_router(schedules.router, prefix="/tenants", tags=["schedules"])

        return app


def create_app(
    engine: "SchedulerEngine",
    on_shutdown: "Callable[[], Awaitable[None]] | None" = None,
    default_tz_offset: float = 0.0,
) -> FastAPI:
    """Create the FastAPI application.

    ``default_tz_offset`` applies to create requests that omit an offset.
    """
    server = ChimeServer(
        engine=engine, on_shutdown=on_shutdown, default_tz_offset=default_tz_offset
    )
    return server.app
