"""Dispatcher protocol and the logging dispatcher."""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Dispatcher(Protocol):
    """Delivers a payload to a target when a schedule fires.

    Implementations raise ``DeliveryError`` on failure. The scheduler treats
    success and failure alike as a completed fire.
    """

    async def deliver(self, target: str, payload: Any) -> None: ...


@dataclass
class Delivery:
    target: str
    payload: Any
    delivered_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class LogDispatcher:
    """Dispatcher that only logs (and remembers) deliveries.

    Used for dry runs where nothing should leave the process.
    """

    def __init__(self, max_history: int = 100) -> None:
        self._max_history = max_history
        self.deliveries: list[Delivery] = []

    async def deliver(self, target: str, payload: Any) -> None:
        preview = str(payload)[:50]
        logger.info(
            "dry_run_delivery",
            extra={"dispatch.target": target, "dispatch.payload_preview": preview},
        )
        self.deliveries.append(Delivery(target=target, payload=payload))
        if len(self.deliveries) > self._max_history:
            del self.deliveries[: -self._max_history]
