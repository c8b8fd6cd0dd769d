"""Dispatchers deliver payloads when schedules fire."""

from chime.dispatch.base import Delivery, Dispatcher, LogDispatcher
from chime.dispatch.webhook import WebhookDispatcher

__all__ = [
    "Delivery",
    "Dispatcher",
    "LogDispatcher",
    "WebhookDispatcher",
]
