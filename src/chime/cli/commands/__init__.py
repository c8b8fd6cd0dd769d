"""CLI command modules."""

from chime.cli.commands import schedule, serve

__all__ = [
    "schedule",
    "serve",
]
