"""HTTP admin server for Chime."""

from chime.server.app import ChimeServer, create_app
from chime.server.runner import ServerRunner

__all__ = [
    "ChimeServer",
    "ServerRunner",
    "create_app",
]
