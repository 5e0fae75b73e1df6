from typing import TYPE_CHECKING
import asyncio
if TYPE_CHECKING:
    from .stream_conn import StreamConn

class ServerState:
    """
    Shared server state that is available b/w all protocol instances
    """
    def __init__(self):
        """
        Each StreamConn instance represents a single client connection. It is added here in connection_made and removed
        in connection_lost, so the server can ask the live ones to wind down on shutdown.
        """
        self.connections: set["StreamConn"] = set()
        """
        One supervisor task per accepted connection runs the echo loop. Each task removes itself via a done callback,
        so an empty set means every connection has been released.
        """
        self.tasks: set[asyncio.Task[None]] = set()
        self.total_connections = 0
