from .config import Config
from .echo import echo_loop
from .server import Server
from .stream_conn import StreamConn

__all__ = ["Config", "Server", "StreamConn", "echo_loop"]
