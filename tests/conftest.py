"""
pytest configuration and fixtures.
"""
import pytest

from streamecho.config import Config
from streamecho.server_state import ServerState
from streamecho.stream_conn import StreamConn

from .support import FakeTransport


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def server_state() -> ServerState:
    return ServerState()


@pytest.fixture
def make_conn(transport, server_state):
    """Build a StreamConn attached to the fake transport. Call it from inside a running event loop."""
    def _make(app=None, transport=transport, **config):
        conn = StreamConn(config=Config(**config), server_state=server_state, app=app)
        conn.connection_made(transport)
        return conn
    return _make
