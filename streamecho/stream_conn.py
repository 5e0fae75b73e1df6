"""
asyncio delivers bytes to a Protocol through callbacks, whenever they arrive:
- connection_made(transport): Called when a connection is made. The transport object represents the connection.
- data_received(data): Called when data is received. The data parameter contains the bytes received (never empty).
- eof_received(): Called when the peer has signalled it will send no more data.
- connection_lost(exc): Called when the connection is closed. exc is None on a clean close, the error otherwise.
- pause_writing()/resume_writing(): Called when the transport's write buffer crosses its high/low water marks.

StreamConn turns that push API into a pull API: `await conn.read()` and `await conn.write(data)`, one at a time.
Reading from the transport stays paused unless a read is pending, so a fast peer can never get ahead of a slow
consumer: at most one chunk is in flight per connection, and the kernel's receive buffer does the rest.
"""
import asyncio
import logging
from typing import Awaitable, Callable

from ._types import Address, ConnState
from .config import Config
from .echo import echo_loop
from .exceptions import BackpressureViolation, ConcurrentReadError, StreamConnError
from .flow_control import FlowControl
from .server_state import ServerState
from .supervisor import supervise
from .util import format_addr, get_local_addr, get_remote_addr

logger = logging.getLogger(__name__)

App = Callable[["StreamConn"], Awaitable[None]]


class StreamConn(asyncio.Protocol):

    def __init__(self,
                 config: Config | None = None,
                 server_state: ServerState | None = None,
                 app: App | None = echo_loop,
                 loop: asyncio.AbstractEventLoop | None = None):
        self.loop = loop or asyncio.get_event_loop()
        self.config = config or Config()
        # app is run under supervise() once the connection is made; None leaves driving the connection to the caller
        self.app = app

        # Per-connection state
        self.transport: asyncio.Transport | None = None
        self.flow_control: FlowControl | None = None
        self.client: Address | None = None
        self.server: Address | None = None
        self.state = ConnState.OPEN
        self.error: BaseException | None = None
        self.bytes_received = 0
        self.bytes_sent = 0
        self._reader: asyncio.Future[bytes] | None = None
        self._released = False

        # Shared server state
        self.server_state = server_state or ServerState()
        self.connections = self.server_state.connections
        self.tasks = self.server_state.tasks

    @property
    def read_pending(self) -> bool:
        return self._reader is not None

    @property
    def released(self) -> bool:
        return self._released

    # Protocol callbacks

    def connection_made(self, transport: asyncio.Transport):
        self.transport = transport
        self.flow_control = FlowControl(transport)
        # Nobody is reading yet.
        self.flow_control.pause_reading()
        self.client = get_remote_addr(transport)
        self.server = get_local_addr(transport)

        limit = self.config.limit_concurrency
        if limit is not None and len(self.connections) >= limit:
            logger.warning("Exceeded concurrency limit, rejecting connection from %s", format_addr(self.client))
            self.release()
            return

        self.connections.add(self)
        self.server_state.total_connections += 1
        logger.info("New connection from %s", format_addr(self.client))

        if self.app is not None:
            task = self.loop.create_task(supervise(self, self.app))
            task.add_done_callback(self.tasks.discard)
            self.tasks.add(task)

    def data_received(self, data: bytes):
        if self._released:
            return
        # backpressure: nothing more until the next read()
        self.flow_control.pause_reading()
        reader, self._reader = self._reader, None
        if reader is None or reader.done():
            exc = BackpressureViolation("received %d bytes with no read pending" % len(data))
            logger.error("Connection from %s: %s", format_addr(self.client), exc, exc_info=exc)
            self._set_error(exc)
            return
        logger.debug("Received %d bytes from %s", len(data), format_addr(self.client))
        self.bytes_received += len(data)
        reader.set_result(data)

    def eof_received(self) -> bool:
        if not self._released:
            logger.debug("EOF from %s", format_addr(self.client))
            self._set_ended()
        # Keep the transport half-open. Closing it is up to release().
        return True

    def connection_lost(self, exc: Exception | None) -> None:
        """
        Called when the peer resets the connection, on a transmission error, or once release() has closed the transport.
        """
        self.connections.discard(self)
        if self.flow_control is not None:
            self.flow_control.resume_writing()  # wake up writers stuck in drain()
        if self._released:
            return
        if exc is None:
            self._set_ended()
        else:
            logger.debug("Connection from %s lost: %r", format_addr(self.client), exc)
            self._set_error(exc)

    def pause_writing(self) -> None:
        """
        Called by the transport when the write buffer exceeds the high water mark
        """
        self.flow_control.pause_writing()

    def resume_writing(self) -> None:
        """
        Called by the transport when the write buffer goes below the low water mark
        """
        self.flow_control.resume_writing()

    # Sequential API

    async def read(self) -> bytes:
        """
        Wait for the next chunk of bytes from the peer.

        Returns b"" once the peer has ended the stream, and keeps returning it on every later call.
        Raises the connection's terminal error if there is one, immediately and on every later call.
        Only one read may be pending at a time; a second one raises ConcurrentReadError.
        """
        if self._reader is not None:
            raise ConcurrentReadError("read() called while another read is pending")
        if self.state is ConnState.ERRORED:
            raise self.error
        if self.state is ConnState.ENDED:
            return b""
        if self.transport is None:
            raise StreamConnError("read() called before the connection was made")

        reader = self.loop.create_future()
        self._reader = reader
        timer = None
        if self.config.read_timeout is not None:
            timer = self.loop.call_later(self.config.read_timeout, self._read_timed_out, reader)
        self.flow_control.resume_reading()
        try:
            return await reader
        finally:
            if timer is not None:
                timer.cancel()
            if self._reader is reader:
                # the caller gave up waiting (cancelled)
                self._reader = None
                self.flow_control.pause_reading()

    async def write(self, data: bytes) -> None:
        """
        Hand data to the transport and wait until its buffer is below the high water mark.
        """
        if not data:
            raise ValueError("write() requires a non-empty payload")
        if self.state is ConnState.ERRORED:
            raise self.error
        if self.transport is None:
            raise StreamConnError("write() called before the connection was made")
        if self.transport.is_closing():
            self._set_error(ConnectionResetError("transport is closed"))
            raise self.error

        self.transport.write(data)
        self.bytes_sent += len(data)
        if self.flow_control.write_paused:
            await asyncio.wait_for(self.flow_control.drain(), timeout=self.config.write_timeout)
        if self.state is ConnState.ERRORED:
            raise self.error

    def shutdown(self) -> None:
        """
        Called by the server to commence a graceful shutdown. The connection is treated as ended, so the app sees
        end of stream on its next read and finishes after whatever write it is doing now.
        """
        logger.debug("Shutting down connection from %s", format_addr(self.client))
        self._set_ended()

    def release(self, abort: bool = False) -> None:
        """
        Close the transport. Only the first call has any effect; notifications after it are ignored.
        With abort, whatever is still buffered for the peer is dropped and connection_lost follows right away.
        """
        if self._released:
            return
        # a read still waiting here would never be resolved otherwise
        self._set_ended()
        self._released = True
        self.connections.discard(self)
        if self.transport is not None:
            if abort:
                self.transport.abort()
            else:
                self.transport.close()
        logger.info(
            "Connection from %s %s (%d bytes in, %d bytes out)",
            format_addr(self.client), "aborted" if abort else "closed", self.bytes_received, self.bytes_sent,
        )

    # State transitions

    def _set_ended(self) -> None:
        if self.state is not ConnState.OPEN:
            return
        self.state = ConnState.ENDED
        reader, self._reader = self._reader, None
        if reader is not None and not reader.done():
            reader.set_result(b"")

    def _set_error(self, exc: BaseException) -> None:
        if self.state is ConnState.ERRORED:
            return
        self.state = ConnState.ERRORED
        self.error = exc
        reader, self._reader = self._reader, None
        if reader is not None and not reader.done():
            reader.set_exception(exc)

    def _read_timed_out(self, reader: "asyncio.Future[bytes]") -> None:
        if self._reader is not reader or reader.done():
            return
        self._reader = None
        self.flow_control.pause_reading()
        reader.set_exception(asyncio.TimeoutError("read timed out after %ss" % self.config.read_timeout))
