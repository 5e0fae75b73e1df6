from typing import Generator
import asyncio
import contextlib
import functools
import logging
import signal
import sys
import threading
import click
from .config import Config
from .server_state import ServerState
from .stream_conn import StreamConn


# First signal: stop accepting and let echo connections finish. Second SIGINT: cancel their supervisors.
HANDLED_SIGNALS = {
    signal.SIGINT: "SIGINT",
    signal.SIGTERM: "SIGTERM",
}
if sys.platform == "win32":
    HANDLED_SIGNALS[signal.SIGBREAK] = "SIGBREAK"


logger = logging.getLogger(__name__)


class Server:
    def __init__(self, config: Config):
        self.config = config
        self.server_state = ServerState()
        self.started = False
        self.should_exit = False
        self.force_exit = False
        self._captured_signals: list[int] = []
        self.server: asyncio.Server | None = None

    def run(self) -> None:
        return asyncio.run(self.serve())

    async def serve(self) -> None:
        with self.capture_signals():
            await self._serve()

    async def _serve(self):
        logger.info("Starting server...")
        await self.startup()
        # a signal caught while binding leaves should_exit set
        if self.should_exit:
            return
        await self.main_loop()
        await self.shutdown()
        logger.info("Server shutdown complete!")

    async def startup(self) -> None:
        loop = asyncio.get_running_loop()
        protocol_factory = functools.partial(
            StreamConn,
            config=self.config,
            server_state=self.server_state,
            loop=loop,
        )
        try:
            server = await loop.create_server(protocol_factory,
                                              host=self.config.host,
                                              port=self.config.port,
                                              backlog=self.config.backlog
                                              )
        except OSError as exc:
            logger.error(exc)
            sys.exit(1)

        self.server = server
        self._log_startup_message(server.sockets[0])
        self.started = True

    @property
    def port(self) -> int | None:
        """The bound port, useful when listening on port 0."""
        if self.server is None or not self.server.sockets:
            return None
        return self.server.sockets[0].getsockname()[1]

    def _log_startup_message(self, listener):
        addr_format = "%s://%s:%d"
        host = "0.0.0.0" if self.config.host is None else self.config.host
        if ":" in host:
            # It's an IPv6 address.
            addr_format = "%s://[%s]:%d"

        port = self.config.port
        if port == 0:
            port = listener.getsockname()[1]

        message = f"Echo server running on {addr_format} (Press CTRL+C to quit)"
        color_message = "Echo server running on " + click.style(addr_format, bold=True) + " (Press CTRL+C to quit)"
        logger.info(
            message,
            "tcp",
            host,
            port,
            extra={"color_message": color_message},
        )

    async def main_loop(self) -> None:
        """
        While main_loop sleeps, the event loop is free to accept new connections and run the supervisor tasks.
        """
        while not self.should_exit:
            await asyncio.sleep(0.1)

    async def shutdown(self) -> None:
        logger.info("Shutting down server...")
        # Stop accepting new connections:
        self.server.close()

        """
        connection.shutdown() marks each connection as ended: its echo loop sees end of stream on the next read,
        finishes the write it may be in the middle of, and the supervisor then releases the transport.
        """
        for connection in list(self.server_state.connections):
            connection.shutdown()

        # Give the supervisors a chance to run before we start polling.
        await asyncio.sleep(0.1)

        try:
            await asyncio.wait_for(
                self._wait_tasks_to_complete(),
                timeout=self.config.timeout_graceful_shutdown
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Graceful shutdown timed out. Forcing exit."
            )
            for t in list(self.server_state.tasks):
                if not t.done():
                    t.cancel(msg="Task cancelled due to timeout during graceful shutdown")

        # Cancelled supervisors abort their transports, so wait_closed() below cannot be held up by a peer
        # that stopped reading our echo.
        if self.force_exit:
            for t in list(self.server_state.tasks):
                if not t.done():
                    t.cancel(msg="Task cancelled by forced exit")

        if self.server_state.tasks:
            # let cancelled supervisors release their transports
            await asyncio.gather(*self.server_state.tasks, return_exceptions=True)

        await self.server.wait_closed()

    async def _wait_tasks_to_complete(self) -> None:
        """
        Wait for live connections and their supervisor tasks to finish. A connection leaves server_state.connections
        on release, slightly before its supervisor task is done, so both are checked.
        """
        if self.server_state.connections and not self.force_exit:
            logger.info("Waiting for connections to close. (CTRL+C to force quit)")
            while self.server_state.connections and not self.force_exit:
                await asyncio.sleep(0.1)

        if self.server_state.tasks and not self.force_exit:
            logger.info("Waiting for connection tasks to complete. (CTRL+C to force quit)")
            while self.server_state.tasks and not self.force_exit:
                await asyncio.sleep(0.1)

    # signal handling
    @contextlib.contextmanager
    def capture_signals(self) -> Generator[None, None, None]:
        """
        Signals can only be listened to from the main thread
        """
        if threading.current_thread() is not threading.main_thread():
            yield
            return
        original_handlers = {sig: signal.signal(sig, self.handle_exit) for sig in HANDLED_SIGNALS.keys()}
        try:
            yield
        finally:
            # Restore original signal handlers
            for sig, handler in original_handlers.items():
                signal.signal(sig, handler)
            # Raise captured signals in reverse order to ensure proper handling
            for captured_signal in reversed(self._captured_signals):
                signal.raise_signal(captured_signal)

    def handle_exit(self, sig: int, frame) -> None:
        """
        should_exit ends main_loop and starts the graceful shutdown of the echo connections. A second SIGINT while
        that is still waiting sets force_exit, which stops the waiting and cancels the remaining supervisors.
        """
        self._captured_signals.append(sig)
        if self.should_exit and sig == signal.SIGINT:
            self.force_exit = True
        else:
            self.should_exit = True
