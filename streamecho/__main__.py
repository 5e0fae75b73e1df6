import logging

import click

from .config import Config
from .server import Server

LOG_LEVELS = ["critical", "error", "warning", "info", "debug"]


@click.command()
@click.option("--host", type=str, default="127.0.0.1", show_default=True, help="Bind socket to this host.")
@click.option("--port", type=int, default=1234, show_default=True, help="Bind socket to this port (0 picks a free one).")
@click.option("--backlog", type=int, default=100, show_default=True, help="Maximum number of pending connections.")
@click.option("--limit-concurrency", type=int, default=None,
              help="Maximum number of live connections; further connections are closed on accept.")
@click.option("--read-timeout", type=float, default=None, help="Seconds a single read may wait for data.")
@click.option("--write-timeout", type=float, default=None, help="Seconds a single write may wait for the buffer to drain.")
@click.option("--timeout-graceful-shutdown", type=float, default=None,
              help="Seconds to wait for connections to finish on shutdown before cancelling them.")
@click.option("--log-level", type=click.Choice(LOG_LEVELS), default="info", show_default=True)
def main(host, port, backlog, limit_concurrency, read_timeout, write_timeout, timeout_graceful_shutdown, log_level):
    """Run a TCP echo server."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = Config(
        host=host,
        port=port,
        backlog=backlog,
        limit_concurrency=limit_concurrency,
        read_timeout=read_timeout,
        write_timeout=write_timeout,
        timeout_graceful_shutdown=timeout_graceful_shutdown,
    )
    Server(config).run()


if __name__ == "__main__":
    main()
