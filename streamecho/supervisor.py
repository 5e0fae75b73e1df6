import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable

from .util import format_addr

if TYPE_CHECKING:
    from .stream_conn import StreamConn

logger = logging.getLogger(__name__)


async def supervise(conn: "StreamConn", app: Callable[["StreamConn"], Awaitable[None]]) -> None:
    """
    Run app against one connection and release the transport afterwards, however app finished.
    Failures are logged here and go no further, so one broken connection never reaches the listener.
    Cancellation aborts the transport instead of closing it, then propagates.
    """
    cancelled = False
    try:
        await app(conn)
    except asyncio.CancelledError:
        # app may be stuck in drain() on a peer that stopped reading; close() would wait on that buffer forever
        cancelled = True
        raise
    except Exception as exc:
        msg = "Exception in connection handler for {}: {!r}".format(format_addr(conn.client), exc)
        logger.error(msg, exc_info=exc)
    finally:
        conn.release(abort=cancelled)
