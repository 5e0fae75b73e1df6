from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .stream_conn import StreamConn


async def echo_loop(conn: "StreamConn") -> None:
    """
    Write every chunk read from conn back to it, until the peer ends the stream.
    Read and write errors propagate unchanged.
    """
    while True:
        data = await conn.read()
        if not data:
            return
        await conn.write(data)
