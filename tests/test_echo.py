import asyncio
import logging

import pytest

from streamecho.echo import echo_loop
from streamecho.supervisor import supervise

from .support import settle


def supervisor_task(conn) -> asyncio.Task:
    (task,) = conn.tasks
    return task


@pytest.mark.asyncio
async def test_echoes_then_stops_on_end_of_stream(make_conn, transport, server_state):
    conn = make_conn(app=echo_loop)
    task = supervisor_task(conn)
    await settle()
    assert conn.read_pending

    conn.data_received(b"abc")
    await settle()
    assert transport.written == [b"abc"]
    assert conn.read_pending

    conn.eof_received()
    await asyncio.wait_for(task, 1)
    assert transport.written == [b"abc"]
    assert transport.close_count == 1
    await settle()
    assert not server_state.tasks
    assert not server_state.connections


@pytest.mark.asyncio
async def test_each_chunk_written_back_before_next_read(make_conn, transport):
    conn = make_conn(app=echo_loop)
    task = supervisor_task(conn)
    await settle()

    # the write of "hello" stalls on a full buffer
    conn.pause_writing()
    conn.data_received(b"hello")
    await settle()
    assert transport.written == [b"hello"]
    assert not conn.read_pending
    assert not transport.reading

    conn.resume_writing()
    await settle()
    assert conn.read_pending
    conn.data_received(b"world")
    await settle()
    assert transport.written == [b"hello", b"world"]

    conn.eof_received()
    await asyncio.wait_for(task, 1)


@pytest.mark.asyncio
async def test_transport_error_is_contained(make_conn, transport, caplog):
    conn = make_conn(app=echo_loop)
    task = supervisor_task(conn)
    await settle()

    with caplog.at_level(logging.ERROR, logger="streamecho.supervisor"):
        conn.connection_lost(ConnectionResetError("reset by peer"))
        # the supervisor swallows the failure
        await asyncio.wait_for(task, 1)

    assert task.exception() is None
    assert transport.close_count == 1
    assert "reset by peer" in caplog.text


@pytest.mark.asyncio
async def test_immediate_end_of_stream_writes_nothing(make_conn, transport):
    conn = make_conn(app=echo_loop)
    task = supervisor_task(conn)

    conn.eof_received()
    await asyncio.wait_for(task, 1)
    assert transport.written == []
    assert transport.close_count == 1


@pytest.mark.asyncio
async def test_echo_loop_propagates_write_errors(make_conn):
    conn = make_conn()
    loop_task = asyncio.create_task(echo_loop(conn))
    await settle()

    conn.pause_writing()
    conn.data_received(b"data")
    await settle()
    conn.connection_lost(BrokenPipeError("broken"))

    with pytest.raises(BrokenPipeError):
        await asyncio.wait_for(loop_task, 1)


@pytest.mark.asyncio
async def test_supervise_releases_on_unexpected_failure(make_conn, transport, caplog):
    conn = make_conn()

    async def broken_app(conn):
        raise KeyError("boom")

    await supervise(conn, broken_app)
    assert transport.close_count == 1
    assert "boom" in caplog.text


@pytest.mark.asyncio
async def test_supervise_aborts_on_cancellation(make_conn, transport):
    conn = make_conn()
    task = asyncio.create_task(supervise(conn, echo_loop))
    await settle()
    assert conn.read_pending

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert transport.abort_count == 1
    assert transport.close_count == 0
    assert not conn.read_pending


@pytest.mark.asyncio
async def test_cancel_during_stalled_write_aborts(make_conn, transport):
    conn = make_conn()
    task = asyncio.create_task(supervise(conn, echo_loop))
    await settle()

    # the peer stopped reading: the echo write never drains
    conn.pause_writing()
    conn.data_received(b"stuck")
    await settle()
    assert transport.written == [b"stuck"]
    assert not task.done()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, 1)
    assert transport.abort_count == 1
    assert transport.close_count == 0
    assert conn.released


@pytest.mark.asyncio
async def test_clean_end_closes_instead_of_aborting(make_conn, transport):
    conn = make_conn()
    task = asyncio.create_task(supervise(conn, echo_loop))
    conn.eof_received()
    await asyncio.wait_for(task, 1)
    assert transport.close_count == 1
    assert transport.abort_count == 0
