"""
Flow control for an asyncio transport, allowing reading and writing to be paused and resumed.
Read rate is dictated by the consumer: reading stays paused until a read is requested, and is paused again as soon as
that read is fulfilled. Write rate is controlled by the transport, which calls pause_writing/resume_writing on the
protocol as its buffer crosses the high/low water marks.
We need asyncio.Event to manage the state of writing operations, so writers can wait in drain() until resumed.
"""


import asyncio


class FlowControl:

    def __init__(self, transport: asyncio.Transport):
        self._read_paused = False
        self._write_paused = False
        self._write_event: asyncio.Event = asyncio.Event()
        self._write_event.set() # Set the event to allow writing initially
        self._transport = transport

    @property
    def read_paused(self) -> bool:
        return self._read_paused

    @property
    def write_paused(self) -> bool:
        return self._write_paused

    async def drain(self):
        await self._write_event.wait()  # Wait until the write event is set

    def pause_reading(self):
        if not self._read_paused:
            self._read_paused = True
            self._transport.pause_reading()

    def resume_reading(self):
        if self._read_paused:
            self._read_paused = False
            self._transport.resume_reading()

    def pause_writing(self):
        if not self._write_paused:
            self._write_paused = True
            self._write_event.clear()

    def resume_writing(self):
        if self._write_paused:
            self._write_paused = False
            self._write_event.set()
