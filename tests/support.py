import asyncio


class FakeTransport:
    """Records what the protocol asks of it. Never calls back into the protocol."""

    def __init__(self, peername=("127.0.0.1", 50000), sockname=("127.0.0.1", 1234)):
        self.reading = True
        self.calls: list[str] = []
        self.written: list[bytes] = []
        self.close_count = 0
        self.abort_count = 0
        self._extra = {"peername": peername, "sockname": sockname}

    def get_extra_info(self, name, default=None):
        return self._extra.get(name, default)

    def pause_reading(self):
        self.reading = False
        self.calls.append("pause")

    def resume_reading(self):
        self.reading = True
        self.calls.append("resume")

    def write(self, data):
        self.written.append(bytes(data))

    def is_closing(self):
        return self.close_count > 0 or self.abort_count > 0

    def close(self):
        self.close_count += 1

    def abort(self):
        self.abort_count += 1


async def settle(ticks: int = 5) -> None:
    """Let scheduled callbacks and woken tasks run."""
    for _ in range(ticks):
        await asyncio.sleep(0)
