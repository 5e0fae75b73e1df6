
class Config:

    def __init__(
            self,
            host: str | None = "127.0.0.1",
            port: int = 1234,
            backlog: int = 100,
            limit_concurrency: int | None = None,
            read_timeout: float | None = None,
            write_timeout: float | None = None,
            timeout_graceful_shutdown: float | None = None,
    ):
        self.host = host
        self.port = port
        self.backlog = backlog
        self.limit_concurrency = limit_concurrency
        # deadlines apply to a single read()/write() wait, not to the connection as a whole
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self.timeout_graceful_shutdown = timeout_graceful_shutdown
