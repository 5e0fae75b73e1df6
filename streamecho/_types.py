import enum


Address = tuple[str, int]


class ConnState(enum.Enum):
    """
    Lifecycle of a stream connection. Transitions only move forward:
    OPEN -> ENDED, OPEN -> ERRORED, ENDED -> ERRORED. ERRORED is terminal.
    """
    OPEN = "open"
    ENDED = "ended"
    ERRORED = "errored"
