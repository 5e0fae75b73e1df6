class StreamConnError(Exception):
    """Base class for errors raised by the stream connection layer."""


class BackpressureViolation(StreamConnError):
    """
    The transport delivered data while no read was pending. Reading is supposed to be paused
    whenever nobody is waiting, so this means the flow control contract was broken.
    """


class ConcurrentReadError(StreamConnError, RuntimeError):
    """A read was issued while another read on the same connection was still pending."""
