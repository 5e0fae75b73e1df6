from asyncio import Transport

from ._types import Address


def get_local_addr(transport: Transport) -> Address | None:
    socket_info = transport.get_extra_info("socket")
    if socket_info is not None:
        info = socket_info.getsockname()   # (ip_address_str, port_int)
        return (str(info[0]), int(info[1])) if isinstance(info, tuple) else None
    info = transport.get_extra_info("sockname")
    if info is not None and isinstance(info, (list, tuple)) and len(info) >= 2:
        return (str(info[0]), int(info[1]))
    return None


def get_remote_addr(transport: Transport) -> Address | None:
    socket_info = transport.get_extra_info("socket")
    if socket_info is not None:
        try:
            info = socket_info.getpeername()
        except OSError:
            # peer already gone
            return None
        return (str(info[0]), int(info[1])) if isinstance(info, tuple) else None

    info = transport.get_extra_info("peername")
    if info is not None and isinstance(info, (list, tuple)) and len(info) >= 2:
        return (str(info[0]), int(info[1]))
    return None


def format_addr(addr: Address | None) -> str:
    if addr is None:
        return "-"
    host, port = addr
    if ":" in host:
        return "[%s]:%d" % (host, port)
    return "%s:%d" % (host, port)
