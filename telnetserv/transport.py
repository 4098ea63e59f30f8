# python
"""
telnetserv/transport.py
Minimal non-blocking TCP interface used by the server and its sessions, plus the
socket-backed implementation. Sessions only ever see a ``Connection`` and the
server only ever sees a ``Listener``, so tests can swap in in-memory fakes.
"""
import logging
import selectors
import socket
from typing import Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

Address = Tuple[str, int]


class Connection(Protocol):
    peer: Address

    def set_nonblocking(self) -> None:
        ...

    def recv(self, size: int) -> Optional[bytes]:
        """Return received bytes, b"" on orderly close, None if nothing is ready."""
        ...

    def send(self, data: bytes) -> int:
        """Return how many bytes were taken; 0 if the send would block."""
        ...

    def shutdown_send(self) -> None:
        ...

    def close(self) -> None:
        ...


class Listener(Protocol):
    port: int

    def poll(self) -> bool:
        """Zero-timeout readiness check; True if a connection is pending."""
        ...

    def accept(self) -> Optional[Connection]:
        ...

    def close(self) -> None:
        ...


class SocketConnection:
    def __init__(self, sock: socket.socket, peer: Address):
        self._sock = sock
        self.peer = (peer[0], peer[1])

    def fileno(self) -> int:
        return self._sock.fileno()

    def set_nonblocking(self) -> None:
        self._sock.setblocking(False)

    def recv(self, size: int) -> Optional[bytes]:
        try:
            return self._sock.recv(size)
        except BlockingIOError:
            return None

    def send(self, data: bytes) -> int:
        try:
            return self._sock.send(data)
        except BlockingIOError:
            return 0

    def shutdown_send(self) -> None:
        self._sock.shutdown(socket.SHUT_WR)

    def close(self) -> None:
        self._sock.close()


class SocketListener:
    """
    Listening TCP socket on the wildcard address.
    """

    def __init__(self, sock: socket.socket):
        self._sock = sock
        self.port = sock.getsockname()[1]
        # selectors has no FD_SETSIZE ceiling where epoll/kqueue exist
        self._selector = selectors.DefaultSelector()
        self._selector.register(sock, selectors.EVENT_READ)

    @classmethod
    def open(cls, port: int, host: str = "", backlog: int = socket.SOMAXCONN) -> "SocketListener":
        """
        Create, bind and listen. Raises OSError on failure; the half-built socket
        is closed first.
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(backlog)
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise
        return cls(sock)

    def fileno(self) -> int:
        return self._sock.fileno()

    def poll(self) -> bool:
        return bool(self._selector.select(timeout=0))

    def accept(self) -> Optional[SocketConnection]:
        try:
            sock, addr = self._sock.accept()
        except BlockingIOError:
            # peer went away between poll and accept
            logger.debug("accept would block, no connection pending")
            return None
        return SocketConnection(sock, addr)

    def close(self) -> None:
        self._selector.close()
        self._sock.close()
