# python
"""
telnetserv/session.py
One client connection: Telnet negotiation, input pipeline (NVT stripping,
history recall, backspace, CRLF lines) and line/prompt output.
"""
import logging
import weakref
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Optional

from telnetlib3.telopt import name_commands

from .ansi import (
    ANSI_ARROW_DOWN,
    ANSI_ARROW_LEFT,
    ANSI_ARROW_RIGHT,
    ANSI_ARROW_UP,
    ANSI_CURSOR_LINE_START,
    ANSI_ERASE_LINE,
    CRLF,
    LF,
    NEGOTIATION,
    NUL,
    NVT_IAC,
)
from .lineproto import (
    HISTORY_SIZE,
    History,
    extract_lines,
    process_backspace,
    strip_escape_sequences,
    strip_nvt,
)
from .transport import Address, Connection

if TYPE_CHECKING:
    from .server import Server

logger = logging.getLogger(__name__)

DEFAULT_RECV_SIZE = 512
DEFAULT_MAX_OUTBOX = 65536


class SessionState(Enum):
    NEGOTIATING = auto()
    ACTIVE = auto()
    CLOSING = auto()
    CLOSED = auto()


@dataclass(frozen=True)
class SessionHandle:
    """
    Opaque reference to a session, handed to event callbacks.

    Every call goes through the server's registry, so a handle outliving its
    session (or its server) is harmless: operations become no-ops.
    """

    session_id: int
    _server: "weakref.ReferenceType[Server]" = field(repr=False, compare=False)

    def _resolve(self) -> Optional["Session"]:
        server = self._server()
        if server is None:
            return None
        return server.session(self.session_id)

    @property
    def alive(self) -> bool:
        session = self._resolve()
        return session is not None and not session.closed

    @property
    def peer(self) -> Optional[Address]:
        session = self._resolve()
        return session.peer if session is not None else None

    def send_line(self, text: str) -> bool:
        session = self._resolve()
        if session is None:
            return False
        return session.send_line(text)

    def erase_line(self) -> None:
        session = self._resolve()
        if session is not None:
            session.erase_line()

    def close(self) -> None:
        session = self._resolve()
        if session is not None:
            session.close_client()


@dataclass
class Session:
    session_id: int
    connection: Connection
    _server: "weakref.ReferenceType[Server]" = field(repr=False)
    recv_size: int = DEFAULT_RECV_SIZE
    history_size: int = HISTORY_SIZE
    max_outbox: int = DEFAULT_MAX_OUTBOX
    state: SessionState = SessionState.NEGOTIATING
    buffer: bytearray = field(default_factory=bytearray, repr=False)
    history: History = field(init=False, repr=False)
    _outbox: bytearray = field(default_factory=bytearray, repr=False)

    def __post_init__(self):
        self.history = History(self.history_size)

    # -- server-provided settings -------------------------------------------

    @property
    def server(self) -> Optional["Server"]:
        return self._server()

    @property
    def prompt(self) -> str:
        server = self._server()
        return server.prompt if server is not None else ""

    @property
    def interactive_prompt(self) -> bool:
        server = self._server()
        return server is not None and server.interactive_prompt

    @property
    def handle(self) -> SessionHandle:
        return SessionHandle(self.session_id, self._server)

    @property
    def peer(self) -> Address:
        return self.connection.peer

    @property
    def closed(self) -> bool:
        return self.state in (SessionState.CLOSING, SessionState.CLOSED)

    # -- lifecycle ------------------------------------------------------------

    def negotiate(self) -> None:
        """
        Go non-blocking, announce WILL ECHO / DONT ECHO / WILL SGA and fire the
        connected callback once.
        """
        logger.info("Client %s:%s connected (session %s)", self.peer[0], self.peer[1], self.session_id)
        try:
            self.connection.set_nonblocking()
        except OSError as exc:
            self._fail("set non-blocking", exc)
            return
        for command in NEGOTIATION:
            logger.debug("session %s -> %s", self.session_id, name_commands(command))
            self._send(command)
        if self.closed:
            return
        self.state = SessionState.ACTIVE
        server = self._server()
        if server is not None and server.connected_callback is not None:
            server.connected_callback(self.handle)

    def update(self) -> None:
        """
        One tick: flush pending output, then do at most one non-blocking read
        and run it through the input pipeline.
        """
        if self.state is not SessionState.ACTIVE:
            return
        self._flush()
        if self.closed:
            return
        try:
            data = self.connection.recv(self.recv_size)
        except OSError as exc:
            self._fail("receive", exc)
            return
        if data is None:
            return
        if not data:
            logger.info("Client %s:%s disconnected (session %s)", self.peer[0], self.peer[1], self.session_id)
            self._close_connection()
            return
        self._ingest(data)

    def close_client(self) -> None:
        """
        Shut down the send direction and close the socket. Errors are logged,
        never raised.
        """
        if self.closed:
            return
        self.state = SessionState.CLOSING
        # last chance for queued output; whatever still blocks is dropped
        self._flush()
        if self.state is SessionState.CLOSED:
            return
        try:
            self.connection.shutdown_send()
        except OSError as exc:
            logger.warning("shutdown failed for session %s: %s", self.session_id, exc)
        self._close_connection()
        logger.info("Session %s closed", self.session_id)

    # -- output ---------------------------------------------------------------

    def send_line(self, text: str) -> bool:
        """
        Print a full line above whatever the user is typing, then restore the
        prompt and their partial input.
        """
        if self.closed:
            return False
        interactive = self.interactive_prompt
        if interactive or self.buffer:
            self.erase_line()
        self._send(text.encode("utf-8") + CRLF)
        if interactive:
            self.send_prompt_and_buffer()
        return not self.closed

    def erase_line(self) -> None:
        self._send(ANSI_ERASE_LINE + ANSI_CURSOR_LINE_START)

    def send_prompt_and_buffer(self) -> None:
        self._send(self.prompt.encode("utf-8") + bytes(self.buffer))

    # -- input pipeline -------------------------------------------------------

    def _ingest(self, data: bytes) -> None:
        # NVT replies must not be echoed
        if data[0] != NVT_IAC[0]:
            self._send(data)

        # some clients send NUL where they mean a newline
        self.buffer.extend(data.replace(NUL, LF))
        strip_nvt(self.buffer)

        interactive = self.interactive_prompt
        redraw = False
        if interactive:
            redraw = self._process_history()
            strip_escape_sequences(self.buffer)
            if process_backspace(self.buffer):
                redraw = True

        server = self._server()
        for raw in extract_lines(self.buffer):
            if self.closed:
                break
            line = raw.decode("utf-8", "replace")
            logger.debug("session %s line: %r", self.session_id, line)
            if server is not None and server.line_callback is not None:
                server.line_callback(self.handle, line)
            self.history.add(line)

        if interactive and redraw and not self.closed:
            self.erase_line()
            self.send_prompt_and_buffer()

    def _process_history(self) -> bool:
        """
        Handle arrow keys. Returns True if the prompt line has to be redrawn.
        """
        if ANSI_ARROW_UP in self.buffer and len(self.history):
            self.buffer[:] = self.history.recall_older().encode("utf-8")
            # undo the cursor movement the client's echo just caused
            self._send(ANSI_ARROW_DOWN)
            return True
        if ANSI_ARROW_DOWN in self.buffer and len(self.history):
            entry = self.history.recall_newer()
            if entry is not None:
                self.buffer[:] = entry.encode("utf-8")
            self._send(ANSI_ARROW_UP)
            return True
        if ANSI_ARROW_LEFT in self.buffer or ANSI_ARROW_RIGHT in self.buffer:
            return True
        return False

    # -- socket plumbing ------------------------------------------------------

    def _send(self, data: bytes) -> None:
        if self.state is SessionState.CLOSED or not data:
            return
        self._outbox.extend(data)
        self._flush()
        if len(self._outbox) > self.max_outbox:
            logger.warning(
                "session %s has %d unsent bytes (limit %d); closing session",
                self.session_id,
                len(self._outbox),
                self.max_outbox,
            )
            self._close_connection()

    def _flush(self) -> None:
        while self._outbox:
            try:
                sent = self.connection.send(bytes(self._outbox))
            except OSError as exc:
                self._fail("send", exc)
                return
            if not sent:
                # would block; try again next tick
                break
            del self._outbox[:sent]

    def _fail(self, action: str, exc: OSError) -> None:
        logger.warning("%s failed for session %s: %s; closing session", action, self.session_id, exc)
        self._close_connection()

    def _close_connection(self) -> None:
        self.state = SessionState.CLOSED
        self._outbox.clear()
        try:
            self.connection.close()
        except OSError as exc:
            logger.warning("close failed for session %s: %s", self.session_id, exc)
