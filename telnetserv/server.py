# python
"""
telnetserv/server.py
Tick-driven Telnet server: polls the listening socket without blocking, admits
at most one client per tick and updates every live session in order.

Host loop:
    server = Server()
    server.line_callback = lambda session, line: session.send_line("Copy that.")
    server.initialise(27015, prompt="> ")
    while running:
        server.update()
        time.sleep(0.016)
    server.shutdown()
"""
import itertools
import logging
import weakref
from typing import Any, Callable, Dict, List, Optional, Protocol

from .env import DEFAULT_CONFIG
from .session import Session, SessionHandle, SessionState
from .transport import Listener, SocketListener

logger = logging.getLogger(__name__)

ConnectedCallback = Callable[[SessionHandle], None]
LineCallback = Callable[[SessionHandle, str], None]
ListenerFactory = Callable[[int], Listener]


class EventSink(Protocol):
    def on_connected(self, session: SessionHandle) -> None:
        ...

    def on_line(self, session: SessionHandle, line: str) -> None:
        ...


class Server:
    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        listener_factory: ListenerFactory = SocketListener.open,
    ):
        session_cfg = {**DEFAULT_CONFIG["session"], **((config or {}).get("session") or {})}
        self.recv_size = int(session_cfg["recv_size"])
        self.history_size = int(session_cfg["history_size"])
        self.max_outbox = int(session_cfg["max_outbox"])
        self._listener_factory = listener_factory
        self._listener: Optional[Listener] = None
        self._initialised = False
        self._prompt = ""
        # insertion ordered: registration order is update order
        self._sessions: Dict[int, Session] = {}
        self._ids = itertools.count(1)

        # Called once a new session has finished negotiating. function(session)
        self.connected_callback: Optional[ConnectedCallback] = None
        # Called for every completed CRLF line. function(session, line)
        self.line_callback: Optional[LineCallback] = None

    # -- accessors ------------------------------------------------------------

    @property
    def initialised(self) -> bool:
        return self._initialised

    @property
    def prompt(self) -> str:
        return self._prompt

    @property
    def interactive_prompt(self) -> bool:
        return len(self._prompt) > 0

    @property
    def port(self) -> Optional[int]:
        return self._listener.port if self._listener is not None else None

    def set_event_sink(self, sink: EventSink) -> None:
        self.connected_callback = sink.on_connected
        self.line_callback = sink.on_line

    def sessions(self) -> List[SessionHandle]:
        return [s.handle for s in self._sessions.values() if not s.closed]

    def session(self, session_id: int) -> Optional[Session]:
        return self._sessions.get(session_id)

    # -- lifecycle ------------------------------------------------------------

    def initialise(self, port: int, prompt: str = "") -> bool:
        """
        Start listening on ``port`` (all interfaces). Returns False if this
        server is already running or the socket could not be set up.
        """
        if self._initialised:
            logger.warning(
                "This Telnet server has already been initialised; shut it down before reinitialising it"
            )
            return False

        logger.info("Starting Telnet server on port %s", port)
        try:
            listener = self._listener_factory(port)
        except OSError as exc:
            logger.warning("Could not listen on port %s: %s", port, exc)
            return False

        self._listener = listener
        self._prompt = prompt or ""
        self._initialised = True
        return True

    def update(self) -> None:
        """
        One tick. Never blocks.
        """
        if not self._initialised:
            return
        self._prune()

        try:
            pending = self._listener.poll()
        except OSError as exc:
            logger.warning("Polling the listening socket failed: %s", exc)
            pending = False
        if pending:
            self._accept_connection()

        for session in list(self._sessions.values()):
            session.update()

    def shutdown(self) -> None:
        """
        Close every session and the listening socket; the server can be
        initialised again afterwards.
        """
        for session in list(self._sessions.values()):
            session.close_client()
        self._sessions.clear()

        if self._listener is not None:
            try:
                self._listener.close()
            except OSError as exc:
                logger.warning("Closing the listening socket failed: %s", exc)
            self._listener = None
        if self._initialised:
            logger.info("Telnet server shut down")
        self._initialised = False
        self._prompt = ""

    # -- internals ------------------------------------------------------------

    def _accept_connection(self) -> None:
        try:
            connection = self._listener.accept()
        except OSError as exc:
            logger.warning("accept failed: %s", exc)
            return
        if connection is None:
            return

        session = Session(
            session_id=next(self._ids),
            connection=connection,
            _server=weakref.ref(self),
            recv_size=self.recv_size,
            history_size=self.history_size,
            max_outbox=self.max_outbox,
        )
        self._sessions[session.session_id] = session
        session.negotiate()

    def _prune(self) -> None:
        closed = [sid for sid, s in self._sessions.items() if s.state is SessionState.CLOSED]
        for sid in closed:
            logger.debug("Removing closed session %s", sid)
            del self._sessions[sid]
