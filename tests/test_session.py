# python
"""
tests/test_session.py
Drive single sessions through the server with in-memory connections and check
negotiation, echo, line delivery, history recall and output formatting.
"""
from telnetserv.ansi import (
    ANSI_ARROW_DOWN,
    ANSI_ARROW_UP,
    ANSI_CURSOR_LINE_START,
    ANSI_ERASE_LINE,
    NEGOTIATION,
)
from telnetserv.server import Server
from telnetserv.session import SessionState

from fakes import FakeConnection, FakeListener, Recorder

ERASE = ANSI_ERASE_LINE + ANSI_CURSOR_LINE_START


def _make_server(prompt: str = "", config=None):
    listener = FakeListener()
    server = Server(config, listener_factory=lambda port: listener)
    recorder = Recorder()
    server.set_event_sink(recorder)
    assert server.initialise(2323, prompt)
    return server, listener, recorder


def _connect(server: Server, listener: FakeListener) -> FakeConnection:
    conn = FakeConnection()
    listener.pending.append(conn)
    server.update()
    conn.take_sent()
    return conn


def _send(server: Server, conn: FakeConnection, data: bytes) -> bytes:
    conn.feed(data)
    server.update()
    return conn.take_sent()


def test_negotiation_then_connected_callback() -> None:
    server, listener, recorder = _make_server()
    conn = FakeConnection()
    listener.pending.append(conn)
    server.update()

    assert conn.nonblocking
    assert bytes(conn.sent) == b"\xff\xfb\x01\xff\xfe\x01\xff\xfb\x03"
    assert bytes(conn.sent) == b"".join(NEGOTIATION)
    assert len(recorder.connected) == 1
    handle = recorder.connected[0]
    assert handle.session_id == 1
    assert server.session(1).state is SessionState.ACTIVE


def test_line_is_echoed_and_delivered() -> None:
    server, listener, recorder = _make_server()
    conn = _connect(server, listener)

    assert _send(server, conn, b"hello\r\n") == b"hello\r\n"
    assert recorder.lines == [(1, "hello")]
    assert server.session(1).history.entries() == ["hello"]


def test_nvt_batch_is_not_echoed() -> None:
    server, listener, recorder = _make_server()
    conn = _connect(server, listener)

    assert _send(server, conn, b"\xff\xfd\x01\xff\xfd\x03") == b""
    assert server.session(1).buffer == b""
    assert recorder.lines == []


def test_nul_counts_as_line_feed() -> None:
    server, listener, recorder = _make_server()
    conn = _connect(server, listener)

    _send(server, conn, b"look\r\x00")
    assert recorder.lines == [(1, "look")]


def test_lines_arrive_in_order_and_partial_input_waits() -> None:
    server, listener, recorder = _make_server()
    conn = _connect(server, listener)

    _send(server, conn, b"one\r\ntwo\r\nthr")
    assert recorder.lines == [(1, "one"), (1, "two")]
    assert server.session(1).buffer == b"thr"

    _send(server, conn, b"ee\r\n")
    assert recorder.lines[-1] == (1, "three")


def test_nvt_sequence_split_across_reads() -> None:
    server, listener, recorder = _make_server()
    conn = _connect(server, listener)

    _send(server, conn, b"ab\xff\xfb")
    _send(server, conn, b"\x01cd\r\n")
    assert recorder.lines == [(1, "abcd")]


def test_invalid_utf8_is_replaced() -> None:
    server, listener, recorder = _make_server()
    conn = _connect(server, listener)

    _send(server, conn, b"caf\xe9\r\n")
    assert recorder.lines == [(1, "caf\ufffd")]


def test_backspace_ignored_without_prompt() -> None:
    server, listener, recorder = _make_server()
    conn = _connect(server, listener)

    _send(server, conn, b"ab\x08c\r\n")
    assert recorder.lines == [(1, "ab\x08c")]


def test_backspace_with_prompt_redraws_line() -> None:
    server, listener, recorder = _make_server(prompt="> ")
    conn = _connect(server, listener)

    sent = _send(server, conn, b"helx\x7f")
    assert server.session(1).buffer == b"hel"
    assert sent == b"helx\x7f" + ERASE + b"> hel"

    _send(server, conn, b"lo\r\n")
    assert recorder.lines == [(1, "hello")]


def test_arrow_up_recalls_history() -> None:
    server, listener, recorder = _make_server(prompt="> ")
    conn = _connect(server, listener)
    _send(server, conn, b"ls\r\n")
    _send(server, conn, b"pwd\r\n")

    sent = _send(server, conn, ANSI_ARROW_UP)
    assert sent == ANSI_ARROW_UP + ANSI_ARROW_DOWN + ERASE + b"> pwd"
    assert server.session(1).buffer == b"pwd"

    _send(server, conn, ANSI_ARROW_UP)
    assert server.session(1).buffer == b"ls"
    _send(server, conn, ANSI_ARROW_UP)
    assert server.session(1).buffer == b"ls"

    sent = _send(server, conn, ANSI_ARROW_DOWN)
    assert sent == ANSI_ARROW_DOWN + ANSI_ARROW_UP + ERASE + b"> pwd"
    _send(server, conn, ANSI_ARROW_DOWN)
    assert server.session(1).buffer == b"pwd"

    _send(server, conn, b"\r\n")
    assert recorder.lines[-1] == (1, "pwd")
    session = server.session(1)
    assert session.history.entries() == ["ls", "pwd"]
    assert session.history.at_live_edit


def test_arrow_down_at_live_edit_keeps_typed_text() -> None:
    server, listener, recorder = _make_server(prompt="> ")
    conn = _connect(server, listener)
    _send(server, conn, b"ls\r\n")
    _send(server, conn, b"ab")

    sent = _send(server, conn, ANSI_ARROW_DOWN)
    assert server.session(1).buffer == b"ab"
    assert sent == ANSI_ARROW_DOWN + ANSI_ARROW_UP + ERASE + b"> ab"


def test_arrow_up_with_empty_history_is_stripped() -> None:
    server, listener, recorder = _make_server(prompt="> ")
    conn = _connect(server, listener)

    sent = _send(server, conn, b"x" + ANSI_ARROW_UP)
    assert server.session(1).buffer == b"x"
    assert sent == b"x" + ANSI_ARROW_UP


def test_left_right_only_redraw() -> None:
    server, listener, recorder = _make_server(prompt="> ")
    conn = _connect(server, listener)
    _send(server, conn, b"abc")

    sent = _send(server, conn, b"\x1b[D")
    assert server.session(1).buffer == b"abc"
    assert sent.endswith(ERASE + b"> abc")


def test_send_line_plain() -> None:
    server, listener, recorder = _make_server()
    conn = _connect(server, listener)
    session = server.session(1)

    assert session.send_line("Copy that.") is True
    assert conn.take_sent() == b"Copy that.\r\n"

    _send(server, conn, b"typing")
    session.send_line("news")
    assert conn.take_sent() == ERASE + b"news\r\n"


def test_send_line_with_prompt_restores_input() -> None:
    server, listener, recorder = _make_server(prompt="$ ")
    conn = _connect(server, listener)
    _send(server, conn, b"par")

    server.session(1).send_line("Copy that.")
    assert conn.take_sent() == ERASE + b"Copy that.\r\n" + b"$ par"


def test_close_client_shuts_down_and_stops_output() -> None:
    server, listener, recorder = _make_server()
    conn = _connect(server, listener)
    session = server.session(1)

    session.close_client()
    assert conn.shutdown_called
    assert conn.closed
    assert session.state is SessionState.CLOSED
    assert session.send_line("late") is False
    assert conn.take_sent() == b""


def test_close_client_swallows_shutdown_error() -> None:
    server, listener, recorder = _make_server()
    conn = _connect(server, listener)
    conn.shutdown_error = OSError("not connected")

    server.session(1).close_client()
    assert conn.closed
    assert server.session(1).closed


def test_receive_error_closes_without_callbacks() -> None:
    server, listener, recorder = _make_server()
    conn = _connect(server, listener)
    conn.feed(ConnectionResetError("reset by peer"))
    conn.feed(b"never\r\n")

    server.update()
    assert conn.closed
    assert server.session(1).state is SessionState.CLOSED
    server.update()
    assert recorder.lines == []


def test_peer_hangup_closes_session() -> None:
    server, listener, recorder = _make_server()
    conn = _connect(server, listener)
    conn.feed(b"")

    server.update()
    assert conn.closed
    assert server.sessions() == []


def test_send_error_closes_session() -> None:
    server, listener, recorder = _make_server()
    conn = _connect(server, listener)
    conn.send_error = BrokenPipeError("broken pipe")

    assert server.session(1).send_line("hello") is False
    assert conn.closed


def test_blocked_output_is_flushed_next_tick() -> None:
    server, listener, recorder = _make_server()
    conn = _connect(server, listener)
    session = server.session(1)

    conn.blocked = True
    session.send_line("first")
    session.send_line("second")
    assert conn.take_sent() == b""

    conn.blocked = False
    server.update()
    assert conn.take_sent() == b"first\r\nsecond\r\n"


def test_callback_closing_session_stops_delivery() -> None:
    server, listener, recorder = _make_server()
    seen = []

    def on_line(session, line):
        seen.append(line)
        session.close()

    server.line_callback = on_line
    conn = _connect(server, listener)
    _send(server, conn, b"a\r\nb\r\n")
    assert seen == ["a"]
    assert conn.closed


def test_backspace_after_multibyte_character() -> None:
    server, listener, recorder = _make_server(prompt="> ")
    conn = _connect(server, listener)

    _send(server, conn, "café".encode("utf-8"))
    _send(server, conn, b"\x7f")
    _send(server, conn, b"e\r\n")
    assert recorder.lines == [(1, "cafe")]
    assert server.session(1).history.entries() == ["cafe"]


def test_close_flushes_queued_output() -> None:
    server, listener, recorder = _make_server()
    conn = _connect(server, listener)
    session = server.session(1)

    conn.blocked = True
    session.send_line("Bye")
    conn.blocked = False
    session.close_client()
    assert conn.take_sent() == b"Bye\r\n"
    assert conn.shutdown_called
    assert conn.closed


def test_close_with_send_error_still_closes() -> None:
    server, listener, recorder = _make_server()
    conn = _connect(server, listener)
    session = server.session(1)

    conn.blocked = True
    session.send_line("Bye")
    conn.blocked = False
    conn.send_error = BrokenPipeError("broken pipe")
    session.close_client()
    assert conn.closed
    assert session.state is SessionState.CLOSED


def test_escape_sequence_split_across_reads() -> None:
    server, listener, recorder = _make_server(prompt="> ")
    conn = _connect(server, listener)
    _send(server, conn, b"ls\r\n")

    _send(server, conn, b"\x1b[")
    assert server.session(1).buffer == b"\x1b["

    sent = _send(server, conn, b"A")
    assert server.session(1).buffer == b"ls"
    assert sent == b"A" + ANSI_ARROW_DOWN + ERASE + b"> ls"


def test_split_arrow_left_redraws_once_complete() -> None:
    server, listener, recorder = _make_server(prompt="> ")
    conn = _connect(server, listener)
    _send(server, conn, b"abc")

    assert _send(server, conn, b"\x1b") == b"\x1b"
    sent = _send(server, conn, b"[D")
    assert server.session(1).buffer == b"abc"
    assert sent == b"[D" + ERASE + b"> abc"


def test_unread_output_over_limit_closes_session() -> None:
    server, listener, recorder = _make_server(config={"session": {"max_outbox": 16}})
    conn = _connect(server, listener)
    session = server.session(1)

    conn.blocked = True
    assert session.send_line("short") is True
    assert session.send_line("this one tips it over") is False
    assert conn.closed
    assert session.state is SessionState.CLOSED
