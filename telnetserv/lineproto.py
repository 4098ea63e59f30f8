# python
"""
telnetserv/lineproto.py
Line protocol helpers: NVT/escape stripping, backspace handling, CRLF line
extraction and the bounded command history used for up/down recall.

The buffer helpers edit a ``bytearray`` in place, the way a session keeps its
partially received input.
"""
from collections import deque
from typing import Iterator, List, Optional

from .ansi import BS, CRLF, CURSOR_SEQUENCES, DEL, NVT_COMMAND_LENGTH, NVT_IAC

HISTORY_SIZE = 50


def strip_nvt(buffer: bytearray) -> int:
    """
    Remove every complete 3-byte ``IAC <command> <option>`` sequence.

    An IAC too close to the end of the buffer is left alone so the rest of the
    sequence can arrive with a later read. Returns the number of sequences removed.
    """
    removed = 0
    pos = buffer.find(NVT_IAC)
    while pos != -1:
        if pos + NVT_COMMAND_LENGTH > len(buffer):
            break
        del buffer[pos : pos + NVT_COMMAND_LENGTH]
        removed += 1
        pos = buffer.find(NVT_IAC, pos)
    return removed


def strip_escape_sequences(buffer: bytearray) -> int:
    """
    Remove the cursor movement sequences (arrow keys) from the buffer.
    """
    removed = 0
    for seq in CURSOR_SEQUENCES:
        pos = buffer.find(seq)
        while pos != -1:
            del buffer[pos : pos + len(seq)]
            removed += 1
            pos = buffer.find(seq, pos)
    return removed


def _find_backspace(buffer: bytearray) -> int:
    pos = buffer.find(DEL)
    if pos == -1:
        pos = buffer.find(BS)
    return pos


def process_backspace(buffer: bytearray) -> bool:
    """
    Apply DEL (0x7f) and BS (0x08): each one is removed together with the
    character before it (all of its bytes, if it is multi-byte UTF-8).
    Returns True if any backspace was found.
    """
    found = False
    pos = _find_backspace(buffer)
    while pos != -1:
        found = True
        if len(buffer) == 1:
            buffer.clear()
        elif pos == 0:
            # nothing to rub out in front of it
            del buffer[0]
        else:
            start = pos - 1
            # rub out a whole UTF-8 character, not just its last byte
            while start > 0 and 0x80 <= buffer[start] <= 0xBF:
                start -= 1
            del buffer[start : pos + 1]
        pos = _find_backspace(buffer)
    return found


def extract_lines(buffer: bytearray) -> List[bytes]:
    """
    Pop every CRLF-terminated line off the front of the buffer, in arrival order.
    A trailing partial line stays in the buffer.
    """
    lines: List[bytes] = []
    pos = buffer.find(CRLF)
    while pos != -1:
        lines.append(bytes(buffer[:pos]))
        del buffer[: pos + len(CRLF)]
        pos = buffer.find(CRLF)
    return lines


class History:
    """
    Bounded list of submitted lines with a recall cursor.

    The cursor ranges over ``0..len(history)``. Index ``len(history)`` is the
    live-edit slot: the line currently being typed, which has no stored entry.
    Recall never returns anything for that slot.
    """

    def __init__(self, capacity: int = HISTORY_SIZE):
        self._entries = deque(maxlen=capacity)
        self._cursor = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def at_live_edit(self) -> bool:
        return self._cursor == len(self._entries)

    def entries(self) -> List[str]:
        return list(self._entries)

    def add(self, line: str) -> bool:
        """
        Append a completed line unless it is empty or repeats the newest entry.
        The cursor goes back to the live-edit slot either way.
        """
        added = False
        if line and (not self._entries or self._entries[-1] != line):
            self._entries.append(line)
            added = True
        self.reset_cursor()
        return added

    def reset_cursor(self) -> None:
        self._cursor = len(self._entries)

    def recall_older(self) -> Optional[str]:
        """
        Step toward the oldest entry (clamped) and return it.
        """
        if not self._entries:
            return None
        if self._cursor > 0:
            self._cursor -= 1
        return self._entries[self._cursor]

    def recall_newer(self) -> Optional[str]:
        """
        Step toward the newest entry (clamped) and return it. Returns None when
        the cursor sits on the live-edit slot.
        """
        if not self._entries or self.at_live_edit:
            return None
        if self._cursor < len(self._entries) - 1:
            self._cursor += 1
        return self._entries[self._cursor]
