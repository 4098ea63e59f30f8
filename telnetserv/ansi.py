# python
"""
telnetserv/ansi.py
ANSI/VT100 escape sequences and the Telnet NVT commands the server sends.
Everything here is immutable and built once at import time.
"""
from types import MappingProxyType

from telnetlib3.telopt import DONT, ECHO, EL, IAC, SGA, WILL

ESC = b"\x1b"
CSI = ESC + b"["

ANSI_FG_BLACK = CSI + b"30m"
ANSI_FG_RED = CSI + b"31m"
ANSI_FG_GREEN = CSI + b"32m"
ANSI_FG_YELLOW = CSI + b"33m"
ANSI_FG_BLUE = CSI + b"34m"
ANSI_FG_MAGENTA = CSI + b"35m"
ANSI_FG_CYAN = CSI + b"36m"
ANSI_FG_WHITE = CSI + b"37m"
ANSI_FG_DEFAULT = CSI + b"39m"

ANSI_BG_BLACK = CSI + b"40m"
ANSI_BG_RED = CSI + b"41m"
ANSI_BG_GREEN = CSI + b"42m"
ANSI_BG_YELLOW = CSI + b"43m"
ANSI_BG_BLUE = CSI + b"44m"
ANSI_BG_MAGENTA = CSI + b"45m"
ANSI_BG_CYAN = CSI + b"46m"
ANSI_BG_WHITE = CSI + b"47m"
ANSI_BG_DEFAULT = CSI + b"49m"

ANSI_BOLD_ON = CSI + b"1m"
ANSI_BOLD_OFF = CSI + b"22m"
ANSI_ITALICS_ON = CSI + b"3m"
ANSI_ITALICS_OFF = CSI + b"23m"
ANSI_UNDERLINE_ON = CSI + b"4m"
ANSI_UNDERLINE_OFF = CSI + b"24m"
ANSI_INVERSE_ON = CSI + b"7m"
ANSI_INVERSE_OFF = CSI + b"27m"
ANSI_STRIKETHROUGH_ON = CSI + b"9m"
ANSI_STRIKETHROUGH_OFF = CSI + b"29m"

ANSI_ERASE_LINE = CSI + b"2K"
ANSI_ERASE_SCREEN = CSI + b"2J"
# 80 columns left, i.e. back to the start of a standard terminal line
ANSI_CURSOR_LINE_START = CSI + b"80D"

ANSI_ARROW_UP = CSI + b"A"
ANSI_ARROW_DOWN = CSI + b"B"
ANSI_ARROW_RIGHT = CSI + b"C"
ANSI_ARROW_LEFT = CSI + b"D"

CURSOR_SEQUENCES = (ANSI_ARROW_UP, ANSI_ARROW_DOWN, ANSI_ARROW_RIGHT, ANSI_ARROW_LEFT)

ANSI_CODES = MappingProxyType(
    {
        "fg_black": ANSI_FG_BLACK,
        "fg_red": ANSI_FG_RED,
        "fg_green": ANSI_FG_GREEN,
        "fg_yellow": ANSI_FG_YELLOW,
        "fg_blue": ANSI_FG_BLUE,
        "fg_magenta": ANSI_FG_MAGENTA,
        "fg_cyan": ANSI_FG_CYAN,
        "fg_white": ANSI_FG_WHITE,
        "fg_default": ANSI_FG_DEFAULT,
        "bg_black": ANSI_BG_BLACK,
        "bg_red": ANSI_BG_RED,
        "bg_green": ANSI_BG_GREEN,
        "bg_yellow": ANSI_BG_YELLOW,
        "bg_blue": ANSI_BG_BLUE,
        "bg_magenta": ANSI_BG_MAGENTA,
        "bg_cyan": ANSI_BG_CYAN,
        "bg_white": ANSI_BG_WHITE,
        "bg_default": ANSI_BG_DEFAULT,
        "bold_on": ANSI_BOLD_ON,
        "bold_off": ANSI_BOLD_OFF,
        "italics_on": ANSI_ITALICS_ON,
        "italics_off": ANSI_ITALICS_OFF,
        "underline_on": ANSI_UNDERLINE_ON,
        "underline_off": ANSI_UNDERLINE_OFF,
        "inverse_on": ANSI_INVERSE_ON,
        "inverse_off": ANSI_INVERSE_OFF,
        "strikethrough_on": ANSI_STRIKETHROUGH_ON,
        "strikethrough_off": ANSI_STRIKETHROUGH_OFF,
        "erase_line": ANSI_ERASE_LINE,
        "erase_screen": ANSI_ERASE_SCREEN,
        "arrow_up": ANSI_ARROW_UP,
        "arrow_down": ANSI_ARROW_DOWN,
        "arrow_right": ANSI_ARROW_RIGHT,
        "arrow_left": ANSI_ARROW_LEFT,
    }
)

# Telnet NVT
NVT_IAC = IAC
NVT_COMMAND_LENGTH = 3

WILL_ECHO = IAC + WILL + ECHO
DONT_ECHO = IAC + DONT + ECHO
WILL_SGA = IAC + WILL + SGA

# sent in this order to every new connection
NEGOTIATION = (WILL_ECHO, DONT_ECHO, WILL_SGA)

TELNET_ERASE_LINE = IAC + EL

CRLF = b"\r\n"
NUL = b"\x00"
LF = b"\n"
DEL = 0x7F
BS = 0x08


def colorize(text: str, code: str) -> str:
    """
    Wrap ``text`` in the named ANSI code and the matching reset.
    """
    seq = ANSI_CODES[code]
    if code.startswith("fg_"):
        reset = ANSI_FG_DEFAULT
    elif code.startswith("bg_"):
        reset = ANSI_BG_DEFAULT
    elif code.endswith("_on"):
        reset = ANSI_CODES[code[:-3] + "_off"]
    else:
        reset = b""
    return seq.decode("ascii") + text + reset.decode("ascii")
