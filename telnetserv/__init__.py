# python
"""telnetserv package"""
__version__ = "0.1"

from telnetserv.env import load_env

# Load .env values at import time so TELNETSERV_* settings are visible to load_config().
load_env()

from telnetserv.server import EventSink, Server  # noqa: E402
from telnetserv.session import Session, SessionHandle, SessionState  # noqa: E402

__all__ = ["EventSink", "Server", "Session", "SessionHandle", "SessionState", "load_env"]
