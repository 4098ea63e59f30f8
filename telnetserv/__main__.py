# python
"""
telnetserv.__main__
Example host application for python -m telnetserv: greets every client and
answers each line with "Copy that.", ticking the server in a plain loop.
"""
import argparse
import logging
import time

from .env import load_config
from .server import Server
from .session import SessionHandle

logger = logging.getLogger("telnetserv")


class ExampleApp:
    def on_connected(self, session: SessionHandle) -> None:
        logger.info("on_connected got called for session %s", session.session_id)
        session.send_line("Welcome to the Telnet Server.")

    def on_line(self, session: SessionHandle, line: str) -> None:
        logger.info("on_line got called with line: %s", line)
        session.send_line("Copy that.")


def main(argv=None):
    config = load_config()
    parser = argparse.ArgumentParser(prog="telnetserv")
    parser.add_argument("--port", type=int, default=config["server"]["port"])
    parser.add_argument("--prompt", default=config["server"]["prompt"])
    parser.add_argument("--tick", type=float, default=config["server"]["tick_seconds"])
    parser.add_argument("--log-level", default=config["log_level"])
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    server = Server(config)
    server.set_event_sink(ExampleApp())
    if not server.initialise(args.port, args.prompt):
        return 1
    print(f"Listening on 0.0.0.0:{server.port}", flush=True)
    try:
        while True:
            server.update()
            time.sleep(args.tick)
    except KeyboardInterrupt:
        print("shutting down")
    finally:
        server.shutdown()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
