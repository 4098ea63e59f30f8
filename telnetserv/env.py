"""
Configuration: the project .env file, environment overrides and defaults.
"""
import copy
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

DEFAULT_CONFIG: Dict[str, Any] = {
    "server": {"port": 27015, "prompt": "", "tick_seconds": 0.016},
    "session": {"recv_size": 512, "history_size": 50, "max_outbox": 65536},
    "log_level": "INFO",
}

# env var -> (section, key, type)
ENV_OVERRIDES = {
    "TELNETSERV_PORT": ("server", "port", int),
    "TELNETSERV_PROMPT": ("server", "prompt", str),
    "TELNETSERV_TICK": ("server", "tick_seconds", float),
    "TELNETSERV_LOG_LEVEL": (None, "log_level", str),
}


@lru_cache(maxsize=1)
def load_env() -> Path:
    """
    Load environment variables from the repository-level .env file once.
    Returns the path to the .env that was attempted.
    """
    root = Path(__file__).resolve().parents[1]
    dotenv_path = root / ".env"
    # variables already set in the environment win over the file
    load_dotenv(dotenv_path=dotenv_path, override=False)
    return dotenv_path


def load_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build a fresh config dict: defaults, then TELNETSERV_* environment
    variables, then ``overrides`` (merged one section deep).
    """
    load_env()
    config = copy.deepcopy(DEFAULT_CONFIG)

    for name, (section, key, cast) in ENV_OVERRIDES.items():
        raw = os.getenv(name)
        if raw is None:
            continue
        try:
            value = cast(raw)
        except ValueError as exc:
            raise ValueError(f"{name} must be {cast.__name__}, got {raw!r}") from exc
        target = config[section] if section else config
        target[key] = value

    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(config.get(key), dict):
            config[key] = {**config[key], **value}
        else:
            config[key] = value
    return config
