# config.py - Runtime settings for the linknav backend

import os
import re
from typing import Callable, FrozenSet, List, Tuple
from urllib.parse import urlsplit

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/121.0 Safari/537.36"
)

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_list(name: str, default: str = "") -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def parse_check_time(value: str) -> Tuple[int, int]:
    """Parse ``HH:MM`` into an (hour, minute) pair."""
    match = _TIME_RE.match(value.strip())
    if not match:
        raise ValueError(f"Expected HH:MM, got {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Expected HH:MM, got {value!r}")
    return hour, minute


def never_get(url: str) -> bool:
    """Default GET-only predicate: every host accepts HEAD."""
    return False


def host_matcher(hosts) -> Callable[[str], bool]:
    """
    Build a predicate telling whether a URL belongs to one of ``hosts``.

    A host also covers its subdomains, so ``example.com`` matches
    ``www.example.com``.
    """
    wanted: FrozenSet[str] = frozenset(h.lower().strip(".") for h in hosts if h)

    def requires_get(url: str) -> bool:
        if not wanted:
            return False
        try:
            hostname = (urlsplit(url).hostname or "").lower()
        except ValueError:
            return False
        return any(hostname == h or hostname.endswith("." + h) for h in wanted)

    return requires_get


class Settings:
    """
    Settings read from the environment (and .env)
    """

    def __init__(self):
        # Storage
        self.STATE_FILE = os.getenv("LINKNAV_STATE_FILE", "linknav_state.json")

        # Server
        self.HOST = os.getenv("LINKNAV_HOST", "127.0.0.1")
        self.PORT = _env_int("LINKNAV_PORT", 8765)
        self.LOG_LEVEL = os.getenv("LINKNAV_LOG_LEVEL", "INFO").upper()
        self.CORS_ORIGINS = _env_list("LINKNAV_CORS_ORIGINS", "*")

        # Outbound HTTP
        self.HTTP_TIMEOUT = _env_float("LINKNAV_HTTP_TIMEOUT", 5.0)
        self.USER_AGENT = os.getenv("LINKNAV_USER_AGENT", DEFAULT_USER_AGENT)
        self.GET_ONLY_HOSTS = _env_list("LINKNAV_GET_ONLY_HOSTS")

        # Link checking
        self.CHECK_BATCH_SIZE = _env_int("LINKNAV_CHECK_BATCH_SIZE", 5)
        self.CHECK_BATCH_PAUSE = _env_float("LINKNAV_CHECK_BATCH_PAUSE", 1.0)
        self.CHECK_TIME = os.getenv("LINKNAV_CHECK_TIME", "02:00")
        self.CHECK_SCHEDULE = os.getenv("LINKNAV_CHECK_SCHEDULE", "true").lower() not in {"false", "0", "no"}

        self.RECENT_LIMIT = _env_int("LINKNAV_RECENT_LIMIT", 10)

        self._validate_config()

    def _validate_config(self):
        """Reject values the rest of the app cannot work with"""
        if self.CHECK_BATCH_SIZE < 1:
            raise ValueError("LINKNAV_CHECK_BATCH_SIZE must be at least 1")
        if self.CHECK_BATCH_PAUSE < 0:
            raise ValueError("LINKNAV_CHECK_BATCH_PAUSE must not be negative")
        if self.HTTP_TIMEOUT <= 0:
            raise ValueError("LINKNAV_HTTP_TIMEOUT must be positive")
        if self.RECENT_LIMIT < 1:
            raise ValueError("LINKNAV_RECENT_LIMIT must be at least 1")
        self.check_hour, self.check_minute = parse_check_time(self.CHECK_TIME)

    @property
    def requires_get(self) -> Callable[[str], bool]:
        return host_matcher(self.GET_ONLY_HOSTS)

    def __str__(self):
        return (
            f"Settings(state_file={self.STATE_FILE or '<memory>'}, "
            f"check_time={self.CHECK_TIME}, batch={self.CHECK_BATCH_SIZE}, "
            f"get_only_hosts={self.GET_ONLY_HOSTS})"
        )
