import re
from urllib.parse import urlsplit, urlunsplit

SCHEMES = ("http://", "https://")

# Characters that can never appear in a hostname
_BAD_HOST_CHARS = re.compile(r"[\s<>\"'{}|\\^`%]")


def normalize_url(url: str) -> str:
    """
    Normalize a user supplied URL:
    - Strip surrounding whitespace
    - Prepend https:// unless the value already starts with http:// or https://
    """
    value = (url or "").strip()
    if not value.lower().startswith(SCHEMES):
        value = "https://" + value
    return value


def is_valid_url(url: str) -> bool:
    """Syntax check only; no network access."""
    if not url or any(ch.isspace() for ch in url):
        return False
    try:
        parsed = urlsplit(url)
        port = parsed.port
    except ValueError:
        return False
    if parsed.scheme.lower() not in ("http", "https"):
        return False
    host = parsed.hostname
    if not host or _BAD_HOST_CHARS.search(host):
        return False
    if host.startswith(".") or ".." in host:
        return False
    if port is not None and not 0 < port < 65536:
        return False
    return True


def site_origin(url: str) -> str:
    """Return ``scheme://host[:port]`` for a URL."""
    parsed = urlsplit(url)
    return urlunsplit((parsed.scheme, parsed.netloc.rpartition("@")[2], "", "", ""))


def default_favicon_url(url: str) -> str:
    return site_origin(url) + "/favicon.ico"
