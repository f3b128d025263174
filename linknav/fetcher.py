"""
fetcher.py - Thin requests wrapper used for page fetches and reachability probes.

Every failure is raised as a FetchError subclass so callers can tell a
timeout from a refused connection from a non-2xx answer, or simply catch
FetchError to treat all of them as "unreachable".
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import requests

from .config import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)


class FetchError(Exception):
    def __init__(self, url: str, message: str = ""):
        super().__init__(message or url)
        self.url = url


class FetchTimeout(FetchError):
    pass


class FetchConnectionError(FetchError):
    pass


class FetchStatusError(FetchError):
    def __init__(self, url: str, status: int):
        super().__init__(url, f"{url} answered HTTP {status}")
        self.status = status


@dataclass
class FetchResult:
    status: int
    text: str
    url: str


class HttpFetcher:
    def __init__(
        self,
        timeout: float = 5.0,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "User-Agent": user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            }
        )

    def _request(self, method: str, url: str, timeout: Optional[float], headers: Optional[Dict[str, str]]):
        try:
            resp = self.session.request(
                method,
                url,
                headers=headers,
                timeout=timeout or self.timeout,
                allow_redirects=True,
            )
        except requests.Timeout as exc:
            raise FetchTimeout(url, str(exc)) from exc
        except requests.RequestException as exc:
            raise FetchConnectionError(url, str(exc)) from exc
        except ValueError as exc:
            # urllib3 rejects some hostnames (e.g. over-long labels) with a plain ValueError
            raise FetchConnectionError(url, str(exc)) from exc
        if not 200 <= resp.status_code < 300:
            resp.close()
            raise FetchStatusError(url, resp.status_code)
        return resp

    def get(self, url: str, timeout: Optional[float] = None, headers: Optional[Dict[str, str]] = None) -> FetchResult:
        resp = self._request("GET", url, timeout, headers)
        return FetchResult(status=resp.status_code, text=resp.text, url=resp.url)

    def head(self, url: str, timeout: Optional[float] = None) -> int:
        resp = self._request("HEAD", url, timeout, None)
        return resp.status_code

    def probe(self, url: str, use_get: bool = False) -> int:
        """Existence check. HEAD unless the host is known to reject it."""
        if use_get:
            return self.get(url).status
        return self.head(url)
