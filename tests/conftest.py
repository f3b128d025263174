"""Shared fixtures: in-memory store, scripted fetcher, API client."""

import sys
import threading
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from linknav.fetcher import FetchConnectionError, FetchResult, FetchStatusError  # noqa: E402
from linknav.storage import LinkStore  # noqa: E402


class FakeFetcher:
    """
    Answers from dictionaries instead of the network.

    ``pages`` maps URL -> HTML for GET, ``statuses`` maps URL -> status for
    HEAD/GET probes. Unknown URLs raise a connection error.
    """

    def __init__(self, pages=None, statuses=None):
        self.pages = dict(pages or {})
        self.statuses = dict(statuses or {})
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, method, url):
        with self._lock:
            self.calls.append((method, url))

    def _status(self, url):
        if url in self.statuses:
            status = self.statuses[url]
        elif url in self.pages:
            status = 200
        else:
            raise FetchConnectionError(url, "no route to host")
        if not 200 <= status < 300:
            raise FetchStatusError(url, status)
        return status

    def get(self, url, timeout=None, headers=None):
        self._record("GET", url)
        status = self._status(url)
        return FetchResult(status=status, text=self.pages.get(url, ""), url=url)

    def head(self, url, timeout=None):
        self._record("HEAD", url)
        return self._status(url)

    def probe(self, url, use_get=False):
        if use_get:
            return self.get(url).status
        return self.head(url)


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def store():
    return LinkStore()


@pytest.fixture
def settings(monkeypatch):
    monkeypatch.setenv("LINKNAV_STATE_FILE", "")
    monkeypatch.setenv("LINKNAV_CHECK_SCHEDULE", "false")
    monkeypatch.setenv("LINKNAV_CHECK_BATCH_PAUSE", "0")
    from linknav.config import Settings

    return Settings()


@pytest.fixture
def client(settings, store, fetcher):
    from fastapi.testclient import TestClient

    from linknav.main import create_app

    app = create_app(settings=settings, store=store, fetcher=fetcher)
    with TestClient(app) as c:
        yield c
