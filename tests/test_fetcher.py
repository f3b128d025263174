from types import SimpleNamespace

import pytest
import requests

from linknav.fetcher import (
    FetchConnectionError,
    FetchError,
    FetchStatusError,
    FetchTimeout,
    HttpFetcher,
)


def make_fetcher(monkeypatch, outcome):
    session = requests.Session()
    calls = []

    def fake_request(method, url, **kwargs):
        calls.append((method, url, kwargs))
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(status_code=outcome, text="<html></html>", url=url, close=lambda: None)

    monkeypatch.setattr(session, "request", fake_request)
    return HttpFetcher(timeout=3, user_agent="TestAgent/1.0", session=session), calls


def test_get_sends_user_agent_and_timeout(monkeypatch):
    fetcher, calls = make_fetcher(monkeypatch, 200)

    result = fetcher.get("https://example.com")

    assert result.status == 200
    assert result.text == "<html></html>"
    method, url, kwargs = calls[0]
    assert (method, url) == ("GET", "https://example.com")
    assert kwargs["timeout"] == 3
    assert kwargs["allow_redirects"] is True
    assert fetcher.session.headers["User-Agent"] == "TestAgent/1.0"


@pytest.mark.parametrize(
    "outcome, error",
    [
        (requests.Timeout("slow"), FetchTimeout),
        (requests.ConnectionError("refused"), FetchConnectionError),
        (404, FetchStatusError),
    ],
)
def test_failures_are_distinguishable(monkeypatch, outcome, error):
    fetcher, _ = make_fetcher(monkeypatch, outcome)

    with pytest.raises(error) as excinfo:
        fetcher.head("https://example.com")
    assert isinstance(excinfo.value, FetchError)
    assert excinfo.value.url == "https://example.com"


def test_status_error_carries_status(monkeypatch):
    fetcher, _ = make_fetcher(monkeypatch, 503)
    with pytest.raises(FetchStatusError) as excinfo:
        fetcher.get("https://example.com")
    assert excinfo.value.status == 503


def test_probe_uses_head_unless_told_otherwise(monkeypatch):
    fetcher, calls = make_fetcher(monkeypatch, 204)

    fetcher.probe("https://a.example")
    fetcher.probe("https://b.example", use_get=True)

    assert [(m, u) for m, u, _ in calls] == [("HEAD", "https://a.example"), ("GET", "https://b.example")]


def test_plain_value_error_becomes_connection_error(monkeypatch):
    # urllib3 raises LocationParseError (a ValueError) for over-long host labels
    fetcher, _ = make_fetcher(monkeypatch, ValueError("label empty or too long"))

    with pytest.raises(FetchConnectionError):
        fetcher.get("https://" + "a" * 64 + ".com")
