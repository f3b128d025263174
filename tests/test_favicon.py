from conftest import FakeFetcher

from linknav.favicon import FaviconResolver


PAGE_WITH_SHORTCUT = """
<html><head>
  <title>Host</title>
  <link rel="stylesheet" href="/style.css">
  <link rel="shortcut icon" href="/assets/icon.png">
</head><body></body></html>
"""

PAGE_WITHOUT_ICONS = "<html><head><title>Plain</title></head><body>hi</body></html>"


def test_relative_icon_is_resolved_against_origin():
    fetcher = FakeFetcher(
        pages={"https://host": PAGE_WITH_SHORTCUT},
        statuses={"https://host/assets/icon.png": 200},
    )
    resolver = FaviconResolver(fetcher)

    assert resolver.resolve("https://host") == "https://host/assets/icon.png"
    assert ("HEAD", "https://host/assets/icon.png") in fetcher.calls


def test_relative_icon_ignores_page_path():
    page = '<link rel="icon" href="img/fav.png">'
    fetcher = FakeFetcher(
        pages={"https://host/blog/post": page},
        statuses={"https://host/img/fav.png": 200},
    )
    assert FaviconResolver(fetcher).resolve("https://host/blog/post") == "https://host/img/fav.png"


def test_falls_back_to_favicon_ico():
    fetcher = FakeFetcher(
        pages={"https://host": PAGE_WITHOUT_ICONS},
        statuses={"https://host/favicon.ico": 200},
    )
    assert FaviconResolver(fetcher).resolve("https://host") == "https://host/favicon.ico"


def test_missing_scheme_gets_https():
    fetcher = FakeFetcher(
        pages={"https://host": PAGE_WITHOUT_ICONS},
        statuses={"https://host/favicon.ico": 200},
    )
    assert FaviconResolver(fetcher).resolve("host") == "https://host/favicon.ico"
    assert fetcher.calls[0] == ("GET", "https://host")


def test_rel_lookup_order():
    page = """
    <link rel="apple-touch-icon" href="/apple.png">
    <link rel="shortcut icon" href="/shortcut.ico">
    <link rel="icon" href="https://cdn.example.com/icon.svg">
    """
    fetcher = FakeFetcher(
        pages={"https://host": page},
        statuses={
            "https://cdn.example.com/icon.svg": 200,
            "https://host/shortcut.ico": 200,
            "https://host/apple.png": 200,
        },
    )
    assert FaviconResolver(fetcher).resolve("https://host") == "https://cdn.example.com/icon.svg"


def test_unreachable_icon_returns_none():
    fetcher = FakeFetcher(
        pages={"https://host": PAGE_WITH_SHORTCUT},
        statuses={"https://host/assets/icon.png": 404},
    )
    assert FaviconResolver(fetcher).resolve("https://host") is None


def test_page_fetch_failure_returns_none():
    fetcher = FakeFetcher()
    assert FaviconResolver(fetcher).resolve("https://down.example") is None


def test_invalid_url_makes_no_network_call():
    fetcher = FakeFetcher()
    assert FaviconResolver(fetcher).resolve("not a url") is None
    assert fetcher.calls == []


def test_get_only_hosts_are_probed_with_get():
    fetcher = FakeFetcher(
        pages={"https://www.picky.com": PAGE_WITHOUT_ICONS},
        statuses={"https://www.picky.com/favicon.ico": 200},
    )
    resolver = FaviconResolver(fetcher, requires_get=lambda url: "picky.com" in url)

    assert resolver.resolve("https://www.picky.com") == "https://www.picky.com/favicon.ico"
    assert ("GET", "https://www.picky.com/favicon.ico") in fetcher.calls
    assert not any(method == "HEAD" for method, _ in fetcher.calls)


def test_preview_reads_title_and_description():
    page = """
    <html><head><title> Example </title>
    <meta name="description" content="An example page.">
    <link rel="icon" href="/i.png"></head></html>
    """
    fetcher = FakeFetcher(pages={"https://host": page}, statuses={"https://host/i.png": 200})
    preview = FaviconResolver(fetcher).preview("host")

    assert preview.url == "https://host"
    assert preview.title == "Example"
    assert preview.description == "An example page."
    assert preview.favicon == "https://host/i.png"


def test_preview_of_unreachable_page_is_empty():
    preview = FaviconResolver(FakeFetcher()).preview("https://gone.example")
    assert preview.title == ""
    assert preview.description == ""
    assert preview.favicon is None


class ExplodingFetcher(FakeFetcher):
    """Raises something that is not a FetchError, like urllib3 on odd hostnames."""

    def get(self, url, timeout=None, headers=None):
        self._record("GET", url)
        raise ValueError("label empty or too long")


def test_resolve_swallows_unexpected_errors():
    url = "https://" + "a" * 64 + ".com"
    fetcher = ExplodingFetcher()

    assert FaviconResolver(fetcher).resolve(url) is None
    assert fetcher.calls == [("GET", url)]


def test_preview_swallows_unexpected_errors():
    preview = FaviconResolver(ExplodingFetcher()).preview("https://" + "a" * 64 + ".com")
    assert preview.title == ""
    assert preview.favicon is None


def test_unexpected_error_while_probing_icon_returns_none():
    class BadProbe(FakeFetcher):
        def probe(self, url, use_get=False):
            raise RuntimeError("boom")

    fetcher = BadProbe(pages={"https://host": PAGE_WITHOUT_ICONS})
    assert FaviconResolver(fetcher).resolve("https://host") is None
