"""
favicon.py - Best-effort favicon discovery and page previews.

Nothing in here raises to the caller: any failure (bad URL, network error,
non-2xx probe, unparsable page) turns into ``None`` / empty preview fields.
"""

import logging
from typing import Callable, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from pydantic import BaseModel

from .config import never_get
from .fetcher import FetchError, HttpFetcher
from .urls import default_favicon_url, is_valid_url, normalize_url, site_origin

logger = logging.getLogger(__name__)

# Looked up in this order, first match wins
ICON_RELS = ("icon", "shortcut icon", "apple-touch-icon")


class LinkPreview(BaseModel):
    url: str
    title: str = ""
    description: str = ""
    favicon: Optional[str] = None


def find_icon_href(soup: BeautifulSoup) -> Optional[str]:
    links = soup.find_all("link", href=True)
    for wanted in ICON_RELS:
        for tag in links:
            rel = tag.get("rel") or []
            if isinstance(rel, str):
                rel = rel.split()
            if " ".join(rel).lower() == wanted and tag["href"].strip():
                return tag["href"].strip()
    return None


class FaviconResolver:
    def __init__(self, fetcher: HttpFetcher, requires_get: Optional[Callable[[str], bool]] = None):
        self.fetcher = fetcher
        self.requires_get = requires_get or never_get

    def resolve(self, page_url: str) -> Optional[str]:
        """Return a reachable favicon URL for ``page_url`` or None. Never raises."""
        url = normalize_url(page_url)
        if not is_valid_url(url):
            logger.debug("Skipping favicon lookup for invalid URL %r", page_url)
            return None

        try:
            page = self.fetcher.get(url)
            return self._from_html(url, page.text)
        except FetchError as exc:
            logger.debug("Could not fetch %s for favicon: %s", url, exc)
        except Exception:
            logger.exception("Unexpected error resolving favicon for %s", url)
        return None

    def _from_html(self, url: str, html: str) -> Optional[str]:
        href = find_icon_href(BeautifulSoup(html or "", "html.parser"))
        candidate = href or default_favicon_url(url)
        # Relative hrefs resolve against the site origin, not the page path
        candidate = urljoin(site_origin(url) + "/", candidate)
        if not is_valid_url(candidate):
            return None

        try:
            self.fetcher.probe(candidate, use_get=self.requires_get(candidate))
        except FetchError as exc:
            logger.debug("Favicon %s not reachable: %s", candidate, exc)
            return None
        return candidate

    def preview(self, page_url: str) -> LinkPreview:
        """Title, description and favicon of a page. Never raises."""
        url = normalize_url(page_url)
        result = LinkPreview(url=url)
        if not is_valid_url(url):
            return result

        try:
            page = self.fetcher.get(url)
            soup = BeautifulSoup(page.text or "", "html.parser")
            if soup.title and soup.title.string:
                result.title = soup.title.string.strip()
            meta = soup.find("meta", attrs={"name": "description"})
            if meta and meta.get("content"):
                result.description = meta["content"].strip()
            result.favicon = self._from_html(url, page.text)
        except FetchError as exc:
            logger.info("Preview fetch failed for %s: %s", url, exc)
        except Exception:
            logger.exception("Unexpected error building preview for %s", url)
        return result
