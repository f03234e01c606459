"""Traversal policy: turn listing pages into restaurant detail requests.

The policy owns the run-wide set of enqueued URLs.  Every request that enters
the queue (seeds included) is admitted through :meth:`TraversalPolicy.admit`
first, so a URL is crawled at most once per run.
"""

from __future__ import annotations

import re
import threading
from typing import Iterable
from urllib.parse import urlsplit, urlunsplit

from reviewcrawl.config import settings
from reviewcrawl.crawl.models import CrawlRequest, Label
from reviewcrawl.scraper.browser import BrowserError, PageDriver

# Detail pages on every supported locale domain.
DETAIL_LINK_PATTERN = re.compile(
    r"^https://www\.opentable\.(?:com|co\.uk|ca|com\.au)"
    r"(?:/[a-z]{2}-[a-z]{2})?/(?:r|restref)/[^/?#]+",
    re.IGNORECASE,
)

_SCROLL_SCRIPT = """
async (settleMs) => {
    window.scrollTo(0, document.body.scrollHeight / 2);
    await new Promise(r => setTimeout(r, settleMs));
    window.scrollTo(0, document.body.scrollHeight);
    await new Promise(r => setTimeout(r, settleMs));
}
"""

_ANCHORS_SCRIPT = """
() => Array.from(
    document.querySelectorAll('a[href*="/r/"], a[href*="/restref/"]'),
    a => a.href
)
"""


def normalize_url(url: str) -> str:
    """Strip the query string and fragment from *url*."""
    parts = urlsplit(url.strip())
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def _strip_fragment(url: str) -> str:
    parts = urlsplit(url.strip())
    return urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ""))


def is_detail_link(url: str) -> bool:
    return bool(DETAIL_LINK_PATTERN.match(url))


def make_request(url: str, label: Label) -> CrawlRequest:
    """Build a request, normalising detail URLs.

    Listing URLs keep their query string (search pages are addressed by it);
    only the fragment is dropped.
    """
    if label is Label.DETAIL:
        return CrawlRequest(url=normalize_url(url), label=label)
    return CrawlRequest(url=_strip_fragment(url), label=label)


class TraversalPolicy:
    """Link discovery plus the run-wide deduplication set."""

    def __init__(self, scroll_settle_delay: float | None = None) -> None:
        self._seen: set[str] = set()
        self._lock = threading.Lock()
        self._settle_ms = int(
            1000 * (settings.scroll_settle_delay if scroll_settle_delay is None else scroll_settle_delay)
        )

    def admit(self, request: CrawlRequest) -> bool:
        """Record *request* as enqueued.  Returns ``False`` if already seen."""
        with self._lock:
            if request.url in self._seen:
                return False
            self._seen.add(request.url)
            return True

    @property
    def seen_count(self) -> int:
        with self._lock:
            return len(self._seen)

    def select(self, hrefs: Iterable[str]) -> list[CrawlRequest]:
        """Filter, normalise and deduplicate candidate hrefs.

        Returns only the requests that were not enqueued before in this run.
        """
        fresh: list[CrawlRequest] = []
        for href in hrefs:
            if not isinstance(href, str) or not is_detail_link(href):
                continue
            request = make_request(href, Label.DETAIL)
            if self.admit(request):
                fresh.append(request)
        return fresh

    def discover(self, driver: PageDriver, page_url: str) -> list[CrawlRequest]:
        """Scroll the rendered listing page and return new detail requests.

        Scrolling is best-effort; any browser failure is logged and the page
        is treated as yielding zero links.
        """
        try:
            driver.evaluate(_SCROLL_SCRIPT, self._settle_ms)
        except BrowserError as exc:
            print(f"[LISTING] Scroll failed on {page_url}: {exc}")

        try:
            hrefs = driver.evaluate(_ANCHORS_SCRIPT) or []
        except BrowserError as exc:
            print(f"[LISTING] Link discovery failed on {page_url}: {exc}")
            return []

        fresh = self.select(hrefs)
        print(f"[LISTING] Enqueued {len(fresh)} restaurant(s) from {page_url}")
        return fresh
