"""Shared fixtures for the crawler test suite.

No test launches a real browser.  ``FakeDriver`` implements the
``PageDriver`` interface over a dict of canned pages: each URL maps to the
embedded-state payload the page would expose and the hrefs its anchors hold.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Any, Generator, Optional
from unittest.mock import patch

import httpx
import pytest

from reviewcrawl.db.connection import get_connection
from reviewcrawl.db.migrations import init_db
from reviewcrawl.scraper.browser import BrowserError, NavigationError, PageDriver

RESTAURANT_URL = "https://www.opentable.com/r/chez-test-paris"
GQL_ROUTE = {"host": "www.opentable.com", "path": "/dapi/fe/gql"}


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def review_entry(n: int, **overrides: Any) -> dict[str, Any]:
    """Return a review entry shaped like the site's embedded/API data."""
    entry = {
        "reviewId": f"rev-{n}",
        "text": f"Review number {n}",
        "dinedDateTime": f"2024-01-{(n % 28) + 1:02d}T19:00:00Z",
        "submittedDateTime": f"2024-02-{(n % 28) + 1:02d}T10:00:00Z",
        "rating": {
            "overall": 5,
            "food": 4,
            "service": 5,
            "ambience": 3,
            "value": 4,
            "noise": "MODERATE",
        },
        "user": {"nickname": f"Diner{n}"},
        "helpfulness": {"score": n},
    }
    entry.update(overrides)
    return entry


def restaurant_payload(
    reviews: list[dict[str, Any]],
    total: int,
    restaurant_id: Any = 1234,
    name: str = "Chez Test",
    csrf: str = "csrf-token",
) -> dict[str, Any]:
    """Return what the initial-state script yields for a detail page."""
    return {
        "restaurantId": restaurant_id,
        "restaurantName": name,
        "initialReviews": reviews,
        "totalCount": total,
        "csrfToken": csrf,
    }


def api_response(reviews: list[dict[str, Any]]) -> dict[str, Any]:
    return {"data": {"restaurant": {"reviewSearchResults": {"reviews": reviews}}}}


def paged_api(pages: dict[int, Any], calls: Optional[list[dict]] = None):
    """Build a respx side effect serving ``pages[page]`` for each request.

    A page value may be a list of entries or a ready ``httpx.Response``.
    Missing pages return an empty review list.
    """

    def _handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if calls is not None:
            calls.append({"body": body, "headers": dict(request.headers)})
        value = pages.get(body["variables"]["page"], [])
        if isinstance(value, httpx.Response):
            return value
        return httpx.Response(200, json=api_response(value))

    return _handler


# ---------------------------------------------------------------------------
# Fake browser
# ---------------------------------------------------------------------------

class FakeDriver(PageDriver):
    def __init__(
        self,
        pages: Optional[dict[str, dict[str, Any]]] = None,
        nav_failures: Optional[dict[str, int]] = None,
    ) -> None:
        self.pages = pages or {}
        self.nav_failures = dict(nav_failures or {})
        self.user_agent = "test-agent"
        self.proxy_url = ""
        self.current_url: Optional[str] = None
        self.visited: list[str] = []
        self.closed = False

    def navigate(self, url: str, timeout: float) -> None:
        self.visited.append(url)
        if self.nav_failures.get(url, 0) > 0:
            self.nav_failures[url] -= 1
            raise NavigationError(f"{url}: HTTP 503")
        self.current_url = url

    def wait_for_idle(self, timeout: float) -> bool:
        return True

    def wait_for_condition(self, expression: str, timeout: float) -> bool:
        return self._page().get("state") is not None

    def evaluate(self, script: str, arg: Any = None) -> Any:
        page = self._page()
        if "restaurantProfile" in script:
            return page.get("state")
        if "querySelectorAll" in script:
            if page.get("links_error"):
                raise BrowserError("Execution context was destroyed")
            return page.get("hrefs", [])
        return None

    def cookies(self) -> dict[str, str]:
        return {"otSession": "abc"}

    def close(self) -> None:
        self.closed = True

    def _page(self) -> dict[str, Any]:
        return self.pages.get(self.current_url or "", {})


def driver_on(url: str, **page: Any) -> FakeDriver:
    """Return a FakeDriver already showing a single page at *url*."""
    driver = FakeDriver({url: page})
    driver.current_url = url
    return driver


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    """In-memory connection with the schema initialised."""
    connection = get_connection(db_path=":memory:")  # type: ignore[arg-type]
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture(autouse=True)
def no_sleep() -> Generator[Any, None, None]:
    """Skip real delays (page jitter, navigation backoff)."""
    with patch("time.sleep") as mock_sleep:
        yield mock_sleep
