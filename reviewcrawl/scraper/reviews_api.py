"""HTTP client for the site's paginated review-search API.

The endpoint is a GraphQL gateway that only accepts persisted queries, so the
request body carries the operation name plus a fixed query hash rather than
query text.  The request and header shapes below must match what the site's
own front-end sends.
"""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import urlsplit

import httpx

from reviewcrawl.config import settings

GQL_PATH = "/dapi/fe/gql"
OPERATION_NAME = "ReviewSearchResults"
PERSISTED_QUERY_HASH = "a544a8bb7070a1aa6c5e50b3f9bb239ba44f442eb9ac628f30b57bd3ae098b27"
SORT_BY = "newestReview"


class ReviewsApiError(Exception):
    """The review API call failed or returned an unusable payload."""


def origin_of(url: str) -> str:
    """Return ``scheme://host`` for *url*; API calls go to the page's own domain."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def _api_restaurant_id(restaurant_id: str) -> Any:
    # The front-end sends numeric ids as JSON numbers.
    return int(restaurant_id) if restaurant_id.isdigit() else restaurant_id


def build_payload(restaurant_id: str, page: int, page_size: int) -> dict[str, Any]:
    """Return the JSON body for one review-search page."""
    return {
        "operationName": OPERATION_NAME,
        "variables": {
            "prioritiseUserLanguage": False,
            "gpid": 0,
            "restaurantId": _api_restaurant_id(restaurant_id),
            "page": page,
            "pageSize": page_size,
            "sortBy": SORT_BY,
            "searchTerm": "",
            "highlightFormat": "index",
        },
        "extensions": {
            "persistedQuery": {
                "version": 1,
                "sha256Hash": PERSISTED_QUERY_HASH,
            }
        },
    }


def build_headers(csrf_token: str, user_agent: str = "", referer: str = "") -> dict[str, str]:
    headers = {
        "content-type": "application/json",
        "ot-page-group": "rest-profile",
        "ot-page-type": "restprofilepage",
        "x-csrf-token": csrf_token or "",
    }
    if user_agent:
        headers["user-agent"] = user_agent
    if referer:
        headers["referer"] = referer
    return headers


def parse_reviews(data: Any) -> list[dict[str, Any]]:
    """Pull ``data.restaurant.reviewSearchResults.reviews`` out of a response.

    Returns ``[]`` when the path is missing or empty (end of data).

    Raises:
        ReviewsApiError: If the payload is not a JSON object, or reports
            GraphQL errors without any data.
    """
    if not isinstance(data, dict):
        raise ReviewsApiError(f"unexpected payload type {type(data).__name__}")
    if data.get("errors") and not data.get("data"):
        raise ReviewsApiError(f"API errors: {data['errors']!r:.200}")

    node: Any = data
    for key in ("data", "restaurant", "reviewSearchResults", "reviews"):
        if not isinstance(node, dict):
            return []
        node = node.get(key)
    reviews = node
    if not reviews:
        return []
    if not isinstance(reviews, list):
        raise ReviewsApiError("reviews field is not a list")
    return [r for r in reviews if isinstance(r, dict)]


class ReviewsApiClient:
    """Fetch review pages for one restaurant.

    Carries the browser page's cookies and user agent so the API sees the
    same session the page was rendered in.  Use as a context manager.
    """

    def __init__(
        self,
        base_url: str,
        csrf_token: str = "",
        cookies: Optional[dict[str, str]] = None,
        user_agent: str = "",
        referer: str = "",
        proxy_url: str = "",
        timeout: Optional[float] = None,
    ) -> None:
        self._endpoint = f"{base_url.rstrip('/')}{GQL_PATH}"
        client_kwargs: dict[str, Any] = {
            "headers": build_headers(csrf_token, user_agent, referer),
            "cookies": cookies or {},
            "timeout": settings.request_timeout if timeout is None else timeout,
            "follow_redirects": True,
        }
        if proxy_url:
            client_kwargs["proxy"] = proxy_url
        self._client = httpx.Client(**client_kwargs)

    def fetch_page(self, restaurant_id: str, page: int, page_size: int) -> list[dict[str, Any]]:
        """Return the review entries of *page* (``[]`` once data runs out).

        Raises:
            ReviewsApiError: On transport failure, non-2xx status, invalid
                JSON or a malformed payload.
        """
        try:
            resp = self._client.post(
                self._endpoint,
                params={"optype": "query", "opname": OPERATION_NAME},
                json=build_payload(restaurant_id, page, page_size),
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            raise ReviewsApiError(f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise ReviewsApiError(f"request failed: {exc}") from exc
        except ValueError as exc:
            raise ReviewsApiError(f"invalid JSON: {exc}") from exc
        return parse_reviews(data)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ReviewsApiClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
