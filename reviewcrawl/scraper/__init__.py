"""Scraper package — browser session and review API client."""

from reviewcrawl.scraper.browser import (
    BrowserError,
    NavigationError,
    PageDriver,
    PlaywrightDriver,
    should_block,
)
from reviewcrawl.scraper.reviews_api import ReviewsApiClient, ReviewsApiError

__all__ = [
    "PageDriver",
    "PlaywrightDriver",
    "BrowserError",
    "NavigationError",
    "should_block",
    "ReviewsApiClient",
    "ReviewsApiError",
]
