"""Crawl engine package.

Public API::

    from reviewcrawl.crawl import classify, Label, QuotaCoordinator
    from reviewcrawl.crawl.runner import run_crawl
"""

from reviewcrawl.crawl.classifier import classify
from reviewcrawl.crawl.models import CrawlRequest, Label, RestaurantContext, ReviewRecord
from reviewcrawl.crawl.quota import QuotaCoordinator

__all__ = [
    "classify",
    "Label",
    "CrawlRequest",
    "RestaurantContext",
    "ReviewRecord",
    "QuotaCoordinator",
]
