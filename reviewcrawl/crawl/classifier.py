"""Request classification: listing/search page vs. restaurant detail page."""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from reviewcrawl.crawl.models import Label

# Restaurant detail pages live under /r/<slug> or /restref/<rid>, optionally
# behind a locale prefix (e.g. /fr-CA/r/<slug>).
DETAIL_PATH_PATTERN = re.compile(r"/(?:r|restref)/[^/]+", re.IGNORECASE)


def classify(url: str) -> Label:
    """Return :attr:`Label.DETAIL` for restaurant pages, :attr:`Label.LISTING` otherwise.

    Anything that does not look like a detail page (including malformed URLs)
    is treated as a listing page to search for further links.
    """
    try:
        path = urlsplit(url).path
    except ValueError:
        return Label.LISTING
    if DETAIL_PATH_PATTERN.search(path):
        return Label.DETAIL
    return Label.LISTING
