"""Review extraction for one restaurant detail page.

Each detail page runs through a small state machine::

    INIT ──(no embedded state)──────────────────────────► ABORTED
      │
      ▼
    EXTRACT_EMBEDDED ──► PAGINATE ──(stop condition)────► DONE

``INIT`` reads ``window.__INITIAL_STATE__`` from the rendered page,
``EXTRACT_EMBEDDED`` takes the review batch that shipped with the page, and
``PAGINATE`` walks the review API from page 2 onward until the global quota,
the per-restaurant cap or the reported total is hit, or the API stops
returning data.  API failures end pagination for that restaurant only; what
was already extracted is kept.
"""

from __future__ import annotations

import math
import random
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from reviewcrawl.config import settings
from reviewcrawl.crawl.models import RestaurantContext, ReviewRecord
from reviewcrawl.crawl.quota import QuotaCoordinator
from reviewcrawl.crawl.sink import ReviewSink
from reviewcrawl.scraper.browser import BrowserError, PageDriver
from reviewcrawl.scraper.reviews_api import ReviewsApiClient, ReviewsApiError, origin_of

INITIAL_STATE_READY = "() => !!window.__INITIAL_STATE__"

_INITIAL_STATE_SCRIPT = """
() => {
    const state = window.__INITIAL_STATE__;
    if (!state || !state.restaurantProfile) return null;
    const profile = state.restaurantProfile;
    const restaurant = profile.restaurant || {};
    const results = (profile.reviewsData && profile.reviewsData.reviewSearchResults) || {};
    const meta = document.querySelector('meta[name="csrf-token"]');
    return {
        restaurantId: restaurant.restaurantId,
        restaurantName: restaurant.name,
        initialReviews: results.reviews || [],
        totalCount: results.totalCount || 0,
        csrfToken: window.__csrfToken || (meta && meta.content) || '',
    };
}
"""


class ExtractionState(str, Enum):
    INIT = "INIT"
    EXTRACT_EMBEDDED = "EXTRACT_EMBEDDED"
    PAGINATE = "PAGINATE"
    DONE = "DONE"
    ABORTED = "ABORTED"


@dataclass
class ExtractionResult:
    """Outcome of processing one detail page."""

    url: str
    state: ExtractionState = ExtractionState.INIT
    restaurant: Optional[RestaurantContext] = None
    extracted: int = 0
    persisted: int = 0
    pages_fetched: list[int] = field(default_factory=list)
    stop_reason: str = ""


ApiFactory = Callable[[RestaurantContext, PageDriver], ReviewsApiClient]


# ---------------------------------------------------------------------------
# INIT helpers
# ---------------------------------------------------------------------------

def context_from_payload(payload: Any, url: str) -> Optional[RestaurantContext]:
    """Build a :class:`RestaurantContext` from the page-extracted payload.

    Returns ``None`` when the payload is missing or has no restaurant id.
    """
    if not isinstance(payload, dict):
        return None
    restaurant_id = payload.get("restaurantId")
    if restaurant_id in (None, ""):
        return None

    reviews = payload.get("initialReviews") or []
    try:
        total = int(payload.get("totalCount") or 0)
    except (TypeError, ValueError):
        total = 0

    return RestaurantContext(
        restaurant_id=str(restaurant_id),
        name=payload.get("restaurantName") or "",
        url=url,
        csrf_token=payload.get("csrfToken") or "",
        total_count=max(total, 0),
        initial_reviews=[r for r in reviews if isinstance(r, dict)],
    )


def read_restaurant_context(driver: PageDriver, url: str) -> Optional[RestaurantContext]:
    """Read restaurant identity, first review batch and CSRF token from the page."""
    try:
        payload = driver.evaluate(_INITIAL_STATE_SCRIPT)
    except BrowserError as exc:
        print(f"[DETAIL] Reading initial state failed on {url}: {exc}")
        return None
    return context_from_payload(payload, url)


def default_api_factory(ctx: RestaurantContext, driver: PageDriver) -> ReviewsApiClient:
    """Open an API client bound to the page's origin, cookies and user agent."""
    try:
        cookies = driver.cookies()
    except BrowserError as exc:
        print(f"[REVIEWS API] Could not read cookies for {ctx.url}: {exc}")
        cookies = {}
    return ReviewsApiClient(
        base_url=origin_of(ctx.url),
        csrf_token=ctx.csrf_token,
        cookies=cookies,
        user_agent=driver.user_agent,
        referer=ctx.url,
        proxy_url=driver.proxy_url,
    )


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

class ReviewExtractor:
    """Runs the extraction state machine for detail pages.

    One instance is shared by all workers; per-page state lives in local
    variables of :meth:`run`.  Shared mutable state is the injected
    :class:`QuotaCoordinator` and sink, plus the set of restaurant ids already
    extracted, so a restaurant reached through two URLs is extracted once.
    """

    def __init__(
        self,
        quota: QuotaCoordinator,
        sink: ReviewSink,
        max_per_restaurant: Optional[int] = None,
        page_size: Optional[int] = None,
        delay_base: Optional[float] = None,
        delay_jitter: Optional[float] = None,
        api_factory: Optional[ApiFactory] = None,
    ) -> None:
        self._quota = quota
        self._sink = sink
        self._max_per_restaurant = (
            settings.max_reviews_per_restaurant if max_per_restaurant is None else max_per_restaurant
        )
        self._page_size = settings.review_page_size if page_size is None else page_size
        if self._page_size <= 0:
            raise ValueError(f"Review page size must be positive, got {self._page_size}")
        self._delay_base = settings.page_delay_base if delay_base is None else delay_base
        self._delay_jitter = settings.page_delay_jitter if delay_jitter is None else delay_jitter
        self._claimed: set[str] = set()
        self._claimed_lock = threading.Lock()
        self._api_factory = api_factory or default_api_factory

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, driver: PageDriver, url: str) -> ExtractionResult:
        result = ExtractionResult(url=url)

        # INIT
        ctx = read_restaurant_context(driver, url)
        if ctx is None:
            print(f"[DETAIL] Could not find restaurant data on {url}")
            result.state = ExtractionState.ABORTED
            result.stop_reason = "missing embedded state"
            return result

        result.restaurant = ctx
        if not self._claim(ctx.restaurant_id):
            # Same restaurant reached through another URL (locale, /restref/).
            print(f"[DETAIL] Restaurant {ctx.restaurant_id} already extracted; skipping {url}")
            result.state = ExtractionState.DONE
            result.stop_reason = "already extracted"
            return result

        print(
            f"[DETAIL] Restaurant: {ctx.name} (ID: {ctx.restaurant_id}) "
            f"- Total Reviews: {ctx.total_count}"
        )
        try:
            self._sink.record_restaurant(ctx)
        except Exception as exc:
            print(f"[SINK] Failed to record restaurant {ctx.restaurant_id}: {exc}")

        # Snapshot: does not shrink if other workers consume quota meanwhile.
        max_for_this = min(self._max_per_restaurant, self._quota.remaining())
        if max_for_this <= 0:
            result.state = ExtractionState.DONE
            result.stop_reason = "quota reached"
            return result

        seen: set[str] = set()

        # EXTRACT_EMBEDDED
        result.state = ExtractionState.EXTRACT_EMBEDDED
        records = self._take(ctx.initial_reviews, ctx, seen, result.extracted, max_for_this)
        result.extracted += len(records)
        self._commit(ctx, records, result)
        remaining = max(0, min(max_for_this, ctx.total_count) - result.extracted)
        print(
            f"[DETAIL] {len(records)} embedded review(s) from {ctx.name}; "
            f"{remaining} remaining"
        )

        # PAGINATE
        result.state = ExtractionState.PAGINATE
        if self._should_continue(result.extracted, max_for_this, ctx.total_count):
            with self._api_factory(ctx, driver) as api:
                self._paginate(api, ctx, seen, max_for_this, result)
        if not result.stop_reason:
            result.stop_reason = self._limit_reason(result.extracted, max_for_this, ctx.total_count)

        result.state = ExtractionState.DONE
        print(
            f"[DETAIL] Done with {ctx.name}: {result.extracted} review(s) "
            f"({result.stop_reason})"
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _paginate(
        self,
        api: ReviewsApiClient,
        ctx: RestaurantContext,
        seen: set[str],
        max_for_this: int,
        result: ExtractionResult,
    ) -> None:
        # Page 1 is the embedded batch.  The last page bound guards against an
        # API that ignores the page number and keeps returning the same data.
        last_page = math.ceil(ctx.total_count / self._page_size) + 1
        page = 1
        while self._should_continue(result.extracted, max_for_this, ctx.total_count):
            page += 1
            if page > last_page:
                result.stop_reason = "page limit reached"
                return

            print(f"[REVIEWS API] Fetching review page {page} for {ctx.name}")
            result.pages_fetched.append(page)
            try:
                entries = api.fetch_page(ctx.restaurant_id, page, self._page_size)
            except ReviewsApiError as exc:
                print(f"[REVIEWS API] Failed to fetch page {page} for {ctx.name}: {exc}")
                result.stop_reason = f"api error on page {page}"
                return

            if not entries:
                print("[REVIEWS API] No more reviews found via API.")
                result.stop_reason = "end of data"
                return

            records = self._take(entries, ctx, seen, result.extracted, max_for_this)
            result.extracted += len(records)
            self._commit(ctx, records, result)
            self._pause()

    def _claim(self, restaurant_id: str) -> bool:
        """Mark *restaurant_id* as taken by this run.  ``False`` if it already was."""
        with self._claimed_lock:
            if restaurant_id in self._claimed:
                return False
            self._claimed.add(restaurant_id)
            return True

    def _should_continue(self, extracted: int, max_for_this: int, total: int) -> bool:
        return not self._quota.reached() and extracted < max_for_this and extracted < total

    def _limit_reason(self, extracted: int, max_for_this: int, total: int) -> str:
        if self._quota.reached():
            return "quota reached"
        if extracted >= max_for_this:
            return "per-restaurant cap reached"
        if extracted >= total:
            return "all reviews extracted"
        return "stopped"

    def _take(
        self,
        entries: Iterable[dict[str, Any]],
        ctx: RestaurantContext,
        seen: set[str],
        extracted: int,
        max_for_this: int,
    ) -> list[ReviewRecord]:
        """Normalise *entries* into new records within the cap and the quota.

        Duplicate review ids (within the batch or against earlier batches)
        are dropped.  The quota is debited once for the whole batch.
        """
        room = max_for_this - extracted
        candidates: list[ReviewRecord] = []
        batch_ids: set[str] = set()
        for entry in entries:
            if len(candidates) >= room:
                break
            record = ReviewRecord.from_entry(entry, ctx)
            if record is None:
                continue
            if record.review_id in seen or record.review_id in batch_ids:
                continue
            batch_ids.add(record.review_id)
            candidates.append(record)

        accepted = self._quota.take(len(candidates))
        records = candidates[:accepted]
        seen.update(r.review_id for r in records)
        if accepted < len(candidates):
            print(f"[QUOTA] Target of {self._quota.target} reached.")
        return records

    def _commit(
        self, ctx: RestaurantContext, records: list[ReviewRecord], result: ExtractionResult
    ) -> None:
        if not records:
            return
        try:
            result.persisted += self._sink.commit(ctx.restaurant_id, records)
        except Exception as exc:
            # Quota stays debited; the records are lost for this run.
            print(f"[SINK] Failed to store {len(records)} review(s) for {ctx.name}: {exc}")

    def _pause(self) -> None:
        time.sleep(self._delay_base + random.random() * self._delay_jitter)
