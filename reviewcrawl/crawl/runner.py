"""Crawl runner: worker pool, request dispatch and run summary.

``run_crawl`` is the high-level entry point used by the CLI.  It opens the
database, wires a :class:`CrawlRunner` to a :class:`SqliteReviewSink`, runs
the crawl to completion and closes the connection on exit.

Workers are threads, each owning one browser session.  They pull requests
from one shared :class:`RequestQueue`; listing pages feed new detail requests
back into it.  The run ends when the queue is drained with nothing in flight
or when the global quota is reached.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from reviewcrawl.config import settings
from reviewcrawl.crawl.extraction import (
    INITIAL_STATE_READY,
    ApiFactory,
    ExtractionState,
    ReviewExtractor,
)
from reviewcrawl.crawl.models import CrawlRequest, Label
from reviewcrawl.crawl.quota import QuotaCoordinator
from reviewcrawl.crawl.request_queue import RequestQueue
from reviewcrawl.crawl.sink import ReviewSink
from reviewcrawl.crawl.traversal import TraversalPolicy, make_request
from reviewcrawl.db.connection import get_connection
from reviewcrawl.db.migrations import init_db
from reviewcrawl.db.reviews import SqliteReviewSink
from reviewcrawl.scraper.browser import NavigationError, PageDriver, PlaywrightDriver

DriverFactory = Callable[[int], PageDriver]


@dataclass
class CrawlSummary:
    target: int
    emitted: int = 0
    persisted: int = 0
    requests_processed: int = 0
    requests_failed: int = 0
    restaurants_done: int = 0
    restaurants_aborted: int = 0
    urls_seen: int = 0

    @property
    def quota_reached(self) -> bool:
        return self.emitted >= self.target


class CrawlRunner:
    """Dispatch crawl requests to listing or detail handling across workers."""

    def __init__(
        self,
        sink: ReviewSink,
        results_wanted: Optional[int] = None,
        max_per_restaurant: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        max_request_retries: Optional[int] = None,
        proxy_urls: Sequence[str] = (),
        headless: Optional[bool] = None,
        driver_factory: Optional[DriverFactory] = None,
        api_factory: Optional[ApiFactory] = None,
        traversal: Optional[TraversalPolicy] = None,
    ) -> None:
        target = settings.results_wanted if results_wanted is None else results_wanted
        self.quota = QuotaCoordinator(target)
        self.traversal = traversal or TraversalPolicy()
        self.extractor = ReviewExtractor(
            self.quota, sink, max_per_restaurant=max_per_restaurant, api_factory=api_factory
        )
        self.queue = RequestQueue()

        self._concurrency = max(1, settings.max_concurrency if max_concurrency is None else max_concurrency)
        self._max_retries = (
            settings.max_request_retries if max_request_retries is None else max_request_retries
        )
        self._proxy_urls = list(proxy_urls) or ([settings.proxy_url] if settings.proxy_url else [])
        self._headless = headless
        self._driver_factory = driver_factory or self._launch_browser

        self._summary = CrawlSummary(target=target)
        self._stats_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def enqueue(self, requests: Iterable[CrawlRequest]) -> int:
        """Admit *requests* through the dedup set and queue the new ones."""
        added = 0
        for request in requests:
            request = make_request(request.url, request.label)
            if self.traversal.admit(request):
                self.queue.put(request)
                added += 1
            else:
                print(f"[CRAWL] Skipping duplicate request {request.url}")
        return added

    def run(self, seeds: Iterable[CrawlRequest]) -> CrawlSummary:
        """Crawl from *seeds* until the queue drains or the quota is reached."""
        queued = self.enqueue(seeds)
        print(
            f"[CRAWL] Starting with {queued} seed(s), target {self.quota.target} review(s), "
            f"{self._concurrency} worker(s)"
        )

        with ThreadPoolExecutor(max_workers=self._concurrency) as pool:
            futures = {pool.submit(self._worker, i): i for i in range(self._concurrency)}
            for future in as_completed(futures):
                worker_id = futures[future]
                try:
                    future.result()
                except Exception as exc:
                    print(f"[CRAWL] Worker {worker_id} stopped: {exc}")

        self._summary.emitted = self.quota.count
        self._summary.urls_seen = self.traversal.seen_count
        print(
            f"[DONE] {self._summary.emitted}/{self.quota.target} review(s) extracted, "
            f"{self._summary.persisted} stored, "
            f"{self._summary.requests_processed} request(s) processed, "
            f"{self._summary.urls_seen} unique URL(s) seen"
        )
        return self._summary

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    def _launch_browser(self, worker_id: int) -> PageDriver:
        proxy = self._proxy_urls[worker_id % len(self._proxy_urls)] if self._proxy_urls else ""
        return PlaywrightDriver(headless=self._headless, proxy_url=proxy)

    def _worker(self, worker_id: int) -> None:
        with self._driver_factory(worker_id) as driver:
            while True:
                if self.quota.reached():
                    self.queue.close()
                    return
                request = self.queue.get()
                if request is None:
                    return
                try:
                    self._process(driver, request)
                except Exception as exc:
                    print(f"[CRAWL] ✗ Failed {request.url!r}: {exc}")
                    self._count(requests_failed=1)
                finally:
                    self.queue.task_done()

    def _process(self, driver: PageDriver, request: CrawlRequest) -> None:
        print(f"[CRAWL] Processing: {request.url}")
        if not self._navigate(driver, request.url):
            self._count(requests_failed=1)
            return
        self._wait_until_ready(driver, request.url)

        if request.label is Label.DETAIL:
            result = self.extractor.run(driver, request.url)
            if result.state is ExtractionState.ABORTED:
                self._count(requests_processed=1, restaurants_aborted=1)
            else:
                self._count(
                    requests_processed=1, restaurants_done=1, persisted=result.persisted
                )
        else:
            for detail in self.traversal.discover(driver, request.url):
                self.queue.put(detail)
            self._count(requests_processed=1)

    def _navigate(self, driver: PageDriver, url: str) -> bool:
        """Load *url*, retrying with exponential backoff.  ``False`` if abandoned."""
        for attempt in range(self._max_retries + 1):
            try:
                driver.navigate(url, settings.navigation_timeout)
                return True
            except NavigationError as exc:
                if attempt < self._max_retries:
                    delay = settings.retry_base_delay * (2 ** attempt)
                    print(
                        f"[CRAWL] Navigation failed (attempt {attempt + 1}/{self._max_retries + 1}): "
                        f"{exc}; retrying in {delay:.0f}s …"
                    )
                    time.sleep(delay)
                else:
                    print(f"[CRAWL] Giving up on {url} after {attempt + 1} attempt(s): {exc}")
        return False

    def _wait_until_ready(self, driver: PageDriver, url: str) -> None:
        idle = driver.wait_for_idle(settings.navigation_timeout)
        ready = driver.wait_for_condition(INITIAL_STATE_READY, settings.initial_state_timeout)
        if not (idle and ready):
            print(f"[CRAWL] Page initialization timeout on {url}. Content might be missing.")

    def _count(self, **deltas: int) -> None:
        with self._stats_lock:
            for name, delta in deltas.items():
                setattr(self._summary, name, getattr(self._summary, name) + delta)


def run_crawl(
    seeds: Iterable[CrawlRequest],
    results_wanted: Optional[int] = None,
    max_per_restaurant: Optional[int] = None,
    max_concurrency: Optional[int] = None,
    proxy_urls: Sequence[str] = (),
    headless: Optional[bool] = None,
) -> CrawlSummary:
    """Run a crawl that stores reviews in the configured SQLite database.

    Opens its own DB connection for the duration of the run, then closes it
    on exit (success or error).
    """
    conn = get_connection()
    init_db(conn)
    try:
        runner = CrawlRunner(
            SqliteReviewSink(conn),
            results_wanted=results_wanted,
            max_per_restaurant=max_per_restaurant,
            max_concurrency=max_concurrency,
            proxy_urls=proxy_urls,
            headless=headless,
        )
        return runner.run(seeds)
    finally:
        conn.close()
