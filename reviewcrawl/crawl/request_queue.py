"""Shared, thread-safe queue of pending crawl requests."""

from __future__ import annotations

import threading
from collections import deque
from typing import Optional

from reviewcrawl.crawl.models import CrawlRequest


class RequestQueue:
    """FIFO of :class:`CrawlRequest` shared by all workers.

    :meth:`get` blocks while the queue is empty but other workers are still
    processing (they may enqueue more work) and returns ``None`` once the
    queue is drained with nothing in flight, or after :meth:`close`.  Every
    request handed out by :meth:`get` must be acknowledged with
    :meth:`task_done`.
    """

    def __init__(self) -> None:
        self._items: deque[CrawlRequest] = deque()
        self._cond = threading.Condition()
        self._in_flight = 0
        self._closed = False

    def put(self, request: CrawlRequest) -> None:
        with self._cond:
            self._items.append(request)
            self._cond.notify()

    def get(self) -> Optional[CrawlRequest]:
        with self._cond:
            while not self._items and self._in_flight > 0 and not self._closed:
                self._cond.wait()
            if self._closed or not self._items:
                return None
            self._in_flight += 1
            return self._items.popleft()

    def task_done(self) -> None:
        with self._cond:
            self._in_flight -= 1
            self._cond.notify_all()

    def close(self) -> None:
        """Stop handing out work; waiting workers are released."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()
