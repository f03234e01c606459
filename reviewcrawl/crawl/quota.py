"""Process-wide record quota shared by every extraction unit."""

from __future__ import annotations

import threading


class QuotaCoordinator:
    """Counter of records emitted so far against a fixed target.

    The counter only grows.  :meth:`take` is a single check-and-increment under
    a lock, so concurrent workers can never push the count past ``target``.
    """

    def __init__(self, target: int) -> None:
        if target < 0:
            raise ValueError(f"Quota target must be non-negative, got {target}")
        self._target = target
        self._count = 0
        self._lock = threading.Lock()

    @property
    def target(self) -> int:
        return self._target

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    def remaining(self) -> int:
        """Return how many records may still be taken (never negative)."""
        with self._lock:
            return self._target - self._count

    def reached(self) -> bool:
        """Return ``True`` once the target has been met."""
        with self._lock:
            return self._count >= self._target

    def take(self, n: int) -> int:
        """Debit up to *n* records and return how many were accepted.

        ``accepted = min(n, target - count)``; a negative or zero *n* accepts
        nothing.  There is no rollback: accepted records stay counted even if
        the caller later fails to persist them.
        """
        if n <= 0:
            return 0
        with self._lock:
            accepted = min(n, self._target - self._count)
            if accepted <= 0:
                return 0
            self._count += accepted
            return accepted
