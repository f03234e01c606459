"""Output sink interface used by the extraction state machine."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from reviewcrawl.crawl.models import RestaurantContext, ReviewRecord


class ReviewSink(ABC):
    """Append-only store for review batches.

    Implementations must not retry; failures propagate to the caller, which
    logs them and carries on.
    """

    @abstractmethod
    def commit(self, restaurant_id: str, records: Sequence[ReviewRecord]) -> int:
        """Append an ordered batch for *restaurant_id*; return the number stored."""

    def record_restaurant(self, ctx: RestaurantContext) -> None:
        """Remember restaurant identity.  Optional; the default is a no-op."""
