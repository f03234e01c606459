"""Dataclass models shared by the crawl engine.

These are plain Python objects.  The DB layer serialises / deserialises
``ReviewRecord`` to and from SQLite rows; ``to_dict`` produces the export
shape (camelCase keys, matching the dataset field names).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


def _mapping(value: Any) -> dict[str, Any]:
    # Nested objects of a malformed entry read as empty.
    return value if isinstance(value, dict) else {}


class Label(str, Enum):
    LISTING = "LISTING"
    DETAIL = "DETAIL"


@dataclass(frozen=True)
class CrawlRequest:
    url: str
    label: Label


@dataclass
class RestaurantContext:
    """Identity of one restaurant, read from a detail page's embedded state."""

    restaurant_id: str
    name: str
    url: str
    csrf_token: str = ""
    total_count: int = 0
    initial_reviews: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class ReviewRecord:
    review_id: str
    restaurant_id: str
    restaurant_name: str
    restaurant_url: str
    rating: Optional[float] = None
    text: Optional[str] = None
    author: Optional[str] = None
    date: Optional[str] = None
    visit_date: Optional[str] = None
    submitted_date: Optional[str] = None
    food_rating: Optional[float] = None
    service_rating: Optional[float] = None
    ambience_rating: Optional[float] = None
    value_rating: Optional[float] = None
    noise_level: Optional[str] = None
    helpful_count: Optional[int] = None

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------
    @classmethod
    def from_entry(cls, entry: dict[str, Any], ctx: RestaurantContext) -> Optional["ReviewRecord"]:
        """Normalise one review entry (embedded or API) into a record.

        Returns ``None`` when the entry carries no ``reviewId``; such entries
        cannot be deduplicated and are skipped by the caller.  Nested
        ``rating``/``user``/``helpfulness`` values that are not objects leave
        their fields unset.
        """
        review_id = entry.get("reviewId")
        if review_id in (None, ""):
            return None

        rating = _mapping(entry.get("rating"))
        user = _mapping(entry.get("user"))
        helpfulness = _mapping(entry.get("helpfulness"))
        dined = entry.get("dinedDateTime")
        submitted = entry.get("submittedDateTime")

        return cls(
            review_id=str(review_id),
            restaurant_id=ctx.restaurant_id,
            restaurant_name=ctx.name,
            restaurant_url=ctx.url,
            rating=rating.get("overall"),
            text=entry.get("text"),
            author=user.get("nickname"),
            date=dined or submitted,
            visit_date=dined,
            submitted_date=submitted,
            food_rating=rating.get("food"),
            service_rating=rating.get("service"),
            ambience_rating=rating.get("ambience"),
            value_rating=rating.get("value"),
            noise_level=rating.get("noise"),
            helpful_count=helpfulness.get("score"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the record keyed by its exported (camelCase) field names."""
        return {
            "reviewId": self.review_id,
            "restaurantName": self.restaurant_name,
            "restaurantId": self.restaurant_id,
            "restaurantUrl": self.restaurant_url,
            "rating": self.rating,
            "text": self.text,
            "author": self.author,
            "date": self.date,
            "visitDate": self.visit_date,
            "submittedDate": self.submitted_date,
            "foodRating": self.food_rating,
            "serviceRating": self.service_rating,
            "ambienceRating": self.ambience_rating,
            "valueRating": self.value_rating,
            "noiseLevel": self.noise_level,
            "helpfulCount": self.helpful_count,
        }


EXPORT_FIELDS: list[str] = list(
    ReviewRecord(review_id="", restaurant_id="", restaurant_name="", restaurant_url="").to_dict()
)
