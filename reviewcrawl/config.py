"""Centralised settings for the review crawler.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).

Per-run input (target count, per-restaurant cap, proxy) supplied on the
command line or in an input file is passed to the crawl runner explicitly and
never written back into ``settings``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (one level up from this package)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("REVIEWCRAWL_WORKSPACE", Path.home() / ".reviewcrawl_data")
        )
    )

    @property
    def db_path(self) -> Path:
        """Absolute path to the SQLite database file."""
        return self.workspace_dir / "reviews.db"

    @property
    def schema_path(self) -> Path:
        """Absolute path to the schema SQL file bundled with the package."""
        return Path(__file__).resolve().parent / "db" / "schema.sql"

    # ------------------------------------------------------------------
    # Quota
    # ------------------------------------------------------------------
    results_wanted: int = field(
        default_factory=lambda: int(os.environ.get("RESULTS_WANTED", "20"))
    )
    max_reviews_per_restaurant: int = field(
        default_factory=lambda: int(os.environ.get("MAX_REVIEWS_PER_RESTAURANT", "100"))
    )

    # ------------------------------------------------------------------
    # Dispatcher
    # ------------------------------------------------------------------
    max_concurrency: int = field(
        default_factory=lambda: int(os.environ.get("MAX_CONCURRENCY", "1"))
    )
    max_request_retries: int = field(
        default_factory=lambda: int(os.environ.get("MAX_REQUEST_RETRIES", "3"))
    )
    retry_base_delay: float = field(
        default_factory=lambda: float(os.environ.get("RETRY_BASE_DELAY", "2.0"))
    )

    # ------------------------------------------------------------------
    # Browser
    # ------------------------------------------------------------------
    headless: bool = field(default_factory=lambda: _env_bool("HEADLESS", "true"))
    proxy_url: str = field(
        default_factory=lambda: os.environ.get("PROXY_URL", "")
    )
    navigation_timeout: float = field(
        default_factory=lambda: float(os.environ.get("NAVIGATION_TIMEOUT", "30.0"))
    )
    initial_state_timeout: float = field(
        default_factory=lambda: float(os.environ.get("INITIAL_STATE_TIMEOUT", "15.0"))
    )
    scroll_settle_delay: float = field(
        default_factory=lambda: float(os.environ.get("SCROLL_SETTLE_DELAY", "1.0"))
    )

    # ------------------------------------------------------------------
    # Reviews API
    # ------------------------------------------------------------------
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "30.0"))
    )
    review_page_size: int = field(
        default_factory=lambda: int(os.environ.get("REVIEW_PAGE_SIZE", "10"))
    )
    page_delay_base: float = field(
        default_factory=lambda: float(os.environ.get("PAGE_DELAY_BASE", "0.5"))
    )
    page_delay_jitter: float = field(
        default_factory=lambda: float(os.environ.get("PAGE_DELAY_JITTER", "1.0"))
    )

    def ensure_workspace(self) -> None:
        """Create the workspace directory if it does not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)


# Module-level singleton, import this everywhere:
#   from reviewcrawl.config import settings
settings = Settings()
