"""reviewcrawl CLI — entry-point for all crawler operations.

Usage:
    python cli/main.py --help

Command groups:
    db       → database setup
    crawl    → run the review crawler
    reviews  → inspect and export stored reviews
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from reviewcrawl.xxx import
# ...` works when the CLI is invoked as `python cli/main.py` from any working
# directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from typing import List, Optional

import typer

from reviewcrawl.config import settings
from reviewcrawl.db import get_connection, init_db
from cli.commands.reviews import reviews_app

app = typer.Typer(
    name="reviewcrawl",
    help="OpenTable review crawler CLI.",
    no_args_is_help=True,
)
app.add_typer(reviews_app, name="reviews")

# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Database operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Initialise the SQLite database (create tables if they do not exist)."""
    conn = get_connection()
    init_db(conn)
    conn.close()
    typer.echo(f"[db init] Database ready at {settings.db_path}")


# ---------------------------------------------------------------------------
# Crawl
# ---------------------------------------------------------------------------
@app.command("crawl")
def crawl(
    url: Optional[List[str]] = typer.Option(
        None, "--url", help="Seed URL (repeatable). Restaurant pages are detected automatically."
    ),
    input_file: Optional[Path] = typer.Option(
        None, "--input", help="JSON input file with startUrls, results_wanted, etc."
    ),
    results_wanted: Optional[int] = typer.Option(
        None, "--results-wanted", min=1, help="Total number of reviews to extract."
    ),
    max_per_restaurant: Optional[int] = typer.Option(
        None, "--max-per-restaurant", min=1, help="Maximum reviews taken from one restaurant."
    ),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", min=1, help="Number of parallel browser workers."
    ),
    proxy: Optional[List[str]] = typer.Option(
        None, "--proxy", help="Proxy URL (repeatable; rotated across workers)."
    ),
    headful: bool = typer.Option(False, "--headful", help="Show the browser window."),
) -> None:
    """Crawl seed URLs and store restaurant reviews."""
    from reviewcrawl.crawl.runner import run_crawl
    from reviewcrawl.crawl.seeds import CrawlInput, load_input, load_seeds

    try:
        crawl_input = load_input(input_file) if input_file else CrawlInput()
        crawl_input.seeds.extend(load_seeds(url or []))
    except ValueError as exc:
        typer.echo(f"[crawl] {exc}")
        raise typer.Exit(1)

    if not crawl_input.seeds:
        typer.echo("[crawl] No seed URLs given. Use --url or --input.")
        raise typer.Exit(1)

    target = results_wanted or crawl_input.results_wanted
    cap = max_per_restaurant or crawl_input.max_reviews_per_restaurant
    proxies = list(proxy or []) or crawl_input.proxy_urls

    typer.echo(f"[crawl] Crawling {len(crawl_input.seeds)} seed URL(s) …")
    summary = run_crawl(
        crawl_input.seeds,
        results_wanted=target,
        max_per_restaurant=cap,
        max_concurrency=concurrency,
        proxy_urls=proxies,
        headless=False if headful else None,
    )

    typer.echo(f"[crawl] Reviews  : {summary.emitted}/{summary.target}")
    typer.echo(f"[crawl] Stored   : {summary.persisted}")
    typer.echo(
        f"[crawl] Pages    : {summary.requests_processed} processed, "
        f"{summary.requests_failed} failed, {summary.urls_seen} unique URL(s)"
    )
    typer.echo(
        f"[crawl] Restaurants: {summary.restaurants_done} done, "
        f"{summary.restaurants_aborted} without data"
    )


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
