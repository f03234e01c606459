"""Review commands: inspect and export what the crawler stored."""

import csv
import json
import sys
from pathlib import Path

import typer

from reviewcrawl.crawl.models import EXPORT_FIELDS
from reviewcrawl.db import get_connection, init_db
from reviewcrawl.db.reviews import count_reviews, list_reviews, restaurant_stats

reviews_app = typer.Typer(help="Inspect and export stored reviews.", no_args_is_help=True)


@reviews_app.command("list")
def reviews_list(
    restaurant: str = typer.Option(None, "--restaurant", help="Only this restaurant id."),
    limit: int = typer.Option(20, "--limit", min=1, help="Maximum reviews to show."),
) -> None:
    """Show stored reviews, oldest first."""
    conn = get_connection()
    init_db(conn)
    try:
        records = list_reviews(conn, restaurant_id=restaurant, limit=limit)
        total = count_reviews(conn, restaurant_id=restaurant)
    finally:
        conn.close()

    if not records:
        typer.echo("[reviews list] No reviews stored.")
        return

    for r in records:
        snippet = (r.text or "").replace("\n", " ")[:60]
        typer.echo(f"  {r.review_id}  [{r.restaurant_name}]  {r.rating}★  {r.author or '?'}: {snippet}")
    typer.echo(f"[reviews list] Showing {len(records)} of {total} review(s).")


@reviews_app.command("stats")
def reviews_stats() -> None:
    """Show stored review counts per restaurant."""
    conn = get_connection()
    init_db(conn)
    try:
        rows = restaurant_stats(conn)
    finally:
        conn.close()

    if not rows:
        typer.echo("[reviews stats] No restaurants recorded.")
        return

    for row in rows:
        typer.echo(f"  {row['id']}  {row['name']!r}  {row['stored']}/{row['total_count']} stored")


@reviews_app.command("export")
def reviews_export(
    output: Path = typer.Option(None, "--output", "-o", help="Output file (stdout when omitted)."),
    fmt: str = typer.Option("jsonl", "--format", help="Output format: jsonl | csv."),
    restaurant: str = typer.Option(None, "--restaurant", help="Only this restaurant id."),
) -> None:
    """Export stored reviews using the dataset field names."""
    if fmt not in ("jsonl", "csv"):
        typer.echo(f"[reviews export] Unknown format {fmt!r}. Use: jsonl | csv")
        raise typer.Exit(1)

    conn = get_connection()
    init_db(conn)
    try:
        records = list_reviews(conn, restaurant_id=restaurant)
    finally:
        conn.close()

    stream = output.open("w", encoding="utf-8", newline="") if output else sys.stdout
    try:
        if fmt == "csv":
            writer = csv.DictWriter(stream, fieldnames=EXPORT_FIELDS)
            writer.writeheader()
            for r in records:
                writer.writerow(r.to_dict())
        else:
            for r in records:
                stream.write(json.dumps(r.to_dict(), ensure_ascii=False) + "\n")
    finally:
        if output:
            stream.close()

    if output:
        typer.echo(f"[reviews export] Wrote {len(records)} review(s) to {output}")
