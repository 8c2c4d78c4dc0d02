"""Command line for the extraction worker and the catalogue."""
from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from pathlib import Path
from typing import Optional

import click

from extracto.config import Settings, load_settings
from extracto.extractor import build_listing_extractor, build_product_extractor
from extracto.queue import PostgresJobQueue
from extracto.router import Router, is_real_estate_url, prepare_product_payload
from extracto.storage import (
    LISTINGS,
    PRODUCTS,
    SCRAPE_JOBS,
    JobResultStore,
    ListingStore,
    PostgresCollection,
    ProductStore,
    StoreUnavailableError,
)
from extracto.worker import Worker, WorkerConfig

LOGGER = logging.getLogger(__name__)

KINDS = click.Choice(["products", "listings"])


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stderr),
        ],
    )


def _build_router(dsn: str) -> Router:
    return Router(
        product_extractor=build_product_extractor(),
        listing_extractor=build_listing_extractor(),
        products=ProductStore(PostgresCollection(dsn, PRODUCTS)),
        listings=ListingStore(PostgresCollection(dsn, LISTINGS)),
        jobs=JobResultStore(PostgresCollection(dsn, SCRAPE_JOBS)),
    )


def _dump(data) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


@click.group()
@click.option("--env-file", type=click.Path(dir_okay=False), help="Read settings from this .env file")
@click.pass_context
def cli(ctx: click.Context, env_file: Optional[str]) -> None:
    """Turn scraped payloads into a versioned product and listing catalogue."""
    settings = load_settings(env_file)
    _configure_logging(settings.log_level)
    ctx.obj = settings


@cli.command("init-db")
@click.pass_obj
def init_db(settings: Settings) -> None:
    """Create collections, indexes and the queue table."""
    dsn = settings.require_database_url()
    router = _build_router(dsn)
    for store in (router.products, router.listings, router.jobs):
        store.ensure_indexes()
    PostgresJobQueue(dsn, settings.queue_table).ensure_table()
    click.echo("✅ Database initialised")


@cli.command()
@click.option("--worker-id", help="Worker ID (defaults to hostname-UUID)")
@click.option("--batch-size", type=int, help="Events claimed per poll")
@click.option("--poll-interval", type=float, help="Seconds between empty polls")
@click.option("--max-events", type=int, help="Stop after N events (for testing)")
@click.pass_obj
def run(
    settings: Settings,
    worker_id: Optional[str],
    batch_size: Optional[int],
    poll_interval: Optional[float],
    max_events: Optional[int],
) -> None:
    """Process finished crawl jobs from the queue."""
    if worker_id is None:
        hostname = os.getenv("HOSTNAME", "localhost")
        worker_id = f"{hostname}-{uuid.uuid4().hex[:8]}"

    dsn = settings.require_database_url()
    config = WorkerConfig(
        worker_id=worker_id,
        batch_size=batch_size or settings.batch_size,
        poll_interval=poll_interval if poll_interval is not None else settings.poll_interval,
        stats_interval=settings.stats_interval,
        max_events=max_events,
    )
    worker = Worker(config, PostgresJobQueue(dsn, settings.queue_table), _build_router(dsn))

    click.echo(f"🚀 Starting worker: {worker_id}")
    try:
        worker.run()
    except StoreUnavailableError as exc:
        click.echo(f"❌ Store unavailable: {exc}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--url", required=True, help="Source URL the payload was fetched from")
@click.option("--kind", type=KINDS, help="Force the pipeline (default: decided from the URL)")
@click.option("--job-id", help="Job ID recorded in each entity's provenance")
def extract(file: Path, url: str, kind: Optional[str], job_id: Optional[str]) -> None:
    """Extract entities from a saved payload and print them as JSON.

    JSON files are parsed first; anything else is passed on as HTML text.
    """
    text = file.read_text(encoding="utf-8")
    try:
        payload = json.loads(text)
    except ValueError:
        payload = text

    listing_extractor = build_listing_extractor()
    if kind is None:
        kind = "listings" if is_real_estate_url(url, listing_extractor) else "products"

    if kind == "listings":
        result = listing_extractor.extract(payload, url, job_id)
    else:
        result = build_product_extractor().extract(prepare_product_payload(payload), url, job_id)
    _dump(result.to_dict())


@cli.command()
@click.argument("kind", type=KINDS)
@click.argument("domain")
@click.argument("entity_id")
@click.pass_obj
def get(settings: Settings, kind: str, domain: str, entity_id: str) -> None:
    """Show one stored entity."""
    router = _build_router(settings.require_database_url())
    store = router.products if kind == "products" else router.listings
    entity = store.get_one(domain, entity_id)
    if entity is None:
        click.echo(f"❌ {kind} {domain}:{entity_id} not found", err=True)
        sys.exit(1)
    _dump(entity.model_dump(mode="json"))


@cli.command()
@click.argument("kind", type=KINDS)
@click.option("--domain")
@click.option("--brand", help="Products only")
@click.option("--listing-type", help="Listings only")
@click.option("--property-type", help="Listings only")
@click.option("--district", help="Listings only")
@click.option("--city", help="Listings only")
@click.option("--min-bedrooms", type=int, help="Listings only")
@click.option("--min-price", type=float)
@click.option("--max-price", type=float)
@click.option("--text", help="Free-text match")
@click.option("--limit", default=50, type=int)
@click.option("--skip", default=0, type=int)
@click.pass_obj
def search(settings: Settings, kind: str, **filters) -> None:
    """Search stored entities, most recently seen first."""
    router = _build_router(settings.require_database_url())
    if kind == "products":
        results = router.products.search(
            domain=filters["domain"],
            brand=filters["brand"],
            min_price=filters["min_price"],
            max_price=filters["max_price"],
            text=filters["text"],
            limit=filters["limit"],
            skip=filters["skip"],
        )
    else:
        results = router.listings.search(
            domain=filters["domain"],
            listing_type=filters["listing_type"],
            property_type=filters["property_type"],
            district=filters["district"],
            city=filters["city"],
            min_price=filters["min_price"],
            max_price=filters["max_price"],
            min_bedrooms=filters["min_bedrooms"],
            text=filters["text"],
            limit=filters["limit"],
            skip=filters["skip"],
        )
    _dump([entity.model_dump(mode="json", exclude={"raw_data"}) for entity in results])


@cli.command()
@click.pass_obj
def stats(settings: Settings) -> None:
    """Show queue, job, product and listing statistics."""
    dsn = settings.require_database_url()
    router = _build_router(dsn)
    _dump(
        {
            "queue": PostgresJobQueue(dsn, settings.queue_table).stats(),
            "jobs": router.jobs.stats(),
            "products": router.products.stats(),
            "listings": router.listings.stats(),
        }
    )


@cli.command()
@click.option("--days", default=7, type=int, help="Remove jobs processed more than N days ago")
@click.confirmation_option(prompt="Are you sure you want to purge processed jobs?")
@click.pass_obj
def purge(settings: Settings, days: int) -> None:
    """Remove old processed jobs from the queue table."""
    queue = PostgresJobQueue(settings.require_database_url(), settings.queue_table)
    count = queue.purge_processed(days)
    click.echo(f"✅ Purged {count} processed job(s)")


if __name__ == "__main__":
    cli()
