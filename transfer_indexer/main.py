"""Command line runner: index a JSON-lines file of transfer events."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from transfer_indexer.config import IndexerSettings, get_settings
from transfer_indexer.core.logging import setup_logging
from transfer_indexer.core.telemetry import setup_telemetry
from transfer_indexer.db.init import init_database
from transfer_indexer.db.session import build_engine, build_session_factory
from transfer_indexer.ingest.feed import JsonLinesFeed
from transfer_indexer.providers.price_feed import PriceFeedClient
from transfer_indexer.services.coordinator import BatchCoordinator
from transfer_indexer.services.price_cache import PriceCache
from transfer_indexer.services.price_resolver import build_price_resolver
from transfer_indexer.services.processor import TransferProcessor
from transfer_indexer.services.store import TransferStore

logger = logging.getLogger("transfer_indexer")


async def _run(events_path: Path, settings: IndexerSettings, *, init_db: bool) -> None:
    engine = build_engine(settings.database_url)
    telemetry = setup_telemetry(settings, engine=engine)
    client = PriceFeedClient(
        point_base_url=settings.price_point_base_url,
        range_base_url=settings.price_range_base_url,
        currency=settings.price_currency,
        timeout_seconds=settings.price_request_timeout_seconds,
    )
    try:
        if init_db:
            await init_database(engine)
        resolver = build_price_resolver(settings, client, PriceCache())
        coordinator = BatchCoordinator(
            TransferStore(build_session_factory(engine)),
            TransferProcessor(resolver),
        )
        results = await coordinator.run(JsonLinesFeed(events_path, settings.batch_size))
        transfers = sum(r.transfers for r in results)
        priced = sum(r.priced_transfers for r in results)
        print(f"Indexed {transfers} transfers in {len(results)} batches ({priced} priced)")
    finally:
        await client.aclose()
        await engine.dispose()
        telemetry.shutdown()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Index transfer events into account balances")
    parser.add_argument("events", type=Path, help="JSON-lines file with one transfer event per line")
    parser.add_argument("--strategy", choices=["point", "bulk"], help="Override the price fetch strategy")
    parser.add_argument("--batch-size", type=int, help="Override the number of events per cycle")
    parser.add_argument("--init-db", action="store_true", help="Create tables before indexing")
    args = parser.parse_args(argv)

    overrides: dict[str, object] = {}
    if args.strategy:
        overrides["price_strategy"] = args.strategy
    if args.batch_size:
        overrides["batch_size"] = args.batch_size
    settings = get_settings(**overrides)

    setup_logging(settings.log_level)
    logger.info("Starting indexer with settings %s", settings.dict_for_logging())
    asyncio.run(_run(args.events, settings, init_db=args.init_db))


if __name__ == "__main__":
    main()
