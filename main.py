from __future__ import annotations

import argparse
import contextlib
import json
import logging
import signal
import sys
import threading
from dataclasses import asdict
from typing import List, Optional, TypeVar

from search_indexer.config import IndexerConfig, load_config
from search_indexer.engine import ImprovementEngine
from search_indexer.factory import ImprovementFactory
from search_indexer.fetcher import Fetcher
from search_indexer.importer import import_local_data
from search_indexer.improvements import SORT_NEWEST, SORT_OLDEST, Improvements, run_sweeps
from search_indexer.metrics import ImprovementMetrics, JsonLogListener, ProgressListener
from search_indexer.models import RunSummary
from search_indexer.scraper import WebScraper
from search_indexer.storage import DataStore, DataStoreError, MemoryStore, MongoStore
from search_indexer.suggestions import DuckDuckGoProvider
from search_indexer.targets import load_scraping_targets

logger = logging.getLogger("search_indexer.cli")

T = TypeVar("T")


def _configure_logging(level: str, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _open_store(config: IndexerConfig, dry_run: bool) -> DataStore:
    if dry_run:
        logger.info("Dry run: writing to an in-memory store")
        return MemoryStore()
    logger.info("Connecting to MongoDB (%s)...", config.database)
    store = MongoStore(config.mongo_uri, config.database)
    try:
        store.ensure_indexes()
    except DataStoreError:
        store.close()
        raise
    return store


def _override(flag: Optional[T], default: T) -> T:
    return default if flag is None else flag


def run_improve(args: argparse.Namespace, config: IndexerConfig) -> List[RunSummary]:
    store = _open_store(config, args.dry_run)
    metrics = ImprovementMetrics()
    with contextlib.ExitStack() as cleanup:
        cleanup.callback(store.close)
        fetcher = Fetcher(
            timeout=_override(args.timeout, config.fetch_timeout),
            max_retries=config.fetch_retries,
            max_bytes=config.fetch_max_bytes,
            impersonate=args.impersonate or config.impersonate,
        )
        targets = load_scraping_targets()
        engine = ImprovementEngine(
            concurrency=_override(args.concurrency, config.engine_concurrency),
            group_size=_override(args.group_size, config.engine_group_size),
            listeners=[JsonLogListener(args.engine), metrics],
        )
        if args.progress:
            engine.add_listener(ProgressListener(args.engine))

        cancel_event = threading.Event()
        previous_handler = signal.signal(signal.SIGINT, lambda *_: cancel_event.set())
        cleanup.callback(signal.signal, signal.SIGINT, previous_handler)

        scraper = WebScraper(fetcher, max_concurrency=_override(args.scraper_concurrency, config.scraper_concurrency))
        cleanup.callback(scraper.close)
        improvements = Improvements(store, scraper, provider=DuckDuckGoProvider(), targets=targets)
        cleanup.callback(improvements.close)
        factory = ImprovementFactory(improvements, targets)

        def build(direction: int):
            return factory.create_job(
                args.engine,
                args.method,
                batch_size=args.batch_size,
                sort_direction=direction,
                include_same_domain=args.include_same_domain,
            )

        try:
            if args.sweep == "both" and factory.is_sweepable(args.engine, args.method):
                return run_sweeps(engine, build, cancel_event)
            direction = SORT_OLDEST if args.sweep == "oldest" else SORT_NEWEST
            return [build(direction).run(engine, cancel_event)]
        finally:
            for entry in metrics.export_json():
                logger.debug("metrics %s", json.dumps(entry, ensure_ascii=False))


def run_import(args: argparse.Namespace, config: IndexerConfig) -> None:
    store = _open_store(config, args.dry_run)
    try:
        inserted = import_local_data(store, args.data_dir or config.data_dir, progress=not args.no_progress)
    finally:
        store.close()
    logger.info("Documents imported into the database: %s", json.dumps(inserted))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Incremental search-index builder")
    parser.add_argument("--env-file", default=".env", help="Path to a .env file with settings")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--dry-run", action="store_true", help="Use an in-memory store instead of MongoDB")
    sub = parser.add_subparsers(dest="command", required=True)

    improve = sub.add_parser("improve", help="Run one improvement method")
    improve.add_argument("engine", choices=sorted({e for e, _ in ImprovementFactory.available()}))
    improve.add_argument("method", help="Improvement method, e.g. hyperlinkBased or contentBased")
    improve.add_argument("--batch-size", type=int, default=None, help="Seeds per batch")
    improve.add_argument("--sweep", choices=("newest", "oldest", "both"), default="newest",
                         help="Seed order by creation time; 'both' runs two sweeps side by side")
    improve.add_argument("--include-same-domain", action="store_true", help="Follow links within the same host")
    improve.add_argument("--concurrency", type=int, default=None, help="Concurrent batch tasks")
    improve.add_argument("--group-size", type=int, default=None, help="Batches submitted per window")
    improve.add_argument("--scraper-concurrency", type=int, default=None, help="Concurrent HTTP fetches")
    improve.add_argument("--timeout", type=float, default=None, help="Per-request timeout in seconds")
    improve.add_argument("--impersonate", default=None, help="curl_cffi browser profile, e.g. chrome120")
    improve.add_argument("--progress", action="store_true", help="Show a progress bar")

    imp = sub.add_parser("import-local", help="Import the bundled website and suggestion dumps")
    imp.add_argument("--data-dir", default=None, help="Directory holding opensearch@*.json or the zip archive")
    imp.add_argument("--no-progress", action="store_true", help="Hide progress bars")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.env_file)
    _configure_logging(config.log_level, args.verbose)

    try:
        if args.command == "improve":
            summaries = run_improve(args, config)
            for summary in summaries:
                print(json.dumps(asdict(summary), ensure_ascii=False))
        elif args.command == "import-local":
            run_import(args, config)
    except DataStoreError as exc:
        logger.error("Data store unavailable: %s", exc)
        return 1
    except (ValueError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
