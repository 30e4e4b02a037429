#!/usr/bin/env python3
"""Run a single crawl job in the foreground.

Example:
    python scripts/run_crawl.py https://example.com/blog --user-id 1 --max-pages 20
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import get_settings
from indexer.chroma_store import ChromaVectorStore
from observability.logging import setup_logging
from pipelines.analyzer import ContentAnalyzer
from pipelines.fetcher import PageFetcher
from pipelines.indexer import VectorIndexer
from pipelines.ledger import DedupLedger
from server.jobs import CrawlJobManager
from services.shared.storage import CrawlStorage

logger = logging.getLogger(__name__)


async def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Crawl a root URL and index analyzed pages")
    parser.add_argument("root_url", help="Root URL to crawl")
    parser.add_argument("--user-id", type=int, required=True, help="Owning user id")
    parser.add_argument("--profile-id", type=int, default=0, help="Context profile id")
    parser.add_argument("--max-pages", type=int, help="Maximum pages to discover")
    parser.add_argument("--max-depth", type=int, help="Maximum traversal depth")
    parser.add_argument("--delay", type=float, help="Delay between page visits in seconds")
    parser.add_argument("--no-index", action="store_true", help="Skip vector indexing")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")

    args = parser.parse_args(argv)
    settings = get_settings()
    setup_logging(level=settings.logging.level, use_json=settings.logging.use_json,
                  log_file=settings.logging.log_file)

    overrides = {k: v for k, v in (("max_depth", args.max_depth), ("delay", args.delay)) if v is not None}
    crawler_config = settings.crawler.model_copy(update=overrides)

    storage = CrawlStorage(settings.database)
    storage.create_tables()

    indexer = None
    if not args.no_index:
        store = ChromaVectorStore(settings.vector_store)
        if not store.heartbeat():
            logger.error("Vector store is unreachable; pass --no-index to crawl without indexing")
            return 1
        ledger = DedupLedger(store, list_cap=settings.vector_store.list_cap)
        ledger.load()
        indexer = VectorIndexer(store, ledger=ledger, config=settings.vector_store)

    async with PageFetcher(crawler_config, headless=not args.headed) as fetcher:
        manager = CrawlJobManager(
            storage,
            fetcher=fetcher,
            analyzer=ContentAnalyzer(settings.analyzer),
            indexer=indexer,
            config=crawler_config,
        )
        try:
            job_id = manager.create_crawl_job(args.root_url, args.user_id, args.profile_id, args.max_pages)
        except ValueError as e:
            logger.error(f"Invalid root URL: {e}")
            return 1

        try:
            await manager.run(job_id)
        except Exception as e:
            logger.error(f"Crawl failed: {e}")

    job = manager.get_job_status(job_id)
    print(f"Job {job.id} {job.status}: discovered={job.pages_discovered} "
          f"processed={job.pages_processed} analyzed={job.pages_analyzed}")
    if job.error_message:
        print(f"Error: {job.error_message}")
    return 0 if job.status == "completed" else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
