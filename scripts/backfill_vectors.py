#!/usr/bin/env python3
"""Backfill analyzed crawler pages into the vector store.

Loads the dedup ledger from the store, walks analyzed pages in the
relational database and indexes every page the ledger does not know yet.
Re-running is safe: already indexed pages are skipped.
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import DatabaseConfig, get_settings
from indexer.chroma_store import ChromaVectorStore
from observability.logging import setup_logging
from pipelines.analyzer import ContentAnalysis
from pipelines.indexer import VectorIndexer
from pipelines.ledger import CRAWLER_PAGE, DedupLedger
from services.shared.models import PageStatus
from services.shared.storage import CrawlStorage

logger = logging.getLogger(__name__)


@dataclass
class BackfillStats:
    migrated: int = 0
    skipped: int = 0
    failed: int = 0
    parts: int = 0

    def summary(self) -> str:
        return (f"migrated={self.migrated} skipped={self.skipped} "
                f"failed={self.failed} parts={self.parts}")


def backfill_crawler_pages(storage: CrawlStorage, indexer: VectorIndexer,
                           user_id: Optional[int] = None, limit: Optional[int] = None,
                           dry_run: bool = False) -> BackfillStats:
    """Index analyzed pages missing from the ledger."""
    stats = BackfillStats()
    pages = storage.get_pages_by_owner(user_id=user_id, status=PageStatus.ANALYZED, limit=limit)
    logger.info(f"Found {len(pages)} analyzed crawler pages")

    for page in pages:
        key = CRAWLER_PAGE.key_for(page.id)
        if indexer.ledger.contains(key):
            stats.skipped += 1
            continue

        if dry_run:
            logger.info(f"Would index {key} ({page.url})")
            stats.migrated += 1
            continue

        analysis = ContentAnalysis.from_dict(page.analysis or {})
        result = indexer.index_crawled_page(page, analysis)
        if result.written:
            stats.migrated += 1
            stats.parts += result.written
        elif result.skipped:
            stats.skipped += 1
        else:
            stats.failed += 1
            logger.error(f"Failed to index {key} ({page.url}): {result.errors}")

    return stats


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Index analyzed crawler pages into the vector store")
    parser.add_argument("--database-url", help="SQLAlchemy URL (defaults to DATABASE_URL)")
    parser.add_argument("--user-id", type=int, help="Only backfill pages owned by this user")
    parser.add_argument("--limit", type=int, help="Maximum number of pages to examine")
    parser.add_argument("--dry-run", action="store_true", help="Report what would be indexed without writing")
    parser.add_argument("--log-level", default=None, help="Logging level")

    args = parser.parse_args(argv)
    settings = get_settings()
    setup_logging(level=args.log_level or settings.logging.level, use_json=settings.logging.use_json)

    db_config = DatabaseConfig(url=args.database_url) if args.database_url else settings.database
    storage = CrawlStorage(db_config)
    store = ChromaVectorStore(settings.vector_store)
    if not store.heartbeat():
        logger.error("Vector store is unreachable")
        return 1
    ledger = DedupLedger(store, list_cap=settings.vector_store.list_cap)

    try:
        counts = ledger.load()
        logger.info(f"Ledger loaded: {counts}")
        indexer = VectorIndexer(store, ledger=ledger, config=settings.vector_store)
        stats = backfill_crawler_pages(storage, indexer, user_id=args.user_id,
                                       limit=args.limit, dry_run=args.dry_run)
    except Exception as e:
        logger.error(f"Backfill failed: {e}")
        return 1

    print(f"Backfill complete: {stats.summary()}")
    return 0 if stats.failed == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
