"""Bounded single-domain crawl traversal.

A ``CrawlSession`` walks a site depth-first from its root, one page at a
time. Each visited URL becomes a ``CrawledPage`` row; pages that score
above the priority threshold are analyzed and indexed into the vector
store. Page-level failures are recorded and never stop the traversal.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Set

from config.settings import CrawlerConfig
from observability.logging import get_structured_logger
from observability.metrics import record_page
from services.shared.models import PageStatus, utcnow
from .analyzer import ContentAnalysis
from .fetcher import PageData, PageFetchError
from .priority import score_page
from .urls import canonical_url

logger = logging.getLogger(__name__)


class CrawlCancelled(Exception):
    """Raised inside a crawl once its cancellation token is set."""
    pass


class CancellationToken:
    """Cooperative cancellation flag shared between a job and its runner."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by request") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CrawlCancelled(self.reason or "cancelled")

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancelled first."""
        if seconds <= 0:
            self.raise_if_cancelled()
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()


@dataclass
class CrawlStats:
    """Counters for one crawl run."""
    discovered: int = 0
    processed: int = 0
    analyzed: int = 0
    failed: int = 0
    indexed_parts: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def __post_init__(self):
        if self.start_time is None:
            self.start_time = datetime.now(timezone.utc)

    @property
    def duration(self) -> Optional[timedelta]:
        if self.end_time and self.start_time:
            return self.end_time - self.start_time
        return None

    def finish(self):
        self.end_time = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            'discovered': self.discovered,
            'processed': self.processed,
            'analyzed': self.analyzed,
            'failed': self.failed,
            'indexed_parts': self.indexed_parts,
            'duration_seconds': self.duration.total_seconds() if self.duration else None,
        }


@dataclass
class CrawlSession:
    """Traversal state for a single run of a crawl job.

    Args:
        job: The ``CrawlJob`` being run; its ``max_pages`` bounds discovery
        storage: ``CrawlStorage`` for page rows and job counters
        fetcher: Object with an async ``fetch(url, root_url, timeout)``
        analyzer: Object with an async ``analyze(text)``
        indexer: Optional ``VectorIndexer`` for analyzed pages
        config: Depth, delay and threshold settings
        cancel_token: Checked before every visit and fetch
    """
    job: object
    storage: object
    fetcher: object
    analyzer: object
    indexer: Optional[object] = None
    config: CrawlerConfig = field(default_factory=CrawlerConfig)
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    discovered: Set[str] = field(default_factory=set)
    processed: Set[str] = field(default_factory=set)
    analyzed: Set[str] = field(default_factory=set)
    stats: CrawlStats = field(default_factory=CrawlStats)

    def __post_init__(self):
        self.log = get_structured_logger(__name__, job_id=self.job.id)

    @property
    def max_pages(self) -> int:
        return self.job.max_pages or self.config.max_pages

    @property
    def root_url(self) -> str:
        return canonical_url(self.job.root_url)

    def bound_reached(self) -> bool:
        return len(self.discovered) >= self.max_pages

    async def run(self) -> CrawlStats:
        """Crawl from the job's root at depth 1."""
        self.log.info(f"Starting crawl of {self.root_url}", max_pages=self.max_pages,
                      max_depth=self.config.max_depth)
        await self.crawl_page(self.root_url, 1)
        self.stats.finish()
        self.log.info(
            f"Crawl finished: {len(self.discovered)} discovered, "
            f"{len(self.processed)} processed, {len(self.analyzed)} analyzed"
        )
        return self.stats

    async def crawl_page(self, url: str, depth: int) -> None:
        """Visit ``url`` at ``depth`` and recurse into its same-domain links."""
        self.cancel_token.raise_if_cancelled()
        if depth > self.config.max_depth or self.bound_reached():
            return

        self.cancel_token.raise_if_cancelled()
        logger.info(f"Crawling page: {url} (depth: {depth})")
        try:
            page_data = await self.fetcher.fetch(url, self.root_url, self.config.timeout)
        except (PageFetchError, asyncio.TimeoutError) as e:
            logger.warning(f"Failed to crawl page {url}: {e}")
            self._record_failed_page(url, depth)
            return

        priority = score_page(page_data, depth, self.config.article_keywords)
        page = self.storage.create_page(
            job_id=self.job.id,
            user_id=self.job.user_id,
            profile_id=self.job.profile_id,
            url=url,
            title=page_data.title,
            description=page_data.description,
            content=page_data.text,
            status=PageStatus.DISCOVERED,
            priority=priority,
            depth=depth,
        )
        self.discovered.add(url)
        self.stats.discovered = len(self.discovered)
        record_page(PageStatus.DISCOVERED)
        self._update_counters(pages_discovered=len(self.discovered))

        if priority > self.config.priority_threshold and len(self.analyzed) < self.max_pages:
            if await self._analyze_page(page, page_data):
                self.analyzed.add(url)
                self.stats.analyzed = len(self.analyzed)
                self._update_counters(pages_analyzed=len(self.analyzed))

        self.processed.add(url)
        self.stats.processed = len(self.processed)
        self._update_counters(pages_processed=len(self.processed))

        if self.bound_reached():
            return

        for link in page_data.links:
            if self.bound_reached():
                break
            link = canonical_url(link)
            if link in self.discovered:
                continue
            await self.cancel_token.sleep(self.config.delay)
            await self.crawl_page(link, depth + 1)

    async def _analyze_page(self, page, page_data: PageData) -> bool:
        content = "\n\n".join(part for part in (page_data.title, page_data.description, page_data.text) if part)
        if len(content) < self.config.min_analysis_chars:
            logger.info(f"Skipping analysis for {page.url} - insufficient content")
            return False

        logger.info(f"Analyzing page: {page.url}")
        try:
            analysis = await self.analyzer.analyze(content)
        except Exception as e:
            logger.error(f"Failed to analyze page {page.url}: {e}")
            analysis = ContentAnalysis.failed()

        page = self.storage.update_page(
            page.id,
            analysis=analysis.to_dict(),
            status=PageStatus.ANALYZED,
            processed_at=utcnow(),
        )
        record_page(PageStatus.ANALYZED)

        if self.indexer is not None:
            await self._index_page(page, analysis)
        return True

    async def _index_page(self, page, analysis: ContentAnalysis) -> None:
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(
                None, functools.partial(self.indexer.index_crawled_page, page, analysis)
            )
        except Exception as e:
            self.log.exception(f"Failed to index page {page.url}: {e}", page_id=page.id)
            return

        self.stats.indexed_parts += result.written
        if result.failed:
            logger.warning(f"Indexed {result.written}/{result.total_parts} parts for {page.url}: {result.errors}")

    def _record_failed_page(self, url: str, depth: int) -> None:
        self.storage.create_page(
            job_id=self.job.id,
            user_id=self.job.user_id,
            profile_id=self.job.profile_id,
            url=url,
            status=PageStatus.FAILED,
            priority=0,
            depth=depth,
        )
        record_page(PageStatus.FAILED)
        self.discovered.add(url)
        self.processed.add(url)
        self.stats.failed += 1
        self.stats.discovered = len(self.discovered)
        self.stats.processed = len(self.processed)
        self._update_counters(pages_discovered=len(self.discovered), pages_processed=len(self.processed))

    def _update_counters(self, **counters) -> None:
        self.storage.update_job(self.job.id, **counters)
