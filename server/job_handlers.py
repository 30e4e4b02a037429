"""Crawl job execution."""

import logging
from typing import Any, Dict, Optional

from config.settings import CrawlerConfig
from observability.metrics import record_job_finished
from pipelines.crawler import CancellationToken, CrawlCancelled, CrawlSession
from services.shared.models import JobStatus, utcnow

logger = logging.getLogger(__name__)


async def run_crawl_job(
    job_id: int,
    storage,
    fetcher,
    analyzer,
    indexer=None,
    config: Optional[CrawlerConfig] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> Dict[str, Any]:
    """
    Run a pending crawl job to completion.

    Args:
        job_id: Id of a job created by ``CrawlJobManager.create_crawl_job``
        storage: ``CrawlStorage`` holding the job
        fetcher: Page fetcher (already started or lazily starting)
        analyzer: Content analyzer
        indexer: Optional vector indexer for analyzed pages
        config: Crawl bounds; the job's ``max_pages`` takes precedence
        cancel_token: Token checked throughout the traversal

    Returns:
        Dict with final counters

    Raises:
        Any exception escaping the traversal, after the job is marked failed
    """
    config = config or CrawlerConfig()
    cancel_token = cancel_token or CancellationToken()

    job = storage.update_job(job_id, status=JobStatus.PROCESSING, started_at=utcnow())
    logger.info(f"Starting crawl job {job_id} for {job.root_url}")

    session = CrawlSession(
        job=job,
        storage=storage,
        fetcher=fetcher,
        analyzer=analyzer,
        indexer=indexer,
        config=config,
        cancel_token=cancel_token,
    )

    try:
        stats = await session.run()
    except CrawlCancelled as e:
        storage.update_job(
            job_id,
            status=JobStatus.CANCELLED,
            completed_at=utcnow(),
            error_message=str(e) or "cancelled",
            **_final_counters(session),
        )
        record_job_finished(JobStatus.CANCELLED)
        logger.info(f"Crawl job {job_id} cancelled: {e}")
        return {"job_id": job_id, "status": JobStatus.CANCELLED, **session.stats.to_dict()}
    except Exception as e:
        logger.error(f"Crawl job {job_id} failed: {e}")
        storage.update_job(
            job_id,
            status=JobStatus.FAILED,
            completed_at=utcnow(),
            error_message=str(e) or type(e).__name__,
            **_final_counters(session),
        )
        record_job_finished(JobStatus.FAILED)
        raise

    storage.update_job(
        job_id,
        status=JobStatus.COMPLETED,
        completed_at=utcnow(),
        **_final_counters(session),
    )
    record_job_finished(JobStatus.COMPLETED)
    logger.info(
        f"Crawl job {job_id} completed: {stats.discovered} discovered, "
        f"{stats.processed} processed, {stats.analyzed} analyzed"
    )
    return {"job_id": job_id, "status": JobStatus.COMPLETED, **stats.to_dict()}


def _final_counters(session: CrawlSession) -> Dict[str, int]:
    return {
        "pages_discovered": len(session.discovered),
        "pages_processed": len(session.processed),
        "pages_analyzed": len(session.analyzed),
    }
