"""Background crawl job management.

Jobs are persisted through ``CrawlStorage`` and dispatched onto the event
loop with an APScheduler ``AsyncIOScheduler`` one-shot date trigger.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config.settings import CrawlerConfig
from pipelines.crawler import CancellationToken
from pipelines.urls import validate_root_url
from services.shared.models import CrawledPage, CrawlJob, JobStatus, utcnow
from services.shared.storage import CrawlStorage
from .job_handlers import run_crawl_job

logger = logging.getLogger(__name__)


class CrawlJobManager:
    """Creates crawl jobs and runs them in the background."""

    def __init__(self, storage: CrawlStorage, fetcher, analyzer, indexer=None,
                 config: Optional[CrawlerConfig] = None, start_delay: float = 0.0):
        self.storage = storage
        self.fetcher = fetcher
        self.analyzer = analyzer
        self.indexer = indexer
        self.config = config or CrawlerConfig()
        self.start_delay = start_delay
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._tokens: Dict[int, CancellationToken] = {}
        self._running = False

    async def initialize(self):
        """Start the scheduler on the running event loop."""
        if self._running:
            return
        self.scheduler = AsyncIOScheduler(
            executors={'default': AsyncIOExecutor()},
            job_defaults={'coalesce': False, 'max_instances': 1, 'misfire_grace_time': None},
        )
        self.scheduler.add_listener(self._job_executed, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(self._job_error, EVENT_JOB_ERROR)
        self.scheduler.start()
        self._running = True
        logger.info("Crawl job scheduler started")

    async def shutdown(self):
        """Cancel running crawls and stop the scheduler."""
        for token in self._tokens.values():
            token.cancel("shutdown")
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Crawl job manager shutdown complete")

    def create_crawl_job(self, root_url: str, user_id: int, profile_id: int = 0,
                         max_pages: Optional[int] = None) -> int:
        """Validate ``root_url`` and persist a pending job.

        Raises:
            ValueError: if the root URL is not a crawlable http(s) URL
        """
        root_url = validate_root_url(root_url)
        job = self.storage.create_job(
            user_id=user_id,
            root_url=root_url,
            profile_id=profile_id,
            max_pages=max_pages or self.config.max_pages,
        )
        return job.id

    async def submit(self, root_url: str, user_id: int, profile_id: int = 0,
                     max_pages: Optional[int] = None) -> int:
        """Create a job and schedule it to run in the background."""
        if not self._running:
            raise RuntimeError("Job manager not initialized")

        job_id = self.create_crawl_job(root_url, user_id, profile_id, max_pages)
        self._tokens[job_id] = CancellationToken()
        self.scheduler.add_job(
            self._execute_job,
            'date',
            run_date=datetime.now() + timedelta(seconds=self.start_delay),
            args=[job_id],
            id=self._scheduler_id(job_id),
        )
        logger.info(f"Enqueued crawl job {job_id} for {root_url}")
        return job_id

    async def run(self, job_id: int) -> Dict:
        """Run a pending job in the foreground."""
        token = self._tokens.setdefault(job_id, CancellationToken())
        try:
            return await run_crawl_job(
                job_id,
                storage=self.storage,
                fetcher=self.fetcher,
                analyzer=self.analyzer,
                indexer=self.indexer,
                config=self.config,
                cancel_token=token,
            )
        finally:
            self._tokens.pop(job_id, None)

    def cancel(self, job_id: int, reason: str = "cancelled by request") -> bool:
        """Request cancellation; returns False if the job already finished."""
        job = self.storage.get_job(job_id)
        if job.is_finished:
            return False

        if job.status == JobStatus.PENDING:
            if self.scheduler is not None:
                try:
                    self.scheduler.remove_job(self._scheduler_id(job_id))
                except JobLookupError:
                    pass
            self.storage.update_job(job_id, status=JobStatus.CANCELLED, completed_at=utcnow(),
                                    error_message=reason)
            self._tokens.pop(job_id, None)
            logger.info(f"Cancelled pending crawl job {job_id}")
            return True

        token = self._tokens.get(job_id)
        if token is None:
            logger.warning(f"Crawl job {job_id} is {job.status} but not running in this process")
            return False
        token.cancel(reason)
        logger.info(f"Cancellation requested for crawl job {job_id}")
        return True

    def get_job_status(self, job_id: int) -> CrawlJob:
        return self.storage.get_job(job_id)

    def get_job_pages(self, job_id: int) -> List[CrawledPage]:
        return self.storage.get_pages(job_id)

    def list_jobs(self, user_id: int, limit: int = 100) -> List[CrawlJob]:
        return self.storage.list_jobs(user_id, limit=limit)

    async def _execute_job(self, job_id: int):
        job = self.storage.get_job(job_id)
        if job.status != JobStatus.PENDING:
            logger.info(f"Skipping crawl job {job_id} in status {job.status}")
            return
        try:
            await self.run(job_id)
        except Exception as e:
            # already recorded on the job row
            logger.debug(f"Background crawl job {job_id} ended with error: {e}")

    @staticmethod
    def _scheduler_id(job_id: int) -> str:
        return f"crawl_{job_id}"

    def _job_executed(self, event):
        logger.debug(f"Scheduler job {event.job_id} executed")

    def _job_error(self, event):
        logger.error(f"Scheduler job {event.job_id} failed: {event.exception}")
