"""Relational storage for crawl jobs and pages.

Wraps a SQLAlchemy engine with the handful of operations the crawler
needs. Returned objects are detached from their session so they can be
read freely after the call returns.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from config.settings import DatabaseConfig
from .models import Base, CrawlJob, CrawledPage, JobStatus, JOB_COUNTERS, utcnow

logger = logging.getLogger(__name__)


class JobNotFound(LookupError):
    """Raised when a crawl job id does not exist."""
    pass


class InvalidJobTransition(ValueError):
    """Raised on a backwards or otherwise illegal job status change."""
    pass


class CrawlStorage:
    """Create, update and list crawl jobs and pages."""

    def __init__(self, config: Optional[DatabaseConfig] = None, engine=None):
        self.config = config or DatabaseConfig.from_env()
        self.engine = engine or self._create_engine(self.config)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    @staticmethod
    def _create_engine(config: DatabaseConfig):
        url = config.url
        if url.startswith("sqlite"):
            kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
            if url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
            return create_engine(url, echo=config.echo, **kwargs)
        return create_engine(url, echo=config.echo, pool_pre_ping=True)

    def create_tables(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.info("Crawler tables ready")

    @contextmanager
    def session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # Jobs

    def create_job(self, user_id: int, root_url: str, profile_id: int = 0,
                   max_pages: int = 100) -> CrawlJob:
        with self.session() as session:
            job = CrawlJob(
                user_id=user_id,
                profile_id=profile_id,
                root_url=root_url,
                max_pages=max_pages,
                status=JobStatus.PENDING,
            )
            session.add(job)
            session.flush()
            logger.info(f"Created crawl job {job.id} for {root_url} (user {user_id})")
            return job

    def get_job(self, job_id: int) -> CrawlJob:
        with self.session() as session:
            job = session.get(CrawlJob, job_id)
            if job is None:
                raise JobNotFound(f"Crawl job {job_id} not found")
            return job

    def list_jobs(self, user_id: int, limit: int = 100) -> List[CrawlJob]:
        with self.session() as session:
            stmt = (
                select(CrawlJob)
                .where(CrawlJob.user_id == user_id)
                .order_by(CrawlJob.created_at.desc(), CrawlJob.id.desc())
                .limit(limit)
            )
            return list(session.scalars(stmt))

    def update_job(self, job_id: int, **fields) -> CrawlJob:
        """Apply ``fields`` to a job.

        Raises:
            JobNotFound: if the job does not exist
            InvalidJobTransition: if the status would move backwards or a
                counter would decrease
        """
        with self.session() as session:
            job = session.get(CrawlJob, job_id)
            if job is None:
                raise JobNotFound(f"Crawl job {job_id} not found")

            new_status = fields.get("status")
            if new_status is not None and not JobStatus.can_transition(job.status, new_status):
                raise InvalidJobTransition(f"Job {job_id} cannot move from {job.status} to {new_status}")

            for counter in JOB_COUNTERS:
                value = fields.get(counter)
                if value is not None and value < getattr(job, counter):
                    raise InvalidJobTransition(
                        f"Job {job_id} counter {counter} cannot decrease ({getattr(job, counter)} -> {value})"
                    )

            for key, value in fields.items():
                if not hasattr(CrawlJob, key):
                    raise AttributeError(f"CrawlJob has no field '{key}'")
                setattr(job, key, value)
            job.updated_at = utcnow()
            return job

    # Pages

    def create_page(self, **fields) -> CrawledPage:
        with self.session() as session:
            page = CrawledPage(**fields)
            session.add(page)
            session.flush()
            return page

    def update_page(self, page_id: int, **fields) -> CrawledPage:
        with self.session() as session:
            page = session.get(CrawledPage, page_id)
            if page is None:
                raise LookupError(f"Crawled page {page_id} not found")
            for key, value in fields.items():
                if not hasattr(CrawledPage, key):
                    raise AttributeError(f"CrawledPage has no field '{key}'")
                setattr(page, key, value)
            return page

    def get_pages(self, job_id: int) -> List[CrawledPage]:
        with self.session() as session:
            stmt = select(CrawledPage).where(CrawledPage.job_id == job_id).order_by(CrawledPage.id)
            return list(session.scalars(stmt))

    def get_pages_by_owner(self, user_id: Optional[int] = None, status: Optional[str] = None,
                           limit: Optional[int] = None) -> List[CrawledPage]:
        """Pages across jobs, optionally filtered by owner and status."""
        with self.session() as session:
            stmt = select(CrawledPage).order_by(CrawledPage.id)
            if user_id is not None:
                stmt = stmt.where(CrawledPage.user_id == user_id)
            if status is not None:
                stmt = stmt.where(CrawledPage.status == status)
            if limit is not None:
                stmt = stmt.limit(limit)
            return list(session.scalars(stmt))
