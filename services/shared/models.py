"""Relational models for crawl jobs and crawled pages."""
from datetime import datetime, timezone
from typing import Dict, Any
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus:
    """Crawl job states. Transitions only move forward."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    TERMINAL = frozenset({COMPLETED, FAILED, CANCELLED})

    TRANSITIONS = {
        PENDING: frozenset({PROCESSING, FAILED, CANCELLED}),
        PROCESSING: frozenset({COMPLETED, FAILED, CANCELLED}),
        COMPLETED: frozenset(),
        FAILED: frozenset(),
        CANCELLED: frozenset(),
    }

    @classmethod
    def can_transition(cls, current: str, new: str) -> bool:
        return current == new or new in cls.TRANSITIONS.get(current, frozenset())


class PageStatus:
    DISCOVERED = "discovered"
    ANALYZED = "analyzed"
    FAILED = "failed"


JOB_COUNTERS = ("pages_discovered", "pages_processed", "pages_analyzed")


class CrawlJob(Base):
    """One crawl run over a root URL."""
    __tablename__ = 'crawler_jobs'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    profile_id = Column(Integer, nullable=False, default=0)
    root_url = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=JobStatus.PENDING)
    max_pages = Column(Integer, nullable=False, default=100)
    pages_discovered = Column(Integer, nullable=False, default=0)
    pages_processed = Column(Integer, nullable=False, default=0)
    pages_analyzed = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('idx_crawler_jobs_user_id', 'user_id'),
        Index('idx_crawler_jobs_status', 'status'),
    )

    @property
    def is_finished(self) -> bool:
        return self.status in JobStatus.TERMINAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'userId': self.user_id,
            'profileId': self.profile_id,
            'rootUrl': self.root_url,
            'status': self.status,
            'maxPages': self.max_pages,
            'pagesDiscovered': self.pages_discovered,
            'pagesProcessed': self.pages_processed,
            'pagesAnalyzed': self.pages_analyzed,
            'startedAt': self.started_at.isoformat() if self.started_at else None,
            'completedAt': self.completed_at.isoformat() if self.completed_at else None,
            'errorMessage': self.error_message,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


class CrawledPage(Base):
    """One URL visited during a crawl job."""
    __tablename__ = 'crawler_pages'

    id = Column(Integer, primary_key=True)
    job_id = Column(Integer, nullable=False)
    user_id = Column(Integer, nullable=False)
    profile_id = Column(Integer, nullable=False, default=0)
    url = Column(Text, nullable=False)
    title = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    content = Column(Text, nullable=True)
    analysis = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, default=PageStatus.DISCOVERED)
    priority = Column(Integer, nullable=False, default=0)
    depth = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint('job_id', 'url', name='uq_crawler_pages_job_url'),
        Index('idx_crawler_pages_job_id', 'job_id'),
        Index('idx_crawler_pages_user_status', 'user_id', 'status'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'jobId': self.job_id,
            'userId': self.user_id,
            'profileId': self.profile_id,
            'url': self.url,
            'title': self.title,
            'description': self.description,
            'analysis': self.analysis,
            'status': self.status,
            'priority': self.priority,
            'depth': self.depth,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'processedAt': self.processed_at.isoformat() if self.processed_at else None,
        }
