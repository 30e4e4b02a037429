"""Prometheus metrics for crawling and vector indexing."""

from prometheus_client import Counter, Histogram, generate_latest
from prometheus_client.core import CollectorRegistry
import logging

logger = logging.getLogger(__name__)

# Private registry; nothing is registered on the process-wide default.
crawler_registry = CollectorRegistry()

pages_crawled = Counter(
    'research_crawler_pages_total',
    'Pages visited by the crawler, by outcome',
    ['status'],
    registry=crawler_registry
)

page_fetch_duration = Histogram(
    'research_crawler_page_fetch_duration_seconds',
    'Headless browser fetch and extraction duration in seconds',
    buckets=[0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
    registry=crawler_registry
)

analysis_requests = Counter(
    'research_crawler_analysis_requests_total',
    'Content analysis calls, by outcome',
    ['status'],
    registry=crawler_registry
)

parts_written = Counter(
    'research_crawler_vector_parts_total',
    'Document parts written to the vector store, by outcome',
    ['collection', 'status'],
    registry=crawler_registry
)

documents_skipped = Counter(
    'research_crawler_vector_documents_skipped_total',
    'Logical documents skipped because the dedup ledger already holds them',
    ['category'],
    registry=crawler_registry
)

jobs_finished = Counter(
    'research_crawler_jobs_finished_total',
    'Crawl jobs that reached a terminal state',
    ['status'],
    registry=crawler_registry
)


def record_page(status: str) -> None:
    pages_crawled.labels(status=status).inc()


def record_analysis(status: str) -> None:
    analysis_requests.labels(status=status).inc()


def record_part_write(collection: str, ok: bool) -> None:
    parts_written.labels(collection=collection, status="ok" if ok else "error").inc()


def record_skipped_document(category: str) -> None:
    documents_skipped.labels(category=category).inc()


def record_job_finished(status: str) -> None:
    jobs_finished.labels(status=status).inc()


def render_metrics() -> bytes:
    """Render the registry in the Prometheus text exposition format."""
    return generate_latest(crawler_registry)
