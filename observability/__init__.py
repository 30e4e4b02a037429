"""Observability package for the research crawler."""

from .logging import (
    setup_logging,
    get_logger,
    get_structured_logger,
    StructuredLogger,
    log_performance
)
from .metrics import (
    crawler_registry,
    record_page,
    record_analysis,
    record_part_write,
    record_skipped_document,
    record_job_finished,
    render_metrics
)

__all__ = [
    'setup_logging',
    'get_logger',
    'get_structured_logger',
    'StructuredLogger',
    'log_performance',
    'crawler_registry',
    'record_page',
    'record_analysis',
    'record_part_write',
    'record_skipped_document',
    'record_job_finished',
    'render_metrics'
]
