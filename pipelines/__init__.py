"""Pipelines package for the research crawler.

Provides crawling, page extraction, analysis, chunking and vector indexing.
"""

from .analyzer import ContentAnalysis, ContentAnalyzer
from .chunker import ContentChunker, DocumentPart, reconstruct, split_content, truncate_content
from .crawler import CancellationToken, CrawlCancelled, CrawlSession, CrawlStats
from .fetcher import PageData, PageFetcher, PageFetchError
from .indexer import IndexResult, PartResult, VectorIndexer
from .ledger import CATEGORIES, DedupLedger, DocumentCategory, get_category
from .priority import score_page
from .urls import InvalidRootURL, filter_links, validate_root_url

__all__ = [
    # Crawler
    'CancellationToken',
    'CrawlCancelled',
    'CrawlSession',
    'CrawlStats',

    # Fetching
    'PageData',
    'PageFetcher',
    'PageFetchError',
    'InvalidRootURL',
    'filter_links',
    'validate_root_url',
    'score_page',

    # Analysis
    'ContentAnalysis',
    'ContentAnalyzer',

    # Chunking and indexing
    'ContentChunker',
    'DocumentPart',
    'reconstruct',
    'split_content',
    'truncate_content',
    'IndexResult',
    'PartResult',
    'VectorIndexer',
    'CATEGORIES',
    'DedupLedger',
    'DocumentCategory',
    'get_category',
]
