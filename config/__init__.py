"""Configuration module for the research crawler.

Provides configuration management for crawling, analysis, storage and logging.
"""

from .settings import (
    AnalyzerConfig,
    CrawlerConfig,
    DatabaseConfig,
    LoggingConfig,
    Settings,
    VectorStoreConfig,
    VectorStoreMode,
    get_settings
)

__all__ = [
    'AnalyzerConfig',
    'CrawlerConfig',
    'DatabaseConfig',
    'LoggingConfig',
    'Settings',
    'VectorStoreConfig',
    'VectorStoreMode',
    'get_settings'
]
