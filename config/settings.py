"""Runtime settings for the research crawler.

Every component reads its tunables from one of the models below. Values
come from the environment through ``from_env()`` so that the crawler,
the backfill script and the tests can share a single configuration path.
"""

import os
import logging
from enum import Enum
from functools import lru_cache
from typing import Optional, Tuple
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


class CrawlerConfig(BaseModel):
    """Bounds and politeness settings for a single crawl job."""
    max_pages: int = Field(default=100, ge=1, description="Maximum distinct URLs discovered per job")
    max_depth: int = Field(default=3, ge=1, description="Maximum traversal depth (root is depth 1)")
    delay: float = Field(default=1.0, ge=0, description="Delay before each recursive visit in seconds")
    user_agent: str = Field(
        default="Mozilla/5.0 (compatible; ResearchBuddy/1.0)",
        description="User agent sent by the headless browser"
    )
    timeout: float = Field(default=30.0, gt=0, description="Navigation timeout in seconds")
    max_links_per_page: int = Field(default=20, ge=0, description="Outbound links followed per page")
    priority_threshold: int = Field(default=5, description="Pages must score above this to be analyzed")
    min_analysis_chars: int = Field(default=100, ge=0, description="Minimum content length worth analyzing")
    article_keywords: Tuple[str, ...] = Field(
        default=("article", "post", "blog", "news", "story", "tutorial"),
        description="Title/description keywords that mark article-like pages"
    )

    @classmethod
    def from_env(cls) -> 'CrawlerConfig':
        """Create configuration from environment variables."""
        return cls(
            max_pages=_env_int('CRAWLER_MAX_PAGES', 100),
            max_depth=_env_int('CRAWLER_MAX_DEPTH', 3),
            delay=_env_float('CRAWLER_DELAY', 1.0),
            user_agent=os.getenv('CRAWLER_USER_AGENT', 'Mozilla/5.0 (compatible; ResearchBuddy/1.0)'),
            timeout=_env_float('CRAWLER_TIMEOUT', 30.0),
            max_links_per_page=_env_int('CRAWLER_MAX_LINKS_PER_PAGE', 20),
            priority_threshold=_env_int('CRAWLER_PRIORITY_THRESHOLD', 5),
            min_analysis_chars=_env_int('CRAWLER_MIN_ANALYSIS_CHARS', 100),
        )


class VectorStoreMode(str, Enum):
    """How the Chroma client connects."""
    HTTP = "http"
    CLOUD = "cloud"
    PERSISTENT = "persistent"


class VectorStoreConfig(BaseModel):
    """Connection settings and hard limits of the vector store."""
    mode: VectorStoreMode = Field(default=VectorStoreMode.PERSISTENT, description="Client mode")
    host: str = Field(default="localhost", description="Chroma server host (http mode)")
    port: int = Field(default=8000, description="Chroma server port (http mode)")
    api_key: Optional[str] = Field(default=None, description="Chroma Cloud API key")
    tenant: Optional[str] = Field(default=None, description="Chroma Cloud tenant")
    database: Optional[str] = Field(default=None, description="Chroma Cloud database")
    persist_path: str = Field(default="data/chroma", description="Directory for the persistent client")

    # Store quotas
    document_size_bytes: int = Field(default=16384, description="Per-document size limit")
    metadata_value_bytes: int = Field(default=256, description="Per-metadata-value size limit")
    metadata_total_bytes: int = Field(default=4096, description="Total metadata size limit")
    chunk_size_bytes: int = Field(default=14000, description="Chunk budget, below the document limit")
    list_cap: int = Field(default=100, ge=1, description="Records returned per listing call")

    @classmethod
    def from_env(cls) -> 'VectorStoreConfig':
        """Create configuration from environment variables."""
        return cls(
            mode=VectorStoreMode(os.getenv('CHROMA_MODE', 'persistent').lower()),
            host=os.getenv('CHROMA_HOST', 'localhost'),
            port=_env_int('CHROMA_PORT', 8000),
            api_key=os.getenv('CHROMA_API_KEY'),
            tenant=os.getenv('CHROMA_TENANT'),
            database=os.getenv('CHROMA_DATABASE'),
            persist_path=os.getenv('CHROMA_PERSIST_PATH', 'data/chroma'),
            chunk_size_bytes=_env_int('CHROMA_CHUNK_SIZE_BYTES', 14000),
            list_cap=_env_int('CHROMA_LIST_CAP', 100),
        )


class AnalyzerConfig(BaseModel):
    """Settings for the LLM content analyzer."""
    api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    base_url: Optional[str] = Field(default=None, description="Alternative OpenAI-compatible endpoint")
    model: str = Field(default="gpt-4o", description="Chat completion model")
    temperature: float = Field(default=0.3, description="Sampling temperature")
    max_input_chars: int = Field(default=4000, description="Characters of page content sent for analysis")
    timeout: float = Field(default=60.0, gt=0, description="Analysis request timeout in seconds")

    @classmethod
    def from_env(cls) -> 'AnalyzerConfig':
        """Create configuration from environment variables."""
        return cls(
            api_key=os.getenv('OPENAI_API_KEY'),
            base_url=os.getenv('OPENAI_BASE_URL'),
            model=os.getenv('ANALYZER_MODEL', 'gpt-4o'),
            temperature=_env_float('ANALYZER_TEMPERATURE', 0.3),
            max_input_chars=_env_int('ANALYZER_MAX_INPUT_CHARS', 4000),
            timeout=_env_float('ANALYZER_TIMEOUT', 60.0),
        )


class DatabaseConfig(BaseModel):
    """Relational store configuration."""
    url: str = Field(default="sqlite:///research_crawler.db", description="SQLAlchemy database URL")
    echo: bool = Field(default=False, description="Log emitted SQL")

    @classmethod
    def from_env(cls) -> 'DatabaseConfig':
        """Create configuration from environment variables."""
        return cls(
            url=os.getenv('DATABASE_URL', 'sqlite:///research_crawler.db'),
            echo=os.getenv('DATABASE_ECHO', 'false').lower() in ('1', 'true', 'yes'),
        )


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    use_json: bool = Field(default=False)
    log_file: Optional[str] = Field(default=None)

    @classmethod
    def from_env(cls) -> 'LoggingConfig':
        return cls(
            level=os.getenv('LOG_LEVEL', 'INFO'),
            use_json=os.getenv('LOG_JSON', 'false').lower() in ('1', 'true', 'yes'),
            log_file=os.getenv('LOG_FILE'),
        )


class Settings(BaseModel):
    """Aggregated settings."""
    crawler: CrawlerConfig = Field(default_factory=CrawlerConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> 'Settings':
        return cls(
            crawler=CrawlerConfig.from_env(),
            vector_store=VectorStoreConfig.from_env(),
            analyzer=AnalyzerConfig.from_env(),
            database=DatabaseConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, read once from the environment."""
    settings = Settings.from_env()
    logger.debug(f"Loaded settings: database={settings.database.url}, chroma mode={settings.vector_store.mode}")
    return settings
