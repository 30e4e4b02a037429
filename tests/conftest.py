"""Shared fixtures and in-memory fakes for the crawler tests."""

import os
import sys
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Union

import pytest

# Add the parent directory to the path so the top-level packages import
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from config.settings import CrawlerConfig, DatabaseConfig, VectorStoreConfig
from indexer.chroma_store import QueryMatch, VectorRecord
from pipelines.analyzer import ContentAnalysis
from pipelines.fetcher import PageData, PageFetchError
from pipelines.indexer import VectorIndexer
from pipelines.ledger import DedupLedger
from services.shared.storage import CrawlStorage


class FakeVectorStore:
    """Dict-backed ``VectorStore`` with optional write failures."""

    def __init__(self, fail_on: Optional[Callable[[str, str, dict], bool]] = None):
        self.collections: Dict[str, Dict[str, VectorRecord]] = defaultdict(dict)
        self.fail_on = fail_on
        self.upserts: List[tuple] = []
        self.list_calls: List[tuple] = []

    def upsert(self, collection, id, text, metadata):
        self.upserts.append((collection, id, text, dict(metadata)))
        if self.fail_on and self.fail_on(collection, text, metadata):
            raise RuntimeError("quota exceeded")
        self.collections[collection][id] = VectorRecord(id=id, text=text, metadata=dict(metadata))

    @staticmethod
    def _matches(metadata, where):
        return all(metadata.get(k) == v for k, v in (where or {}).items())

    def list(self, collection, where=None, limit=100):
        self.list_calls.append((collection, where, limit))
        records = [r for r in self.collections[collection].values() if self._matches(r.metadata, where)]
        return records[:limit]

    def query(self, collection, query_text, where=None, limit=10):
        hits = [
            QueryMatch(id=r.id, text=r.text, metadata=r.metadata, distance=0.0)
            for r in self.collections[collection].values()
            if self._matches(r.metadata, where) and query_text.lower() in r.text.lower()
        ]
        return hits[:limit]

    def records(self, collection) -> List[VectorRecord]:
        return list(self.collections[collection].values())


class FakeFetcher:
    """Serves ``PageData`` from a dict; unknown URLs fail like a dead link."""

    def __init__(self, site: Dict[str, Union[PageData, Exception]], on_fetch=None):
        self.site = site
        self.on_fetch = on_fetch
        self.calls: List[str] = []

    async def fetch(self, url, root_url, timeout=None):
        self.calls.append(url)
        if self.on_fetch:
            self.on_fetch(url)
        result = self.site.get(url)
        if result is None:
            raise PageFetchError(f"Failed to load {url}: net::ERR_NAME_NOT_RESOLVED")
        if isinstance(result, Exception):
            raise result
        return result


class FakeAnalyzer:
    """Returns a fixed analysis and counts calls."""

    def __init__(self, analysis: Optional[ContentAnalysis] = None, error: Optional[Exception] = None):
        self.analysis = analysis or ContentAnalysis(
            summary="A tutorial about widgets.",
            key_topics=["widgets", "testing"],
            content_type="article",
            relevance_score=8,
            insights=["Widgets are testable"],
        )
        self.error = error
        self.calls: List[str] = []

    async def analyze(self, text):
        self.calls.append(text)
        if self.error:
            raise self.error
        return self.analysis


LONG_TEXT = "Widgets explained in depth. " * 40


def make_page(url, links=(), title="Widget tutorial and blog post",
              description="A long description of widgets that is comfortably over fifty characters.",
              text=LONG_TEXT):
    return PageData(url=url, title=title, description=description, text=text, links=list(links))


@pytest.fixture
def storage(tmp_path):
    store = CrawlStorage(DatabaseConfig(url=f"sqlite:///{tmp_path / 'crawler.db'}"))
    store.create_tables()
    return store


@pytest.fixture
def vector_store():
    return FakeVectorStore()


@pytest.fixture
def store_config():
    return VectorStoreConfig(chunk_size_bytes=200, metadata_value_bytes=64, metadata_total_bytes=1024)


@pytest.fixture
def indexer(vector_store, store_config):
    return VectorIndexer(vector_store, ledger=DedupLedger(vector_store), config=store_config)


@pytest.fixture
def crawler_config():
    return CrawlerConfig(delay=0, max_depth=3, max_pages=100)
