"""Tests for chunked vector indexing."""

from types import SimpleNamespace

import pytest

from config.settings import VectorStoreConfig
from pipelines.analyzer import ContentAnalysis
from pipelines.chunker import TRUNCATION_MARKER, utf8_len
from pipelines.indexer import PROTECTED_METADATA_KEYS, VectorIndexer
from pipelines.ledger import CRAWLER_PAGE, URL_CONTENT, DedupLedger
from tests.conftest import FakeVectorStore

LONG_DOC = " ".join(f"paragraph{i} about widgets" for i in range(150))


class TestIndexing:

    def test_small_document_is_one_part(self, indexer, vector_store):
        result = indexer.index_record(URL_CONTENT, 1, "hello widgets", {"userId": 1})

        assert result.written == 1
        assert not result.skipped
        record = vector_store.records("url_content")[0]
        assert record.text == "hello widgets"
        assert record.metadata["type"] == "url_content"
        assert record.metadata["logicalKey"] == "url_1"
        assert record.metadata["urlId"] == 1
        assert record.metadata["partIndex"] == 0
        assert record.metadata["totalParts"] == 1
        assert record.metadata["isPart"] is False
        assert "timestamp" in record.metadata
        assert indexer.ledger.contains("url_1")

    def test_large_document_is_split_and_reassembled(self, indexer, vector_store):
        result = indexer.index_record(URL_CONTENT, 7, LONG_DOC, {"userId": 3})

        records = vector_store.records("url_content")
        assert result.written == len(records) > 1
        assert all(utf8_len(r.text) <= 200 for r in records)
        assert {r.metadata["totalParts"] for r in records} == {len(records)}
        assert sorted(r.metadata["partIndex"] for r in records) == list(range(len(records)))
        assert all(r.metadata["isPart"] is True for r in records)
        assert len({r.id for r in records}) == len(records)

        assert indexer.fetch_document(URL_CONTENT, 7, user_id=3) == LONG_DOC

    def test_second_index_of_same_key_is_a_no_op(self, indexer, vector_store):
        indexer.index_record(URL_CONTENT, 1, LONG_DOC, {"userId": 1})
        writes = len(vector_store.upserts)

        result = indexer.index_record(URL_CONTENT, 1, LONG_DOC, {"userId": 1})

        assert result.skipped
        assert result.written == 0
        assert len(vector_store.upserts) == writes

    def test_partial_failure_reports_each_part(self, store_config):
        store = FakeVectorStore(fail_on=lambda c, text, md: md.get("partIndex") == 1)
        indexer = VectorIndexer(store, ledger=DedupLedger(store), config=store_config)

        result = indexer.index_record(URL_CONTENT, 2, LONG_DOC, {"userId": 1})

        assert result.total_parts > 2
        assert result.failed == 1
        assert result.written == result.total_parts - 1
        assert result.errors == ["quota exceeded"]
        assert [p.part_index for p in result.parts] == list(range(result.total_parts))
        assert indexer.ledger.contains("url_2")

    def test_total_failure_leaves_key_retryable(self, store_config):
        failing = {"on": True}
        store = FakeVectorStore(fail_on=lambda c, text, md: failing["on"])
        indexer = VectorIndexer(store, ledger=DedupLedger(store), config=store_config)

        first = indexer.index_record(URL_CONTENT, 9, LONG_DOC, {"userId": 1})
        assert first.written == 0
        assert len(first.errors) == first.total_parts
        assert not indexer.ledger.contains("url_9")

        failing["on"] = False
        second = indexer.index_record(URL_CONTENT, 9, LONG_DOC, {"userId": 1})
        assert second.written == second.total_parts
        assert indexer.ledger.contains("url_9")

    def test_blank_text_is_not_indexed(self, indexer, vector_store):
        result = indexer.index_record(URL_CONTENT, 4, "   \n ", {"userId": 1})

        assert result.total_parts == 0
        assert vector_store.upserts == []
        assert not indexer.ledger.contains("url_4")

    def test_unknown_category_name_raises(self, indexer):
        with pytest.raises(ValueError, match="nonsense"):
            indexer.index("x_1", "text", {}, category="nonsense")

    def test_chunk_budget_must_stay_below_document_limit(self):
        config = VectorStoreConfig(document_size_bytes=16384, chunk_size_bytes=16384)
        with pytest.raises(ValueError, match="chunk_size_bytes"):
            VectorIndexer(FakeVectorStore(), config=config)


class TestMetadata:

    def test_long_values_are_truncated_with_marker(self, indexer, vector_store):
        indexer.index_record(URL_CONTENT, 1, "body", {"userId": 1, "title": "T" * 300})

        title = vector_store.records("url_content")[0].metadata["title"]
        assert title.endswith(TRUNCATION_MARKER)
        assert utf8_len(title) <= 64

    def test_containers_and_none_values(self, indexer):
        cleaned = indexer.sanitize_metadata({"topics": ["a", "b"], "missing": None, "score": 7})
        assert cleaned == {"topics": '["a", "b"]', "score": 7}

    def test_total_limit_drops_unprotected_keys_only(self):
        config = VectorStoreConfig(chunk_size_bytes=200, metadata_value_bytes=64, metadata_total_bytes=150)
        store = FakeVectorStore()
        indexer = VectorIndexer(store, ledger=DedupLedger(store), config=config)
        extras = {f"extra{i}": "v" * 40 for i in range(5)}

        indexer.index_record(URL_CONTENT, 1, "body", {"userId": 1, **extras})

        metadata = store.records("url_content")[0].metadata
        assert VectorIndexer._metadata_size(metadata) <= 150
        for key in ("type", "logicalKey", "partIndex", "totalParts", "isPart", "userId", "urlId", "timestamp"):
            assert key in metadata
        dropped = [k for k in extras if k not in metadata]
        assert dropped
        assert all(k not in PROTECTED_METADATA_KEYS for k in dropped)


class TestCrawlerPages:

    def test_index_crawled_page(self, indexer, vector_store):
        page = SimpleNamespace(
            id=5, job_id=2, user_id=1, profile_id=0, depth=2,
            url="https://example.com/post", title="Widget post",
            description="All about widgets", content="Widgets are small.",
        )
        analysis = ContentAnalysis(summary="Widgets summary", key_topics=["widgets", "parts"],
                                   content_type="article", relevance_score=8)

        result = indexer.index_crawled_page(page, analysis)

        assert result.logical_key == "crawl_page_5"
        assert result.written == 1
        record = vector_store.records(CRAWLER_PAGE.collection)[0]
        assert record.metadata["type"] == "crawler_page"
        assert record.metadata["pageId"] == 5
        assert record.metadata["jobId"] == 2
        assert record.metadata["url"] == "https://example.com/post"
        assert record.text == "Widget post\n\nAll about widgets\n\nWidgets are small.\n\nWidgets summary\n\nwidgets, parts"

    def test_search_is_scoped_to_owner(self, indexer):
        indexer.index_record(URL_CONTENT, 1, "widgets for alice", {"userId": 1})
        indexer.index_record(URL_CONTENT, 2, "widgets for bob", {"userId": 2})

        results = indexer.search("widgets", user_id=1, categories=["url_content"])

        assert [m.text for m in results["url_content"]] == ["widgets for alice"]
