from unittest.mock import Mock

import pytest

from indexer.chroma_store import VectorRecord
from pipelines.ledger import (
    CATEGORIES,
    CHAT_MESSAGE,
    CRAWLER_PAGE,
    URL_ANALYSIS,
    URL_CONTENT,
    DedupLedger,
    derive_key,
    get_category,
)
from tests.conftest import FakeVectorStore


def _seed(store, category, source_ids):
    for source_id in source_ids:
        store.upsert(
            category.collection,
            f"{category.name}-{source_id}",
            "text",
            {"type": category.name, category.key_field: source_id},
        )


def test_key_prefixes():
    assert CHAT_MESSAGE.key_for(3) == "msg_3"
    assert URL_CONTENT.key_for(3) == "url_3"
    assert URL_ANALYSIS.key_for(3) == "analysis_3"
    assert CRAWLER_PAGE.key_for(3) == "crawl_page_3"


def test_get_category_unknown():
    with pytest.raises(ValueError):
        get_category("podcast")


def test_derive_key_requires_source_id():
    assert derive_key(URL_CONTENT, {"urlId": 12}) == "url_12"
    assert derive_key(URL_CONTENT, {"title": "no id"}) is None
    assert derive_key(URL_CONTENT, None) is None


def test_load_collects_keys_per_category():
    store = FakeVectorStore()
    _seed(store, URL_CONTENT, [1, 2])
    _seed(store, CRAWLER_PAGE, [10])
    _seed(store, CHAT_MESSAGE, [5])

    ledger = DedupLedger(store)
    counts = ledger.load()

    assert ledger.loaded
    assert counts == {"chat_message": 1, "url_content": 2, "url_analysis": 0, "crawler_page": 1}
    for key in ("url_1", "url_2", "crawl_page_10", "msg_5"):
        assert key in ledger
    # crawler pages share the url_content collection but keep their own prefix
    assert "url_10" not in ledger


def test_load_respects_list_cap():
    store = FakeVectorStore()
    _seed(store, URL_CONTENT, range(10))

    ledger = DedupLedger(store, list_cap=4)
    ledger.load()

    assert len(ledger) == 4
    assert all(limit == 4 for _, _, limit in store.list_calls)


def test_load_tolerates_failing_category():
    store = FakeVectorStore()
    _seed(store, URL_CONTENT, [1])
    real_list = store.list

    def flaky_list(collection, where=None, limit=100):
        if collection == "chat_messages":
            raise ConnectionError("collection unavailable")
        return real_list(collection, where, limit)

    store.list = flaky_list
    ledger = DedupLedger(store)
    counts = ledger.load()

    assert counts["chat_message"] == 0
    assert "url_1" in ledger


def test_load_without_store_starts_empty():
    ledger = DedupLedger(None)
    assert ledger.load() == {}
    assert ledger.loaded
    assert len(ledger) == 0


def test_mark_and_contains():
    ledger = DedupLedger(Mock())
    assert not ledger.contains("url_1")
    ledger.mark("url_1")
    assert ledger.contains("url_1")
    assert len(ledger) == 1


def test_records_without_ids_are_ignored():
    store = FakeVectorStore()
    store.upsert("url_content", "r1", "text", {"type": "url_content"})
    ledger = DedupLedger(store, categories=[CATEGORIES["url_content"]])
    assert ledger.load() == {"url_content": 0}


def test_loaded_keys_are_vector_records():
    store = Mock()
    store.list.return_value = [VectorRecord(id="a", text="t", metadata={"type": "url_analysis", "urlId": 8})]
    ledger = DedupLedger(store, categories=[URL_ANALYSIS])
    ledger.load()
    store.list.assert_called_once_with("url_analysis", where={"type": "url_analysis"}, limit=100)
    assert "analysis_8" in ledger
