"""Chroma adapter tests against a mocked client."""

from unittest.mock import MagicMock

from config.settings import VectorStoreConfig
from indexer.chroma_store import ChromaVectorStore, build_where


def _store(client):
    return ChromaVectorStore(VectorStoreConfig(), client=client)


def test_build_where_combines_fields():
    assert build_where(None) is None
    assert build_where({"userId": 1}) == {"userId": {"$eq": 1}}
    assert build_where({"userId": 1, "logicalKey": "url_1"}) == {
        "$and": [{"userId": {"$eq": 1}}, {"logicalKey": {"$eq": "url_1"}}]
    }


def test_build_where_passes_operator_values_through():
    assert build_where({"partIndex": {"$gte": 1}}) == {"partIndex": {"$gte": 1}}


def test_heartbeat_reports_reachable_store():
    client = MagicMock()

    assert _store(client).heartbeat()
    client.heartbeat.assert_called_once_with()


def test_heartbeat_reports_unreachable_store():
    client = MagicMock()
    client.heartbeat.side_effect = ConnectionError("Could not connect to tenant default_tenant")

    assert not _store(client).heartbeat()


def test_collections_are_created_once():
    client = MagicMock()
    store = _store(client)

    store.upsert("url_content", "url_1_part_0", "text", {"userId": 1})
    store.upsert("url_content", "url_1_part_1", "more", {"userId": 1})

    client.get_or_create_collection.assert_called_once_with("url_content")
    assert client.get_or_create_collection.return_value.upsert.call_count == 2
