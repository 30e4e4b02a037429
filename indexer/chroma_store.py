"""Vector store access for chunked documents.

``VectorStore`` is the contract the indexer and the dedup ledger rely on.
``ChromaVectorStore`` implements it on top of a Chroma client, which
embeds documents server-side with the collection's embedding function.
"""

import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from config.settings import VectorStoreConfig, VectorStoreMode

os.environ.setdefault("ANONYMIZED_TELEMETRY", "False")

logger = logging.getLogger(__name__)


@dataclass
class VectorRecord:
    """A record as stored in a collection."""
    id: str
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class QueryMatch(VectorRecord):
    """A similarity search hit; lower distance means closer."""
    distance: Optional[float] = None


class VectorStore(Protocol):
    """Minimal vector store contract."""

    def upsert(self, collection: str, id: str, text: str, metadata: Dict[str, Any]) -> None:
        ...

    def query(self, collection: str, query_text: str,
              where: Optional[Dict[str, Any]] = None, limit: int = 10) -> List[QueryMatch]:
        ...

    def list(self, collection: str, where: Optional[Dict[str, Any]] = None,
             limit: int = 100) -> List[VectorRecord]:
        ...


def build_where(filters: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Translate a flat ``{field: value}`` mapping into a Chroma ``where`` clause.

    Chroma rejects an empty clause and needs ``$and`` to combine fields.
    Values that are already operator dicts are passed through.
    """
    if not filters:
        return None

    clauses = []
    for key, value in filters.items():
        if key.startswith('$') or isinstance(value, dict):
            clauses.append({key: value})
        else:
            clauses.append({key: {"$eq": value}})

    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class ChromaVectorStore:
    """``VectorStore`` backed by Chroma."""

    def __init__(self, config: Optional[VectorStoreConfig] = None, client=None):
        self.config = config or VectorStoreConfig.from_env()
        self._client = client
        self._collections: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def _create_client(self):
        import chromadb
        from chromadb.config import Settings

        if self.config.mode == VectorStoreMode.CLOUD:
            logger.info(f"Connecting to Chroma Cloud (tenant={self.config.tenant}, database={self.config.database})")
            return chromadb.CloudClient(
                tenant=self.config.tenant,
                database=self.config.database,
                api_key=self.config.api_key,
            )
        if self.config.mode == VectorStoreMode.HTTP:
            logger.info(f"Connecting to Chroma at {self.config.host}:{self.config.port}")
            return chromadb.HttpClient(
                host=self.config.host,
                port=self.config.port,
                settings=Settings(anonymized_telemetry=False),
            )

        logger.info(f"Opening persistent Chroma store at {self.config.persist_path}")
        return chromadb.PersistentClient(
            path=self.config.persist_path,
            settings=Settings(anonymized_telemetry=False),
        )

    @property
    def client(self):
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _collection(self, name: str):
        with self._lock:
            collection = self._collections.get(name)
            if collection is None:
                collection = self.client.get_or_create_collection(name)
                self._collections[name] = collection
            return collection

    def upsert(self, collection: str, id: str, text: str, metadata: Dict[str, Any]) -> None:
        self._collection(collection).upsert(
            ids=[id],
            documents=[text],
            metadatas=[metadata],
        )

    def query(self, collection: str, query_text: str,
              where: Optional[Dict[str, Any]] = None, limit: int = 10) -> List[QueryMatch]:
        result = self._collection(collection).query(
            query_texts=[query_text],
            n_results=limit,
            where=build_where(where),
            include=["documents", "metadatas", "distances"],
        )

        ids = (result.get("ids") or [[]])[0]
        documents = (result.get("documents") or [[]])[0] or []
        metadatas = (result.get("metadatas") or [[]])[0] or []
        distances = (result.get("distances") or [[]])[0] or []

        matches = []
        for i, record_id in enumerate(ids):
            matches.append(QueryMatch(
                id=record_id,
                text=documents[i] if i < len(documents) else "",
                metadata=dict(metadatas[i] or {}) if i < len(metadatas) else {},
                distance=distances[i] if i < len(distances) else None,
            ))
        return matches

    def list(self, collection: str, where: Optional[Dict[str, Any]] = None,
             limit: int = 100) -> List[VectorRecord]:
        result = self._collection(collection).get(
            where=build_where(where),
            limit=limit,
            include=["documents", "metadatas"],
        )

        ids = result.get("ids") or []
        documents = result.get("documents") or []
        metadatas = result.get("metadatas") or []

        return [
            VectorRecord(
                id=record_id,
                text=documents[i] if i < len(documents) else "",
                metadata=dict(metadatas[i] or {}) if i < len(metadatas) else {},
            )
            for i, record_id in enumerate(ids)
        ]

    def heartbeat(self) -> bool:
        """Return True when the store answers."""
        try:
            self.client.heartbeat()
            return True
        except Exception as e:
            logger.error(f"Chroma health check failed: {e}")
            return False
