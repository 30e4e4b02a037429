"""Chunked vector indexing for logical documents.

Provides functionality to write one logical document (a crawled page, a
chat message, an analysis) into the vector store as one or more parts that
respect the store's per-document and per-metadata size limits.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from config.settings import VectorStoreConfig
from observability.metrics import record_part_write, record_skipped_document
from .chunker import ContentChunker, DocumentPart, TRUNCATION_MARKER, reconstruct, truncate_utf8, utf8_len
from .ledger import CATEGORIES, CRAWLER_PAGE, URL_CONTENT, DedupLedger, DocumentCategory, get_category

logger = logging.getLogger(__name__)

# Keys that identify a part and its owner; never dropped when trimming metadata.
PROTECTED_METADATA_KEYS = {
    "type", "logicalKey", "partIndex", "totalParts", "isPart",
    "userId", "profileId", "timestamp", "messageId", "urlId", "pageId",
}

CategoryLike = Union[DocumentCategory, str]


@dataclass
class PartResult:
    """Outcome of writing a single part."""
    part_id: str
    part_index: int
    ok: bool
    error: Optional[str] = None


@dataclass
class IndexResult:
    """Outcome of indexing one logical document."""
    logical_key: str
    category: str
    parts: List[PartResult] = field(default_factory=list)
    skipped: bool = False

    @property
    def written(self) -> int:
        """Number of parts written successfully."""
        return sum(1 for p in self.parts if p.ok)

    @property
    def failed(self) -> int:
        return sum(1 for p in self.parts if not p.ok)

    @property
    def total_parts(self) -> int:
        return len(self.parts)

    @property
    def errors(self) -> List[str]:
        return [p.error for p in self.parts if p.error]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "logical_key": self.logical_key,
            "category": self.category,
            "skipped": self.skipped,
            "written": self.written,
            "failed": self.failed,
            "total_parts": self.total_parts,
            "errors": self.errors,
        }


def _resolve_category(category: CategoryLike) -> DocumentCategory:
    if isinstance(category, DocumentCategory):
        return category
    return get_category(category)


class VectorIndexer:
    """Writes logical documents to the vector store as size-bounded parts."""

    def __init__(self, store, ledger: Optional[DedupLedger] = None,
                 config: Optional[VectorStoreConfig] = None):
        """Initialize indexer.

        Args:
            store: ``VectorStore`` implementation
            ledger: Dedup ledger shared with other indexers in this session
            config: Store limits; defaults to ``VectorStoreConfig()``
        """
        self.store = store
        self.config = config or VectorStoreConfig()
        if self.config.chunk_size_bytes >= self.config.document_size_bytes:
            raise ValueError(
                f"chunk_size_bytes ({self.config.chunk_size_bytes}) must be below "
                f"document_size_bytes ({self.config.document_size_bytes})"
            )
        self.ledger = ledger if ledger is not None else DedupLedger(store, list_cap=self.config.list_cap)
        self.chunker = ContentChunker(self.config.chunk_size_bytes)

    def sanitize_metadata(self, metadata: Dict[str, Any]) -> Dict[str, Any]:
        """Make metadata acceptable to the store.

        ``None`` values are dropped, containers are JSON-encoded and string
        values over the per-value limit are truncated to 90% of it with a
        marker. If the result is still over the total limit, unprotected
        keys are dropped, most recently added first.
        """
        value_limit = self.config.metadata_value_bytes
        processed: Dict[str, Any] = {}

        for key, value in metadata.items():
            if value is None:
                continue
            if isinstance(value, (list, tuple, dict)):
                value = json.dumps(value, ensure_ascii=False, default=str)
            elif isinstance(value, datetime):
                value = value.isoformat()
            elif not isinstance(value, (str, int, float, bool)):
                value = str(value)

            if isinstance(value, str) and utf8_len(value) > value_limit:
                keep = min(int(value_limit * 0.9), value_limit - utf8_len(TRUNCATION_MARKER))
                value = truncate_utf8(value, keep) + TRUNCATION_MARKER
            processed[key] = value

        total_limit = self.config.metadata_total_bytes
        size = self._metadata_size(processed)
        if size > total_limit:
            for key in reversed(list(processed.keys())):
                if key in PROTECTED_METADATA_KEYS:
                    continue
                size -= utf8_len(key) + utf8_len(str(processed[key]))
                del processed[key]
                logger.warning(f"Dropped metadata field '{key}' to fit the {total_limit} byte metadata limit")
                if size <= total_limit:
                    break

        return processed

    @staticmethod
    def _metadata_size(metadata: Dict[str, Any]) -> int:
        return sum(utf8_len(k) + utf8_len(str(v)) for k, v in metadata.items())

    def build_parts(self, logical_key: str, text: str, metadata: Dict[str, Any],
                    category: CategoryLike = URL_CONTENT) -> List[DocumentPart]:
        """Split ``text`` and attach per-part metadata."""
        category = _resolve_category(category)
        chunks = self.chunker.split(text)
        total = len(chunks)

        base = {"type": category.name, "logicalKey": logical_key, **metadata}
        base.setdefault("timestamp", datetime.now(timezone.utc).isoformat())

        parts = []
        for index, chunk in enumerate(chunks):
            part_metadata = {
                **base,
                "partIndex": index,
                "totalParts": total,
                "isPart": total > 1,
            }
            parts.append(DocumentPart(
                id=uuid.uuid4().hex,
                text=chunk,
                metadata=self.sanitize_metadata(part_metadata),
            ))
        return parts

    def index(self, logical_key: str, text: str, metadata: Optional[Dict[str, Any]] = None,
              category: CategoryLike = URL_CONTENT) -> IndexResult:
        """Index one logical document.

        Returns an ``IndexResult`` listing every part write. A key already in
        the ledger is skipped without touching the store. Part failures are
        recorded, not raised; the key is marked present once any part lands.
        """
        category = _resolve_category(category)
        result = IndexResult(logical_key=logical_key, category=category.name)

        if self.ledger.contains(logical_key):
            logger.debug(f"Skipping {logical_key}: already indexed")
            record_skipped_document(category.name)
            result.skipped = True
            return result

        if not text or not text.strip():
            logger.warning(f"Not indexing {logical_key}: no content")
            return result

        parts = self.build_parts(logical_key, text, metadata or {}, category)

        for part in parts:
            try:
                self.store.upsert(category.collection, part.id, part.text, part.metadata)
                result.parts.append(PartResult(part.id, part.part_index, ok=True))
                record_part_write(category.collection, True)
            except Exception as e:
                logger.warning(f"Failed to write part {part.part_index + 1}/{len(parts)} of {logical_key}: {e}")
                result.parts.append(PartResult(part.id, part.part_index, ok=False, error=str(e)))
                record_part_write(category.collection, False)

        if result.written > 0:
            self.ledger.mark(logical_key)
            if len(parts) > 1:
                logger.info(f"Split {logical_key} into {len(parts)} parts ({result.written} written)")
        else:
            logger.error(f"All {len(parts)} part(s) of {logical_key} failed; it will be retried next session")

        return result

    def index_record(self, category: CategoryLike, source_id: Any, text: str,
                     metadata: Optional[Dict[str, Any]] = None) -> IndexResult:
        """Index a source record, deriving its logical key from the category."""
        category = _resolve_category(category)
        metadata = {**(metadata or {}), category.key_field: source_id}
        return self.index(category.key_for(source_id), text, metadata, category)

    def index_crawled_page(self, page, analysis) -> IndexResult:
        """Index an analyzed crawler page together with its analysis."""
        content = "\n\n".join(part for part in (
            page.title,
            page.description,
            page.content,
            analysis.summary,
            ", ".join(analysis.key_topics) if analysis.key_topics else None,
        ) if part)

        metadata = {
            "userId": page.user_id,
            "profileId": page.profile_id,
            "title": page.title,
            "url": page.url,
            "contentType": analysis.content_type or "unknown",
            "relevanceScore": analysis.relevance_score,
            "depth": page.depth,
            "jobId": page.job_id,
        }
        return self.index_record(CRAWLER_PAGE, page.id, content, metadata)

    def fetch_document(self, category: CategoryLike, source_id: Any,
                       user_id: Optional[int] = None) -> str:
        """Reassemble a logical document from its stored parts.

        Returns an empty string when no part is found.
        """
        category = _resolve_category(category)
        where: Dict[str, Any] = {"logicalKey": category.key_for(source_id)}
        if user_id is not None:
            where["userId"] = user_id

        records = self.store.list(category.collection, where=where, limit=self.config.list_cap)
        if not records:
            return ""

        parts = [DocumentPart(id=r.id, text=r.text, metadata=r.metadata) for r in records]
        expected = parts[0].total_parts
        if len(parts) < expected:
            logger.warning(f"Only {len(parts)} of {expected} parts found for {category.key_for(source_id)}")
        return reconstruct(parts)

    def search(self, query: str, user_id: int,
               categories: Optional[Iterable[CategoryLike]] = None,
               limit: int = 5) -> Dict[str, List[Any]]:
        """Similarity search across categories, restricted to one owner."""
        selected = [_resolve_category(c) for c in categories] if categories else list(CATEGORIES.values())
        results: Dict[str, List[Any]] = {}
        for category in selected:
            try:
                results[category.name] = self.store.query(
                    category.collection,
                    query,
                    where={"userId": user_id, "type": category.name},
                    limit=limit,
                )
            except Exception as e:
                logger.error(f"Search in {category.name} failed: {e}")
                results[category.name] = []
        return results
