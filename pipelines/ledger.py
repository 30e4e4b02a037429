"""In-memory dedup ledger for vector indexing.

The vector store cannot be scanned exhaustively: each listing call returns
at most ``list_cap`` records. The ledger therefore only knows the logical
documents it saw in those capped listings plus everything written during
the current session. For corpora larger than the cap some already-indexed
documents go unrecognised and are written again as duplicate parts, which
is harmless for retrieval.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Set

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentCategory:
    """A kind of logical document and how its key is derived."""
    name: str
    collection: str
    key_field: str
    key_prefix: str

    def key_for(self, source_id: Any) -> str:
        return f"{self.key_prefix}{source_id}"


CHAT_MESSAGE = DocumentCategory("chat_message", "chat_messages", "messageId", "msg_")
URL_CONTENT = DocumentCategory("url_content", "url_content", "urlId", "url_")
URL_ANALYSIS = DocumentCategory("url_analysis", "url_analysis", "urlId", "analysis_")
CRAWLER_PAGE = DocumentCategory("crawler_page", "url_content", "pageId", "crawl_page_")

CATEGORIES: Dict[str, DocumentCategory] = {
    c.name: c for c in (CHAT_MESSAGE, URL_CONTENT, URL_ANALYSIS, CRAWLER_PAGE)
}


def get_category(name: str) -> DocumentCategory:
    try:
        return CATEGORIES[name]
    except KeyError:
        raise ValueError(f"Unknown document category: {name}")


def derive_key(category: DocumentCategory, metadata: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Derive the logical key of a stored record, or None if it carries no source id."""
    if not metadata:
        return None
    source_id = metadata.get(category.key_field)
    if source_id is None or source_id == "":
        return None
    return category.key_for(source_id)


class DedupLedger:
    """Set of logical keys believed to be present in the vector store."""

    def __init__(self, store=None, list_cap: int = 100,
                 categories: Optional[Iterable[DocumentCategory]] = None):
        self.store = store
        self.list_cap = list_cap
        self.categories = list(categories) if categories is not None else list(CATEGORIES.values())
        self._keys: Set[str] = set()
        self._lock = threading.Lock()
        self.loaded = False

    def load(self) -> Dict[str, int]:
        """Prime the ledger from one capped listing per category.

        Returns the number of keys found per category. A category whose
        listing fails is logged and contributes nothing.
        """
        found: Dict[str, int] = {}
        if self.store is None:
            logger.warning("Dedup ledger has no vector store; starting empty")
            self.loaded = True
            return found

        for category in self.categories:
            try:
                records = self.store.list(
                    category.collection,
                    where={"type": category.name},
                    limit=self.list_cap,
                )
            except Exception as e:
                logger.warning(f"Could not list existing '{category.name}' records: {e}")
                found[category.name] = 0
                continue

            keys = {k for k in (derive_key(category, r.metadata) for r in records) if k}
            with self._lock:
                self._keys.update(keys)
            found[category.name] = len(keys)

            if len(records) >= self.list_cap:
                logger.info(
                    f"Found {len(keys)} existing {category.name} documents "
                    f"(listing capped at {self.list_cap}; older documents may be re-indexed)"
                )
            else:
                logger.info(f"Found {len(keys)} existing {category.name} documents")

        self.loaded = True
        return found

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    def mark(self, key: str) -> None:
        with self._lock:
            self._keys.add(key)

    def __contains__(self, key: str) -> bool:
        return self.contains(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
