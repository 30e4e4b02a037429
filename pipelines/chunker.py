"""Byte-bounded content chunking for the vector store.

The vector store rejects any document larger than a fixed number of
UTF-8 bytes, so long page contents are split on word boundaries into
ordered parts that each fit a byte budget. Parts are stored as
independent records and stitched back together in ``partIndex`` order.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple, Union

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = " [TRUNCATED]"


def utf8_len(text: str) -> int:
    """Length of ``text`` in UTF-8 bytes."""
    return len(text.encode('utf-8'))


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Cut ``text`` to at most ``max_bytes`` UTF-8 bytes without splitting a character."""
    if max_bytes <= 0:
        return ""
    encoded = text.encode('utf-8')
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode('utf-8', errors='ignore')


@dataclass
class DocumentPart:
    """One stored slice of a logical document."""
    id: str
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def part_index(self) -> int:
        return int(self.metadata.get('partIndex', 0))

    @property
    def total_parts(self) -> int:
        return int(self.metadata.get('totalParts', 1))


class ContentChunker:
    """Splits text into word-aligned parts that fit a UTF-8 byte budget."""

    def __init__(self, max_bytes: int = 14000):
        """Initialize chunker.

        Args:
            max_bytes: Byte budget for a single part. Keep it a few hundred
                bytes below the store's document limit.
        """
        if max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        self.max_bytes = max_bytes

    def split(self, text: str) -> List[str]:
        """Split ``text`` into ordered parts.

        Text whose UTF-8 size fits the budget is returned unchanged as the
        only part. Longer text is split on whitespace, collapsing each
        whitespace run to a single space. A word larger than the budget
        becomes a part of its own. Over-budget text made only of whitespace
        has no words to keep and yields an empty list.
        """
        if utf8_len(text) <= self.max_bytes:
            return [text]

        parts: List[str] = []
        current_words: List[str] = []
        current_bytes = 0

        for word in text.split():
            word_bytes = utf8_len(word + " ")
            if current_bytes + word_bytes <= self.max_bytes:
                current_words.append(word)
                current_bytes += word_bytes
            else:
                if current_words:
                    parts.append(" ".join(current_words))
                current_words = [word]
                current_bytes = word_bytes

        if current_words:
            parts.append(" ".join(current_words))

        oversized = sum(1 for p in parts if utf8_len(p) > self.max_bytes)
        if oversized:
            logger.warning(f"{oversized} part(s) exceed the {self.max_bytes} byte budget (single oversized words)")

        logger.debug(f"Split {utf8_len(text)} bytes into {len(parts)} parts")
        return parts


def split_content(text: str, max_bytes: int = 14000) -> List[str]:
    """Convenience wrapper around :class:`ContentChunker`."""
    return ContentChunker(max_bytes).split(text)


PartLike = Union[str, DocumentPart, Tuple[int, str]]


def reconstruct(parts: Iterable[PartLike]) -> str:
    """Join parts back into one text.

    Plain strings are taken in the order given. ``DocumentPart`` objects and
    ``(part_index, text)`` tuples are ordered by part index first, so the
    output of an unordered store listing can be passed straight in.
    """
    indexed: List[Tuple[int, str]] = []
    for position, part in enumerate(parts):
        if isinstance(part, DocumentPart):
            indexed.append((part.part_index, part.text))
        elif isinstance(part, tuple):
            indexed.append((int(part[0]), part[1]))
        else:
            indexed.append((position, part))

    indexed.sort(key=lambda item: item[0])
    return " ".join(text for _, text in indexed)


def truncate_content(text: str, max_bytes: int, ratio: float = 0.9) -> str:
    """Shorten ``text`` to fit ``max_bytes`` with a truncation marker.

    Used where splitting is not an option (single-record stores and
    previews). The cut lands on the last word boundary inside
    ``ratio * max_bytes`` bytes when there is one.
    """
    if utf8_len(text) <= max_bytes:
        return text

    budget = min(int(max_bytes * ratio), max_bytes - utf8_len(TRUNCATION_MARKER))
    truncated = truncate_utf8(text, budget)
    last_space = truncated.rfind(' ')
    if last_space > 0:
        truncated = truncated[:last_space]
    return truncated + TRUNCATION_MARKER
