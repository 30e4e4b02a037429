import random

import pytest

from pipelines.chunker import (
    TRUNCATION_MARKER,
    ContentChunker,
    DocumentPart,
    reconstruct,
    split_content,
    truncate_content,
    truncate_utf8,
    utf8_len,
)


def test_small_text_is_returned_unchanged():
    """Text within the budget comes back as the only part, whitespace intact."""
    text = "Short  text\nwith   spacing"
    assert split_content(text, max_bytes=1000) == [text]


def test_empty_text_is_a_single_empty_part():
    assert split_content("", max_bytes=100) == [""]


def test_oversized_blank_text_has_no_parts():
    assert split_content(" \n\t" * 50, max_bytes=100) == []


def test_parts_respect_byte_budget():
    text = " ".join(f"word{i}" for i in range(2000))
    parts = split_content(text, max_bytes=300)
    assert len(parts) > 1
    assert all(utf8_len(p) <= 300 for p in parts)


def test_reconstruct_restores_word_sequence():
    text = " ".join(f"token{i}" for i in range(1500))
    parts = split_content(text, max_bytes=256)
    assert reconstruct(parts) == text


def test_reconstruct_collapses_whitespace_runs():
    text = "alpha   beta\n\ngamma " * 100
    parts = split_content(text, max_bytes=120)
    assert reconstruct(parts) == " ".join(text.split())


def test_multibyte_text_measured_in_bytes():
    """Budget is UTF-8 bytes, not characters."""
    text = " ".join(["日本語のテキスト"] * 200)
    parts = split_content(text, max_bytes=100)
    assert all(utf8_len(p) <= 100 for p in parts)
    assert reconstruct(parts) == text


def test_oversized_word_becomes_its_own_part():
    giant = "x" * 500
    text = f"before {giant} after " + "filler " * 50
    parts = split_content(text, max_bytes=100)
    assert giant in parts
    assert parts[0] == "before"


def test_reconstruct_orders_document_parts_by_index():
    texts = ["zero", "one", "two", "three"]
    parts = [
        DocumentPart(id=f"p{i}", text=t, metadata={"partIndex": i, "totalParts": len(texts)})
        for i, t in enumerate(texts)
    ]
    random.Random(7).shuffle(parts)
    assert reconstruct(parts) == "zero one two three"


def test_reconstruct_orders_index_tuples():
    assert reconstruct([(2, "c"), (0, "a"), (1, "b")]) == "a b c"


def test_chunker_rejects_non_positive_budget():
    with pytest.raises(ValueError):
        ContentChunker(0)


def test_truncate_utf8_never_splits_characters():
    text = "é" * 10  # 2 bytes each
    cut = truncate_utf8(text, 5)
    assert cut == "éé"
    assert utf8_len(cut) <= 5


def test_truncate_content_adds_marker():
    text = "lorem ipsum " * 100
    result = truncate_content(text, max_bytes=100)
    assert result.endswith(TRUNCATION_MARKER)
    assert utf8_len(result) <= 100


def test_truncate_content_leaves_short_text():
    assert truncate_content("short", max_bytes=100) == "short"
