"""Heuristic priority scoring for crawled pages.

The score only decides whether a page is worth sending to the content
analyzer; it never changes the order in which pages are visited.
"""

from typing import Iterable, Optional

DEFAULT_ARTICLE_KEYWORDS = ('article', 'post', 'blog', 'news', 'story', 'tutorial')

MIN_PRIORITY = 1
MAX_PRIORITY = 10


def score_page(page, depth: int, keywords: Optional[Iterable[str]] = None) -> int:
    """Score a fetched page from 1 (skip) to 10 (analyze first).

    Starts at ``10 - depth`` and adds 2 for more than 500 characters of
    text, 1 for a title longer than 10 characters, 1 for a description
    longer than 50 characters and 3 when the title or description contains
    an article-like keyword. The sum is clamped to [1, 10].

    Args:
        page: Object with ``title``, ``description`` and ``text`` attributes
        depth: Depth at which the page was visited (root is 1)
        keywords: Override for the article keyword list
    """
    title = page.title or ""
    description = page.description or ""
    text = page.text or ""

    priority = 10 - depth

    if len(text) > 500:
        priority += 2
    if len(title) > 10:
        priority += 1
    if len(description) > 50:
        priority += 1

    haystacks = (title.lower(), description.lower())
    words = keywords if keywords is not None else DEFAULT_ARTICLE_KEYWORDS
    if any(keyword.lower() in hay for keyword in words for hay in haystacks):
        priority += 3

    return max(MIN_PRIORITY, min(MAX_PRIORITY, priority))
