"""LLM content analysis for crawled pages.

The analyzer never raises: network errors, timeouts and unparsable model
output all degrade to a low-confidence ``ContentAnalysis``.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from config.settings import AnalyzerConfig
from observability.metrics import record_analysis

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """Analyze the following web page content and provide:
1. A concise summary (2-3 sentences)
2. Key topics/themes (array of strings)
3. Content type (article, news, blog, documentation, etc.)
4. Relevance score (1-10)
5. Main insights or takeaways

Return as JSON with these fields: summary, keyTopics, contentType, relevanceScore, insights"""

DEFAULT_RELEVANCE = 5

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


@dataclass
class ContentAnalysis:
    """Structured result of analyzing a page."""
    summary: str
    key_topics: List[str] = field(default_factory=list)
    content_type: str = "unknown"
    relevance_score: float = DEFAULT_RELEVANCE
    insights: List[str] = field(default_factory=list)

    @classmethod
    def failed(cls) -> 'ContentAnalysis':
        return cls(summary="Analysis failed")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ContentAnalysis':
        """Build from model output, tolerating missing or oddly typed fields."""
        topics = data.get("keyTopics") or data.get("key_topics") or []
        insights = data.get("insights") or []
        if isinstance(topics, str):
            topics = [topics]
        if isinstance(insights, str):
            insights = [insights]

        score = data.get("relevanceScore", data.get("relevance_score", DEFAULT_RELEVANCE))
        try:
            score = float(score)
        except (TypeError, ValueError):
            score = DEFAULT_RELEVANCE

        return cls(
            summary=str(data.get("summary") or ""),
            key_topics=[str(t) for t in topics],
            content_type=str(data.get("contentType") or data.get("content_type") or "unknown"),
            relevance_score=score,
            insights=[str(i) for i in insights],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "keyTopics": list(self.key_topics),
            "contentType": self.content_type,
            "relevanceScore": self.relevance_score,
            "insights": list(self.insights),
        }


def parse_analysis(raw: str) -> ContentAnalysis:
    """Parse the model's reply; non-JSON replies become the summary."""
    text = raw.strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        logger.debug("Analysis reply was not JSON; using it as the summary")
        return ContentAnalysis(summary=raw)

    if not isinstance(data, dict):
        return ContentAnalysis(summary=raw)
    return ContentAnalysis.from_dict(data)


class ContentAnalyzer:
    """Summarizes page content with an OpenAI chat model."""

    def __init__(self, config: Optional[AnalyzerConfig] = None, client: Optional[AsyncOpenAI] = None):
        self.config = config or AnalyzerConfig.from_env()
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.config.api_key, base_url=self.config.base_url)
        return self._client

    async def analyze(self, text: str) -> ContentAnalysis:
        """Analyze ``text``, truncated to the configured input budget."""
        content = text[:self.config.max_input_chars]

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.config.model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": content},
                    ],
                    temperature=self.config.temperature,
                ),
                timeout=self.config.timeout,
            )
            reply = response.choices[0].message.content
        except asyncio.TimeoutError:
            logger.warning(f"Content analysis timed out after {self.config.timeout}s")
            record_analysis("timeout")
            return ContentAnalysis.failed()
        except Exception as e:
            logger.error(f"AI analysis failed: {e}")
            record_analysis("error")
            return ContentAnalysis.failed()

        if not reply:
            logger.warning("No analysis received from the model")
            record_analysis("empty")
            return ContentAnalysis.failed()

        record_analysis("ok")
        return parse_analysis(reply)
