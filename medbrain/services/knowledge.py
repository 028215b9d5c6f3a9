"""
Knowledge Retrieval

`retrieve(query, max_chunks, max_chars_per_chunk, agent_scope)` returns a
markdown block of reference excerpts, or "" when nothing relevant is
found. Callers treat any failure as empty context.

`InMemoryKnowledgeRetriever` ranks paragraph chunks by keyword overlap
(set cosine over normalised tokens). Articles can be restricted to a set of
agents; `agent_scope` selects what a given agent may see.
"""
import math
import re
import unicodedata
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Optional, Protocol, Set, Tuple

from medbrain.utils import get_logger, KnowledgeRetrievalError

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9]{3,}")
_STOPWORDS = frozenset({
    "the", "and", "for", "with", "that", "this", "from", "are", "was", "not",
    "com", "para", "que", "uma", "dos", "das", "nos", "nas", "por", "como", "mais",
})


class KnowledgeRetriever(Protocol):
    async def retrieve(
        self,
        query: str,
        max_chunks: int = 5,
        max_chars_per_chunk: int = 1000,
        agent_scope: Optional[str] = None,
    ) -> str: ...


@dataclass
class KnowledgeArticle:
    id: str
    title: str
    content: str
    category: str = "general"
    source: Optional[str] = None
    agent_ids: Optional[FrozenSet[str]] = None   # None = visible to every agent

    def visible_to(self, agent_scope: Optional[str]) -> bool:
        if agent_scope is None or self.agent_ids is None:
            return True
        return agent_scope in self.agent_ids


@dataclass
class _Chunk:
    article: KnowledgeArticle
    text: str
    tokens: Set[str] = field(default_factory=set)


def tokenize(text: str) -> Set[str]:
    decomposed = unicodedata.normalize("NFD", (text or "").lower())
    plain = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return {t for t in _TOKEN_RE.findall(plain) if t not in _STOPWORDS}


class InMemoryKnowledgeRetriever:
    """Keyword-overlap retriever over in-memory articles."""

    def __init__(self, articles: Iterable[KnowledgeArticle] = (), min_score: float = 0.05):
        self.min_score = min_score
        self._chunks: List[_Chunk] = []
        for article in articles:
            self.add_article(article)

    def add_article(self, article: KnowledgeArticle) -> None:
        for paragraph in re.split(r"\n\s*\n", article.content):
            paragraph = paragraph.strip()
            if paragraph:
                self._chunks.append(_Chunk(article, paragraph, tokenize(paragraph)))

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    def search(
        self,
        query: str,
        limit: int,
        agent_scope: Optional[str] = None,
    ) -> List[Tuple[float, _Chunk]]:
        query_tokens = tokenize(query)
        if not query_tokens:
            return []

        scored = []
        for chunk in self._chunks:
            if not chunk.tokens or not chunk.article.visible_to(agent_scope):
                continue
            overlap = len(query_tokens & chunk.tokens)
            if not overlap:
                continue
            score = overlap / math.sqrt(len(query_tokens) * len(chunk.tokens))
            if score >= self.min_score:
                scored.append((score, chunk))

        scored.sort(key=lambda item: item[0], reverse=True)
        return scored[:limit]

    async def retrieve(
        self,
        query: str,
        max_chunks: int = 5,
        max_chars_per_chunk: int = 1000,
        agent_scope: Optional[str] = None,
    ) -> str:
        """
        Raises:
            KnowledgeRetrievalError: non-positive chunk or character limits
        """
        if max_chunks < 1 or max_chars_per_chunk < 1:
            raise KnowledgeRetrievalError(
                "Invalid retrieval limits",
                {"maxChunks": max_chunks, "maxCharsPerChunk": max_chars_per_chunk},
            )
        results = self.search(query, max_chunks, agent_scope)
        if not results:
            logger.debug(f"Knowledge: no chunks for scope={agent_scope}")
            return ""

        parts = []
        for score, chunk in results:
            text = chunk.text
            if len(text) > max_chars_per_chunk:
                text = text[:max_chars_per_chunk] + "..."
            parts.append(
                f"\n### {chunk.article.title} ({chunk.article.category})\n"
                f"**Source:** {chunk.article.source or 'Knowledge base'}\n"
                f"**Relevance:** {score * 100:.0f}%\n\n"
                f"{text}\n"
            )

        articles = {chunk.article.id for _, chunk in results}
        logger.info(
            f"Knowledge: {len(results)} chunk(s) from {len(articles)} article(s) "
            f"for scope={agent_scope}"
        )
        return "\n---\n".join(parts)


DEFAULT_ARTICLES = (
    KnowledgeArticle(
        id="vitamin-d-functional-ranges",
        title="Vitamin D: functional ranges and repletion",
        category="vitamins",
        source="Endocrine Society Clinical Practice Guideline 2011",
        content=(
            "Serum 25-OH vitamin D between 40 and 80 ng/mL supports immune modulation, "
            "bone mineralisation and muscle function. Values below 30 ng/mL are insufficient.\n\n"
            "Repletion with vitamin D3 is more effective when taken with fat-containing meals "
            "and paired with vitamin K2 and magnesium as cofactors."
        ),
    ),
    KnowledgeArticle(
        id="insulin-resistance",
        title="Insulin resistance: early markers",
        category="metabolism",
        source="Kraft, Diabetes Epidemic & You",
        content=(
            "Fasting insulin above 6 uIU/mL and HOMA-IR above 1.5 identify insulin resistance "
            "years before fasting glucose rises.\n\n"
            "Resistance training and zone 2 aerobic exercise improve insulin sensitivity "
            "independently of weight loss. Meals built around protein and fibre flatten the "
            "post-prandial glucose curve."
        ),
    ),
    KnowledgeArticle(
        id="iron-stores",
        title="Ferritin and iron stores",
        category="hematology",
        source="WHO Ferritin Guideline 2020",
        content=(
            "Ferritin below 50 ng/mL reflects depleted iron stores even when hemoglobin is normal, "
            "and commonly presents as fatigue, hair loss and reduced exercise tolerance.\n\n"
            "Alternate-day iron dosing increases fractional absorption. Coffee, tea and calcium "
            "reduce absorption; vitamin C improves it."
        ),
    ),
    KnowledgeArticle(
        id="sarcopenia-screening",
        title="Sarcopenia screening with functional tests",
        category="exercise",
        source="EWGSOP2 Consensus 2019",
        content=(
            "A five-repetition sit-to-stand time above 15 seconds indicates low lower-limb "
            "muscle power and a high risk of sarcopenia.\n\n"
            "Handgrip strength below 27 kg in men or 16 kg in women confirms probable sarcopenia. "
            "Progressive resistance training two to three times per week is first-line treatment."
        ),
    ),
    KnowledgeArticle(
        id="thyroid-conversion",
        title="Thyroid hormone conversion",
        category="hormones",
        source="AACE Thyroid Guidelines",
        content=(
            "TSH above 2.5 uIU/mL with low-normal free T4 may indicate early hypothyroidism. "
            "Low free T3 with normal TSH suggests impaired peripheral conversion.\n\n"
            "Selenium, zinc and iron are cofactors for deiodinase enzymes that convert T4 to T3."
        ),
    ),
)


def default_retriever() -> InMemoryKnowledgeRetriever:
    return InMemoryKnowledgeRetriever(DEFAULT_ARTICLES)


async def retrieve_or_empty(
    retriever: Optional[KnowledgeRetriever],
    query: str,
    max_chunks: int,
    max_chars_per_chunk: int,
    agent_scope: Optional[str] = None,
) -> str:
    """Retrieval that degrades to "" on any failure."""
    if retriever is None:
        return ""
    try:
        return await retriever.retrieve(query, max_chunks, max_chars_per_chunk, agent_scope) or ""
    except Exception as e:
        logger.warning(f"Knowledge: retrieval failed for scope={agent_scope}: {e}")
        return ""
