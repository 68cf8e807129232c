"""
Knowledge Domain Entities
=========================

Domain entities for the knowledge-base module.

Plain data objects for articles, their embeddings and retrieval results.
Behavior (embedding, scoring, context assembly) lives in the vectorizer and
the application services.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional

import numpy as np

from helpdesk_ai.config import ArticleStatus, SearchMethod


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Article:
    """
    Knowledge-base article.

    Owned by the article store; the pipeline only reads it.
    """
    id: str
    title: str
    body: str
    tags: List[str] = field(default_factory=list)
    status: str = ArticleStatus.PUBLISHED
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def is_published(self) -> bool:
        return self.status == ArticleStatus.PUBLISHED

    @property
    def embedding_content(self) -> str:
        """Text that gets embedded for this article."""
        return f"{self.title}\n\n{self.body}"

    @property
    def context_text(self) -> str:
        """Text counted against the drafting context budget."""
        return f"{self.title} {self.body}"


@dataclass
class Chunk:
    """Embedded slice of a long article."""
    text: str
    vector: np.ndarray
    start_index: int
    end_index: int


@dataclass
class ArticleEmbedding:
    """
    Stored embedding for one article.

    Re-created when the article's ``updated_at`` is newer than
    ``last_updated``; deleted when the article is unpublished or removed.
    """
    article_id: str
    vector: np.ndarray
    model: str
    content: str
    chunks: List[Chunk] = field(default_factory=list)
    last_updated: datetime = field(default_factory=_utcnow)

    def is_stale_for(self, article: Article) -> bool:
        return article.updated_at > self.last_updated


@dataclass
class ScoredArticle:
    """An article with the score and tier that retrieved it."""
    article: Article
    score: float
    relevance_reason: str
    search_method: str


@dataclass
class RetrievalContext:
    """
    Token-bounded prefix of ranked articles handed to the drafter.
    """
    query: str
    articles: List[ScoredArticle]
    total_tokens: int
    max_context_length: int
    relevance_scores: List[float]


@dataclass
class RAGResult:
    """
    Result of a retrieval run.

    ``search_method`` names the tier that produced ``articles``.
    """
    articles: List[ScoredArticle]
    query: str
    search_method: str = SearchMethod.KEYWORD
    total_matches: int = 0
    execution_time_ms: float = 0.0
    backend_metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def article_ids(self) -> List[str]:
        return [scored.article.id for scored in self.articles]


@dataclass
class EmbeddingStats:
    """Coverage of the similarity store over published articles."""
    total_articles: int
    articles_with_embeddings: int
    embeddings_needing_update: int
    average_embedding_age_days: float
    model: Optional[str] = None

    @property
    def coverage(self) -> float:
        if self.total_articles == 0:
            return 0.0
        return self.articles_with_embeddings / self.total_articles
