"""
Knowledge Application Services
==============================

Repository interfaces and services that keep article embeddings in step
with the article store.

- ``SimilarityStore``: upsert / delete / search article embeddings
- ``ArticleIndexer``: schedules upserts on article events without blocking
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Set

import numpy as np

from helpdesk_ai.config import SearchMethod, settings
from helpdesk_ai.core.exceptions import ArticleNotFoundError
from helpdesk_ai.knowledge.domain import (
    Article,
    ArticleEmbedding,
    Chunk,
    EmbeddingStats,
    ScoredArticle,
    Vectorizer,
    chunk_spans,
    cosine_similarity,
)
from helpdesk_ai.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Repository Interfaces ==========

class IArticleRepository(ABC):
    """Interface for read access to knowledge-base articles."""

    @abstractmethod
    async def get_by_id(self, article_id: str) -> Optional[Article]:
        """Get an article by ID."""

    @abstractmethod
    async def get_many(self, article_ids: Sequence[str]) -> dict[str, Article]:
        """Get articles by ID, keyed by ID. Missing IDs are omitted."""

    @abstractmethod
    async def list_published(self) -> List[Article]:
        """All published articles."""

    @abstractmethod
    async def search_text(self, terms: Sequence[str], limit: int) -> List[Article]:
        """Published articles containing any of ``terms`` as a whole word."""

    @abstractmethod
    async def search_substring(self, query: str, limit: int) -> List[Article]:
        """Published articles whose title/body contain ``query`` or whose tags equal it."""

    @abstractmethod
    async def save(self, article: Article) -> Article:
        """Insert or update an article."""


class IEmbeddingRepository(ABC):
    """Interface for article embedding storage."""

    @abstractmethod
    async def get(self, article_id: str) -> Optional[ArticleEmbedding]:
        """Embedding for an article, if any."""

    @abstractmethod
    async def save(self, embedding: ArticleEmbedding) -> None:
        """Insert or replace the embedding for ``embedding.article_id``."""

    @abstractmethod
    async def delete(self, article_id: str) -> bool:
        """Delete an article's embedding. Returns whether one existed."""

    @abstractmethod
    async def list_all(self) -> List[ArticleEmbedding]:
        """Every stored embedding."""


@dataclass
class BackendHit:
    """One result from the managed search backend."""
    article_id: str
    score: float


class ISearchBackend(ABC):
    """Interface for the managed (external) search index."""

    @abstractmethod
    async def is_available(self) -> bool:
        """Cheap readiness probe."""

    @abstractmethod
    async def vector_search(self, vector: np.ndarray, limit: int) -> List[BackendHit]:
        """Nearest neighbours of ``vector``."""

    @abstractmethod
    async def hybrid_search(
        self,
        query: str,
        vector: np.ndarray,
        limit: int,
        vector_weight: float
    ) -> List[BackendHit]:
        """Weighted vector + text ranking."""

    @abstractmethod
    async def text_search(self, query: str, limit: int) -> List[BackendHit]:
        """Full-text ranking."""

    @abstractmethod
    async def index(self, embedding: ArticleEmbedding, article: Article) -> None:
        """Write one article embedding to the index."""

    @abstractmethod
    async def remove(self, article_id: str) -> None:
        """Remove an article from the index."""


# ========== Application Services ==========

class SimilarityStore:
    """
    Keeps one embedding per published article and answers similarity queries.

    Embeddings are refreshed only when the article changed after the stored
    embedding was written.
    """

    def __init__(
        self,
        articles: IArticleRepository,
        embeddings: IEmbeddingRepository,
        vectorizer: Optional[Vectorizer] = None,
        backend: Optional[ISearchBackend] = None,
        model_tag: Optional[str] = None,
    ):
        self._articles = articles
        self._embeddings = embeddings
        self._vectorizer = vectorizer or Vectorizer()
        self._backend = backend
        self._model_tag = model_tag or settings.embedding_model_tag

    @property
    def vectorizer(self) -> Vectorizer:
        return self._vectorizer

    async def upsert(self, article_id: str) -> Optional[ArticleEmbedding]:
        """
        Create or refresh the embedding for one article.

        Args:
            article_id: Article to embed

        Returns:
            The current embedding, or None when the article is unpublished

        Raises:
            ArticleNotFoundError: If the article does not exist
        """
        article = await self._articles.get_by_id(article_id)
        if article is None:
            raise ArticleNotFoundError(article_id)

        if not article.is_published:
            await self.delete(article_id)
            logger.info("Skipping unpublished article", extra={"article_id": article_id})
            return None

        existing = await self._embeddings.get(article_id)
        if existing is not None and not existing.is_stale_for(article):
            return existing

        embedding = self._build_embedding(article)
        await self._embeddings.save(embedding)

        if self._backend is not None:
            try:
                await self._backend.index(embedding, article)
            except Exception as e:
                logger.warning(
                    "Backend indexing failed",
                    extra={"article_id": article_id, "error": str(e)}
                )

        logger.info(
            "Article embedding stored",
            extra={"article_id": article_id, "chunks": len(embedding.chunks)}
        )
        return embedding

    def _build_embedding(self, article: Article) -> ArticleEmbedding:
        content = article.embedding_content
        vector = self._vectorizer.fit(self._vectorizer.embed(content))

        chunks: List[Chunk] = []
        if len(content) > settings.chunk_threshold:
            spans = chunk_spans(content, settings.chunk_size, settings.chunk_overlap)
            vectors = self._vectorizer.embed_batch(content[start:end] for start, end in spans)
            chunks = [
                Chunk(text=content[start:end], vector=chunk_vector, start_index=start, end_index=end)
                for (start, end), chunk_vector in zip(spans, vectors)
            ]

        return ArticleEmbedding(
            article_id=article.id,
            vector=vector,
            model=self._model_tag,
            content=content[:settings.stored_content_limit],
            chunks=chunks,
            last_updated=datetime.now(timezone.utc),
        )

    async def find_similar(
        self,
        query_vector: Sequence[float],
        limit: int,
        threshold: Optional[float] = None
    ) -> List[ScoredArticle]:
        """
        Published articles whose similarity to ``query_vector`` reaches ``threshold``.

        An article's similarity is the best of its whole-article vector and
        its chunk vectors. Results are sorted by score, highest first.
        """
        threshold = settings.similarity_threshold if threshold is None else threshold
        query = self._vectorizer.fit(query_vector)

        embeddings = await self._embeddings.list_all()
        if not embeddings:
            return []
        articles = await self._articles.get_many([e.article_id for e in embeddings])

        scored: List[ScoredArticle] = []
        for embedding in embeddings:
            article = articles.get(embedding.article_id)
            if article is None or not article.is_published:
                continue

            similarity = cosine_similarity(query, self._vectorizer.fit(embedding.vector))
            for chunk in embedding.chunks:
                similarity = max(similarity, cosine_similarity(query, self._vectorizer.fit(chunk.vector)))

            if similarity >= threshold:
                percent = similarity * 100
                scored.append(ScoredArticle(
                    article=article,
                    score=percent,
                    relevance_reason=f"Vector similarity: {percent:.1f}%",
                    search_method=SearchMethod.VECTOR,
                ))

        scored.sort(key=lambda s: s.score, reverse=True)
        return scored[:limit]

    async def delete(self, article_id: str) -> None:
        """Remove an article's embedding. Safe to call when none exists."""
        removed = await self._embeddings.delete(article_id)
        if self._backend is not None:
            try:
                await self._backend.remove(article_id)
            except Exception as e:
                logger.warning(
                    "Backend removal failed",
                    extra={"article_id": article_id, "error": str(e)}
                )
        if removed:
            logger.info("Article embedding deleted", extra={"article_id": article_id})

    async def generate_all(self, pause_seconds: Optional[float] = None) -> dict:
        """
        Upsert every published article, one at a time.

        Cancelling the surrounding task stops between articles; an article
        is never left with a partially written embedding.

        Returns:
            ``{"processed": n, "errors": m}``
        """
        pause = settings.embedding_batch_pause_seconds if pause_seconds is None else pause_seconds
        articles = await self._articles.list_published()

        processed = 0
        errors = 0
        for index, article in enumerate(articles):
            try:
                await self.upsert(article.id)
                processed += 1
            except Exception as e:
                errors += 1
                logger.error(
                    "Embedding generation failed",
                    extra={"article_id": article.id, "error": str(e)}
                )
            if pause > 0 and index < len(articles) - 1:
                await asyncio.sleep(pause)

        logger.info(
            "Bulk embedding generation finished",
            extra={"processed": processed, "errors": errors}
        )
        return {"processed": processed, "errors": errors}

    async def stats(self) -> EmbeddingStats:
        """Coverage and freshness of stored embeddings."""
        published = {a.id: a for a in await self._articles.list_published()}
        embeddings = [e for e in await self._embeddings.list_all() if e.article_id in published]

        now = datetime.now(timezone.utc)
        needing_update = sum(1 for e in embeddings if e.is_stale_for(published[e.article_id]))
        ages = [(now - e.last_updated).total_seconds() / 86400 for e in embeddings]

        return EmbeddingStats(
            total_articles=len(published),
            articles_with_embeddings=len(embeddings),
            embeddings_needing_update=needing_update,
            average_embedding_age_days=round(sum(ages) / len(ages), 2) if ages else 0.0,
            model=self._model_tag,
        )


class ArticleIndexer:
    """
    Reacts to article lifecycle events by scheduling embedding work.

    ``article_saved`` and ``article_removed`` return immediately; the upsert
    or delete runs as a tracked background task.
    """

    def __init__(self, store: SimilarityStore):
        self._store = store
        self._tasks: Set[asyncio.Task] = set()

    def article_saved(self, article_id: str) -> asyncio.Task:
        return self._spawn(self._store.upsert(article_id), article_id, "upsert")

    def article_removed(self, article_id: str) -> asyncio.Task:
        return self._spawn(self._store.delete(article_id), article_id, "delete")

    def _spawn(self, coro, article_id: str, operation: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=f"embedding-{operation}-{article_id}")
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, article_id, operation))
        return task

    def _on_done(self, task: asyncio.Task, article_id: str, operation: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Background embedding task failed",
                extra={"article_id": article_id, "operation": operation, "error": str(error)}
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait for every scheduled task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def reindex(self, article_ids: Iterable[str]) -> None:
        """Schedule upserts for many articles and wait for them."""
        for article_id in article_ids:
            self.article_saved(article_id)
        await self.wait_idle()
