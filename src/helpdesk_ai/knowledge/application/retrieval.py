"""
Retrieval Services
==================

Ranks knowledge-base articles for a query and assembles drafting context.

The orchestrator walks a fixed chain of search tiers, stopping at the first
that produces results:

    backend-vector -> backend-hybrid -> backend-text      (managed backend up)
    vector -> hybrid -> keyword                           (local fallback)

A failing tier is logged and skipped. ``retrieve`` therefore never raises
for a non-empty query, except when the caller forces the managed backend
and it is down.
"""

import asyncio
import math
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from helpdesk_ai.config import SearchMethod, settings
from helpdesk_ai.core.exceptions import BackendUnavailableError
from helpdesk_ai.knowledge.application.services import (
    BackendHit,
    IArticleRepository,
    ISearchBackend,
    SimilarityStore,
)
from helpdesk_ai.knowledge.domain import (
    Article,
    RAGResult,
    RetrievalContext,
    ScoredArticle,
    tokenize,
)
from helpdesk_ai.shared.infrastructure.logging import get_context_logger, get_logger, log_latency

logger = get_logger(__name__)


def keyword_relevance(article: Article, terms: Sequence[str]) -> float:
    """+10 per term in the title, +8 per term in a tag, +1 per term in the body."""
    title = article.title.lower()
    body = article.body.lower()
    tags = [tag.lower() for tag in article.tags]

    score = 0.0
    for term in terms:
        if term in title:
            score += 10
        if any(term in tag for tag in tags):
            score += 8
        if term in body:
            score += 1
    return score


@dataclass
class AvailabilityProbe:
    """
    Cached answer to "is the managed backend up?".

    ``is_available`` trusts ``cached_value`` for ``ttl`` seconds after
    ``last_checked``; ``refresh`` always re-probes. A probe that raises or
    exceeds ``timeout`` counts as unavailable.
    """
    check: Callable[[], Awaitable[bool]]
    ttl: float = field(default_factory=lambda: settings.backend_probe_ttl_seconds)
    timeout: float = field(default_factory=lambda: settings.backend_probe_timeout_seconds)
    last_checked: Optional[float] = None
    cached_value: bool = False
    clock: Callable[[], float] = time.monotonic

    def is_fresh(self) -> bool:
        return self.last_checked is not None and self.clock() - self.last_checked < self.ttl

    async def refresh(self) -> bool:
        try:
            available = bool(await asyncio.wait_for(self.check(), timeout=self.timeout))
        except asyncio.TimeoutError:
            logger.warning("Backend availability probe timed out", extra={"timeout": self.timeout})
            available = False
        except Exception as e:
            logger.warning("Backend availability probe failed", extra={"error": str(e)})
            available = False

        self.cached_value = available
        self.last_checked = self.clock()
        return available

    async def is_available(self) -> bool:
        if self.is_fresh():
            return self.cached_value
        return await self.refresh()


async def _backend_disabled() -> bool:
    return False


class RetrievalOrchestrator:
    """
    Runs the retrieval fallback chain.

    The managed backend is optional; without one only the local tiers run.
    """

    def __init__(
        self,
        articles: IArticleRepository,
        store: SimilarityStore,
        backend: Optional[ISearchBackend] = None,
        probe: Optional[AvailabilityProbe] = None,
        hybrid_weight: Optional[float] = None,
        similarity_threshold: Optional[float] = None,
    ):
        self._articles = articles
        self._store = store
        self._backend = backend
        self._probe = probe or AvailabilityProbe(
            check=backend.is_available if backend is not None else _backend_disabled
        )
        self._hybrid_weight = settings.hybrid_weight if hybrid_weight is None else hybrid_weight
        self._threshold = (
            settings.similarity_threshold if similarity_threshold is None else similarity_threshold
        )

    @property
    def probe(self) -> AvailabilityProbe:
        return self._probe

    async def retrieve(
        self,
        query: str,
        limit: int = 5,
        use_vector_search: bool = True,
        force_backend: bool = False,
        trace_id: Optional[str] = None,
    ) -> RAGResult:
        """
        Rank articles for ``query``.

        Args:
            query: Free-text query (ticket title + description)
            limit: Max articles returned
            use_vector_search: Allow vector and hybrid tiers
            force_backend: Require the managed backend; bypasses the probe cache
            trace_id: Trace ID for log correlation

        Returns:
            RAGResult naming the tier that produced the articles

        Raises:
            BackendUnavailableError: Only with ``force_backend`` when the backend is down
        """
        log = get_context_logger(__name__, trace_id)
        start = time.perf_counter()
        metadata = {
            "backend_enabled": False,
            "vector_candidates": 0,
            "hybrid_weight": self._hybrid_weight,
            "fallback_reason": None,
        }

        if not query or not query.strip():
            return RAGResult(
                articles=[],
                query=query or "",
                search_method=SearchMethod.KEYWORD,
                total_matches=0,
                execution_time_ms=self._elapsed_ms(start),
                backend_metadata=metadata,
            )

        limit = max(1, limit)

        if force_backend:
            available = self._backend is not None and await self._probe.refresh()
            if not available:
                raise BackendUnavailableError()
        else:
            available = self._backend is not None and await self._probe.is_available()
        metadata["backend_enabled"] = available

        articles: List[ScoredArticle] = []
        method = SearchMethod.KEYWORD

        if available:
            articles, method = await self._backend_chain(query, limit, use_vector_search, log)
            if not articles:
                metadata["fallback_reason"] = "backend returned no results"

        if not articles and not force_backend:
            articles, method = await self._local_chain(query, limit, use_vector_search, metadata, log)

        result = RAGResult(
            articles=articles,
            query=query,
            search_method=method,
            total_matches=len(articles),
            execution_time_ms=self._elapsed_ms(start),
            backend_metadata=metadata,
        )
        log.info(
            "Retrieval completed",
            extra={
                "search_method": method,
                "total_matches": result.total_matches,
                "execution_time_ms": result.execution_time_ms,
            }
        )
        return result

    # ========== Managed backend tiers ==========

    async def _backend_chain(
        self,
        query: str,
        limit: int,
        use_vector_search: bool,
        log,
    ) -> Tuple[List[ScoredArticle], str]:
        results: List[ScoredArticle] = []
        method = SearchMethod.BACKEND_TEXT

        if use_vector_search:
            vector = None
            try:
                vector = self._store.vectorizer.embed(query)
                with log_latency(log, "retrieval_tier", tier=SearchMethod.BACKEND_VECTOR):
                    hits = await self._backend.vector_search(vector, limit)
                results = await self._hydrate(hits, SearchMethod.BACKEND_VECTOR)
                method = SearchMethod.BACKEND_VECTOR
            except Exception as e:
                log.warning("Backend vector search failed", extra={"error": str(e)})

            if vector is not None and len(results) < math.ceil(limit / 2):
                try:
                    with log_latency(log, "retrieval_tier", tier=SearchMethod.BACKEND_HYBRID):
                        hits = await self._backend.hybrid_search(query, vector, limit, self._hybrid_weight)
                    hybrid = await self._hydrate(hits, SearchMethod.BACKEND_HYBRID)
                    if len(hybrid) > len(results):
                        results, method = hybrid, SearchMethod.BACKEND_HYBRID
                except Exception as e:
                    log.warning("Backend hybrid search failed", extra={"error": str(e)})

        if not results:
            try:
                with log_latency(log, "retrieval_tier", tier=SearchMethod.BACKEND_TEXT):
                    hits = await self._backend.text_search(query, limit)
                results = await self._hydrate(hits, SearchMethod.BACKEND_TEXT)
                method = SearchMethod.BACKEND_TEXT
            except Exception as e:
                log.warning("Backend text search failed", extra={"error": str(e)})

        return results, method

    async def _hydrate(self, hits: List[BackendHit], method: str) -> List[ScoredArticle]:
        """Load backend hits as published articles, preserving backend order."""
        if not hits:
            return []
        articles = await self._articles.get_many([hit.article_id for hit in hits])

        scored: List[ScoredArticle] = []
        for hit in hits:
            article = articles.get(hit.article_id)
            if article is None or not article.is_published:
                continue
            rank = len(scored) + 1
            scored.append(ScoredArticle(
                article=article,
                score=round(hit.score, 2),
                relevance_reason=self._backend_reason(rank, hit.score, method),
                search_method=method,
            ))
        return scored

    @staticmethod
    def _backend_reason(rank: int, score: float, method: str) -> str:
        if method == SearchMethod.BACKEND_HYBRID:
            detail = "Combined semantic + keyword match"
        elif method == SearchMethod.BACKEND_TEXT:
            detail = "Keyword match"
        elif score > 0.8:
            detail = "High semantic similarity"
        elif score > 0.6:
            detail = "Good semantic match"
        else:
            detail = "Relevant content"
        return f"Rank #{rank} - {detail}"

    # ========== Local tiers ==========

    async def _local_chain(
        self,
        query: str,
        limit: int,
        use_vector_search: bool,
        metadata: dict,
        log,
    ) -> Tuple[List[ScoredArticle], str]:
        if use_vector_search:
            try:
                vector = self._store.vectorizer.embed(query)
                with log_latency(log, "retrieval_tier", tier=SearchMethod.VECTOR):
                    candidates = await self._store.find_similar(vector, limit * 2, self._threshold)
                metadata["vector_candidates"] = len(candidates)

                if len(candidates) >= min(3, limit):
                    return candidates[:limit], SearchMethod.VECTOR

                with log_latency(log, "retrieval_tier", tier=SearchMethod.HYBRID):
                    hybrid = await self._hybrid(query, candidates, limit)
                if hybrid:
                    return hybrid, SearchMethod.HYBRID
                metadata["fallback_reason"] = "no vector or hybrid matches"
            except Exception as e:
                log.warning("Local vector search failed", extra={"error": str(e)})
                metadata["fallback_reason"] = f"vector search failed: {e}"

        try:
            with log_latency(log, "retrieval_tier", tier=SearchMethod.KEYWORD):
                return await self.keyword_search(query, limit), SearchMethod.KEYWORD
        except Exception as e:
            log.error("Keyword search failed", extra={"error": str(e)})
            metadata["fallback_reason"] = f"keyword search failed: {e}"
            return [], SearchMethod.KEYWORD

    async def _hybrid(
        self,
        query: str,
        vector_candidates: List[ScoredArticle],
        limit: int,
    ) -> List[ScoredArticle]:
        """Merge vector and keyword scores by article, weighted ``w`` and ``1 - w``."""
        per_tier = math.ceil(self._hybrid_weight * limit) or 1
        keyword_results = await self.keyword_search(query, per_tier)

        merged: Dict[str, List] = {}
        for scored in vector_candidates[:per_tier]:
            merged[scored.article.id] = [scored.article, self._hybrid_weight * scored.score, scored.score, 0.0]
        for scored in keyword_results:
            weighted = (1 - self._hybrid_weight) * scored.score
            if scored.article.id in merged:
                merged[scored.article.id][1] += weighted
                merged[scored.article.id][3] = scored.score
            else:
                merged[scored.article.id] = [scored.article, weighted, 0.0, scored.score]

        results = [
            ScoredArticle(
                article=article,
                score=combined,
                relevance_reason=f"Hybrid: vector {vector_score:.1f} + keyword {keyword_score:.1f}",
                search_method=SearchMethod.HYBRID,
            )
            for article, combined, vector_score, keyword_score in merged.values()
        ]
        results.sort(key=lambda s: s.score, reverse=True)
        return results[:limit]

    async def keyword_search(self, query: str, limit: int) -> List[ScoredArticle]:
        """
        Token search over title, body and tags, then a substring fallback.

        Raises whatever the article repository raises; callers in the chain
        catch it.
        """
        terms = tokenize(query)
        scored: List[ScoredArticle] = []

        if terms:
            for article in await self._articles.search_text(terms, max(limit * 4, 20)):
                relevance = keyword_relevance(article, terms)
                if relevance > 0:
                    scored.append(ScoredArticle(
                        article=article,
                        score=relevance,
                        relevance_reason=f"Keyword match: {relevance:.0f} points",
                        search_method=SearchMethod.KEYWORD,
                    ))

        if not scored:
            needle = query.strip().lower()
            for article in await self._articles.search_substring(query.strip(), limit):
                relevance = keyword_relevance(article, terms)
                if relevance <= 0:
                    relevance = 50.0 if needle in article.title.lower() else 30.0
                scored.append(ScoredArticle(
                    article=article,
                    score=relevance,
                    relevance_reason="Text match",
                    search_method=SearchMethod.KEYWORD,
                ))

        scored.sort(key=lambda s: s.score, reverse=True)
        return scored[:limit]

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return round((time.perf_counter() - start) * 1000, 2)


class ContextBuilder:
    """Packs ranked articles into a token budget (1 token ~ 4 characters)."""

    def __init__(self, max_context_length: Optional[int] = None):
        self.max_context_length = max_context_length or settings.max_context_tokens

    @staticmethod
    def estimate_tokens(text: str) -> int:
        return math.ceil(len(text) / 4)

    def build_context(self, articles: List[ScoredArticle], query: str) -> RetrievalContext:
        """
        Longest rank-order prefix of ``articles`` that fits the budget.

        Stops at the first article that would overflow; later, smaller
        articles are not considered.
        """
        selected: List[ScoredArticle] = []
        total = 0
        for scored in articles:
            tokens = self.estimate_tokens(scored.article.context_text)
            if total + tokens > self.max_context_length:
                break
            selected.append(scored)
            total += tokens

        return RetrievalContext(
            query=query,
            articles=selected,
            total_tokens=total,
            max_context_length=self.max_context_length,
            relevance_scores=[s.score for s in selected],
        )
