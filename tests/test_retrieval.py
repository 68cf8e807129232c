"""Tests for knowledge.application.retrieval."""

import pytest

from conftest import (
    PASSWORD_ARTICLE,
    REFUND_ARTICLE,
    SHIPPING_ARTICLE,
    FakeArticleRepository,
    FakeSearchBackend,
)
from helpdesk_ai.config import SearchMethod
from helpdesk_ai.core.exceptions import BackendUnavailableError
from helpdesk_ai.knowledge.application import (
    AvailabilityProbe,
    BackendHit,
    ContextBuilder,
    RetrievalOrchestrator,
    SimilarityStore,
    keyword_relevance,
)
from helpdesk_ai.knowledge.domain import Article, ScoredArticle, Vectorizer


class BrokenArticleRepository(FakeArticleRepository):
    async def search_text(self, terms, limit):
        raise RuntimeError("store offline")

    async def search_substring(self, query, limit):
        raise RuntimeError("store offline")


def make_orchestrator(article_repo, embedding_repo, backend=None, **kwargs) -> RetrievalOrchestrator:
    store = SimilarityStore(article_repo, embedding_repo, vectorizer=Vectorizer(384), backend=backend)
    return RetrievalOrchestrator(article_repo, store, backend=backend, **kwargs)


class TestKeywordRelevance:
    def test_weights_title_tags_and_body(self) -> None:
        assert keyword_relevance(REFUND_ARTICLE, ["refund"]) == 10 + 8 + 1

    def test_no_match(self) -> None:
        assert keyword_relevance(REFUND_ARTICLE, ["router"]) == 0


class TestLocalChain:
    async def test_empty_query(self, article_repo, embedding_repo) -> None:
        result = await make_orchestrator(article_repo, embedding_repo).retrieve("   ")
        assert result.articles == []
        assert result.total_matches == 0
        assert result.search_method == SearchMethod.KEYWORD

    async def test_hybrid_without_embeddings(self, article_repo, embedding_repo) -> None:
        orchestrator = make_orchestrator(article_repo, embedding_repo)

        result = await orchestrator.retrieve("I want a refund for my last payment")

        assert result.search_method == SearchMethod.HYBRID
        assert result.article_ids[0] == REFUND_ARTICLE.id
        assert result.backend_metadata["backend_enabled"] is False
        assert result.backend_metadata["vector_candidates"] == 0

    async def test_keyword_only(self, article_repo, embedding_repo) -> None:
        orchestrator = make_orchestrator(article_repo, embedding_repo)

        result = await orchestrator.retrieve("refund payment", use_vector_search=False)

        assert result.search_method == SearchMethod.KEYWORD
        assert result.article_ids == [REFUND_ARTICLE.id]
        assert result.articles[0].relevance_reason == "Keyword match: 28 points"

    async def test_vector_tier_with_enough_candidates(self, article_repo, embedding_repo) -> None:
        orchestrator = make_orchestrator(article_repo, embedding_repo, similarity_threshold=0.0)
        store = SimilarityStore(article_repo, embedding_repo, vectorizer=Vectorizer(384))
        await store.generate_all(pause_seconds=0)

        result = await orchestrator.retrieve("refund for a duplicate payment", limit=3)

        assert result.search_method == SearchMethod.VECTOR
        assert result.article_ids[0] == REFUND_ARTICLE.id
        assert len(result.articles) == 3

    async def test_hybrid_tier_with_few_candidates(self, embedding_repo) -> None:
        articles = FakeArticleRepository([REFUND_ARTICLE])
        orchestrator = make_orchestrator(articles, embedding_repo, similarity_threshold=0.0)
        await SimilarityStore(articles, embedding_repo, vectorizer=Vectorizer(384)).generate_all(pause_seconds=0)

        result = await orchestrator.retrieve("refund please", limit=5)

        assert result.search_method == SearchMethod.HYBRID
        assert result.article_ids == [REFUND_ARTICLE.id]
        assert result.articles[0].relevance_reason.startswith("Hybrid: vector")

    async def test_substring_fallback(self, embedding_repo) -> None:
        article = Article(id="kb-x", title="FAQ", body="Use code XZ to unlock", tags=[])
        orchestrator = make_orchestrator(FakeArticleRepository([article]), embedding_repo)

        result = await orchestrator.retrieve("XZ", use_vector_search=False)

        assert result.article_ids == ["kb-x"]
        assert result.articles[0].score == 30.0

    async def test_store_failure_returns_empty(self, embedding_repo) -> None:
        orchestrator = make_orchestrator(BrokenArticleRepository([REFUND_ARTICLE]), embedding_repo)

        result = await orchestrator.retrieve("refund")

        assert result.articles == []
        assert "keyword search failed" in result.backend_metadata["fallback_reason"]

    async def test_indexed_refund_article_ranks_first(self, embedding_repo) -> None:
        refund = Article(
            id="kb1",
            title="How to get a refund",
            body="To get a refund, open billing and pick the payment you want returned.",
            tags=["billing"],
        )
        articles = FakeArticleRepository([refund, PASSWORD_ARTICLE, SHIPPING_ARTICLE])
        store = SimilarityStore(articles, embedding_repo, vectorizer=Vectorizer(384))
        await store.generate_all(pause_seconds=0)

        result = await RetrievalOrchestrator(articles, store).retrieve("I want a refund for my payment", limit=3)

        assert result.article_ids[0] == "kb1"
        assert result.articles[0].score > 0
        assert len(result.articles) <= 3


class TestBackendChain:
    async def test_backend_vector_results(self, article_repo, embedding_repo) -> None:
        backend = FakeSearchBackend(vector_hits=[
            BackendHit(SHIPPING_ARTICLE.id, 0.91),
            BackendHit(PASSWORD_ARTICLE.id, 0.65),
            BackendHit("kb-deleted", 0.6),
            BackendHit(REFUND_ARTICLE.id, 0.41234),
        ])
        orchestrator = make_orchestrator(article_repo, embedding_repo, backend=backend)

        result = await orchestrator.retrieve("where is my parcel", limit=5)

        assert result.search_method == SearchMethod.BACKEND_VECTOR
        assert result.article_ids == [SHIPPING_ARTICLE.id, PASSWORD_ARTICLE.id, REFUND_ARTICLE.id]
        assert result.articles[0].relevance_reason == "Rank #1 - High semantic similarity"
        assert result.articles[1].relevance_reason == "Rank #2 - Good semantic match"
        assert result.articles[2].score == 0.41
        assert result.backend_metadata["backend_enabled"] is True

    async def test_backend_hybrid_when_vector_sparse(self, article_repo, embedding_repo) -> None:
        backend = FakeSearchBackend(
            vector_hits=[BackendHit(REFUND_ARTICLE.id, 0.5)],
            hybrid_hits=[BackendHit(REFUND_ARTICLE.id, 0.7), BackendHit(PASSWORD_ARTICLE.id, 0.4)],
        )
        orchestrator = make_orchestrator(article_repo, embedding_repo, backend=backend)

        result = await orchestrator.retrieve("refund", limit=4)

        assert result.search_method == SearchMethod.BACKEND_HYBRID
        assert result.articles[0].relevance_reason == "Rank #1 - Combined semantic + keyword match"

    async def test_backend_text_when_vector_empty(self, article_repo, embedding_repo) -> None:
        backend = FakeSearchBackend(text_hits=[BackendHit(PASSWORD_ARTICLE.id, 2.0)])
        orchestrator = make_orchestrator(article_repo, embedding_repo, backend=backend)

        result = await orchestrator.retrieve("password")

        assert result.search_method == SearchMethod.BACKEND_TEXT
        assert result.article_ids == [PASSWORD_ARTICLE.id]

    async def test_empty_backend_falls_back_locally(self, article_repo, embedding_repo) -> None:
        orchestrator = make_orchestrator(article_repo, embedding_repo, backend=FakeSearchBackend())

        result = await orchestrator.retrieve("refund for my payment", use_vector_search=False)

        assert result.search_method == SearchMethod.KEYWORD
        assert result.article_ids[0] == REFUND_ARTICLE.id
        assert result.backend_metadata["fallback_reason"] == "backend returned no results"

    async def test_unavailable_backend_is_cached(self, article_repo, embedding_repo) -> None:
        backend = FakeSearchBackend(available=False)
        orchestrator = make_orchestrator(article_repo, embedding_repo, backend=backend)

        await orchestrator.retrieve("refund")
        await orchestrator.retrieve("refund")

        assert backend.probes == 1

    async def test_force_backend_raises_when_down(self, article_repo, embedding_repo) -> None:
        orchestrator = make_orchestrator(
            article_repo, embedding_repo, backend=FakeSearchBackend(available=False)
        )
        with pytest.raises(BackendUnavailableError):
            await orchestrator.retrieve("refund", force_backend=True)

    async def test_force_backend_without_backend(self, article_repo, embedding_repo) -> None:
        with pytest.raises(BackendUnavailableError):
            await make_orchestrator(article_repo, embedding_repo).retrieve("refund", force_backend=True)


class TestAvailabilityProbe:
    async def test_ttl(self) -> None:
        now = [0.0]
        calls = []

        async def check() -> bool:
            calls.append(now[0])
            return True

        probe = AvailabilityProbe(check=check, ttl=300, timeout=1, clock=lambda: now[0])
        assert await probe.is_available() is True
        now[0] = 299.0
        assert await probe.is_available() is True
        now[0] = 301.0
        assert await probe.is_available() is True
        assert calls == [0.0, 301.0]

    async def test_failing_check_counts_as_down(self) -> None:
        async def check() -> bool:
            raise ConnectionError("refused")

        probe = AvailabilityProbe(check=check, ttl=300, timeout=1)
        assert await probe.refresh() is False


class TestContextBuilder:
    def _scored(self, article_id: str, body_length: int) -> ScoredArticle:
        article = Article(id=article_id, title="T", body="b" * body_length)
        return ScoredArticle(article=article, score=1.0, relevance_reason="", search_method=SearchMethod.KEYWORD)

    def test_estimate_tokens(self) -> None:
        assert ContextBuilder.estimate_tokens("abcde") == 2
        assert ContextBuilder.estimate_tokens("") == 0

    def test_stops_at_first_overflow(self) -> None:
        # "T " + body: 2 + 38 = 40 chars -> 10 tokens each; the big one is 100 tokens
        articles = [self._scored("a", 38), self._scored("big", 398), self._scored("c", 38)]

        context = ContextBuilder(max_context_length=50).build_context(articles, "q")

        assert [s.article.id for s in context.articles] == ["a"]
        assert context.total_tokens == 10
        assert context.relevance_scores == [1.0]
        assert context.max_context_length == 50

    def test_everything_fits(self) -> None:
        articles = [self._scored("a", 38), self._scored("b", 38)]
        context = ContextBuilder(max_context_length=20).build_context(articles, "q")
        assert len(context.articles) == 2
        assert context.total_tokens == 20
