"""Tests for knowledge.application.services.SimilarityStore and ArticleIndexer."""

import dataclasses
from datetime import timedelta

import pytest

from conftest import (
    PASSWORD_ARTICLE,
    REFUND_ARTICLE,
    FakeArticleRepository,
    FakeEmbeddingRepository,
    FakeSearchBackend,
)
from helpdesk_ai.config import ArticleStatus, SearchMethod
from helpdesk_ai.core.exceptions import ArticleNotFoundError
from helpdesk_ai.knowledge.application import ArticleIndexer, SimilarityStore
from helpdesk_ai.knowledge.domain import Article, Vectorizer


def make_store(article_repo, embedding_repo, backend=None) -> SimilarityStore:
    return SimilarityStore(article_repo, embedding_repo, vectorizer=Vectorizer(384), backend=backend)


class TestUpsert:
    async def test_creates_embedding(self, article_repo, embedding_repo) -> None:
        store = make_store(article_repo, embedding_repo)

        embedding = await store.upsert(REFUND_ARTICLE.id)

        assert embedding is not None
        assert embedding.vector.shape == (384,)
        assert embedding.content.startswith(REFUND_ARTICLE.title)
        assert await embedding_repo.get(REFUND_ARTICLE.id) is embedding

    async def test_fresh_embedding_is_reused(self, article_repo, embedding_repo) -> None:
        store = make_store(article_repo, embedding_repo)
        first = await store.upsert(REFUND_ARTICLE.id)
        second = await store.upsert(REFUND_ARTICLE.id)
        assert second is first

    async def test_updated_article_is_reembedded(self, article_repo, embedding_repo) -> None:
        store = make_store(article_repo, embedding_repo)
        first = await store.upsert(REFUND_ARTICLE.id)

        updated = dataclasses.replace(
            REFUND_ARTICLE,
            body="Refunds now take ten business days.",
            updated_at=first.last_updated + timedelta(seconds=1),
        )
        await article_repo.save(updated)
        second = await store.upsert(REFUND_ARTICLE.id)

        assert second is not first
        assert "ten business days" in second.content

    async def test_unpublished_article_is_removed(self, embedding_repo) -> None:
        article = Article(id="kb-draft", title="Draft", body="Not ready", status=ArticleStatus.DRAFT)
        backend = FakeSearchBackend()
        store = make_store(FakeArticleRepository([article]), embedding_repo, backend)

        assert await store.upsert(article.id) is None
        assert await embedding_repo.get(article.id) is None
        assert backend.removed == [article.id]

    async def test_missing_article(self, article_repo, embedding_repo) -> None:
        store = make_store(article_repo, embedding_repo)
        with pytest.raises(ArticleNotFoundError):
            await store.upsert("kb-missing")

    async def test_long_article_gets_chunks(self, embedding_repo) -> None:
        body = " ".join(f"Step {i}: restart the router and check the cable." for i in range(80))
        article = Article(id="kb-long", title="Router troubleshooting", body=body)
        store = make_store(FakeArticleRepository([article]), embedding_repo)

        embedding = await store.upsert(article.id)

        assert len(embedding.chunks) > 1
        assert embedding.chunks[0].start_index == 0

    async def test_indexes_into_backend(self, article_repo, embedding_repo) -> None:
        backend = FakeSearchBackend()
        store = make_store(article_repo, embedding_repo, backend)
        await store.upsert(PASSWORD_ARTICLE.id)
        assert backend.indexed == [PASSWORD_ARTICLE.id]


class TestFindSimilar:
    async def test_ranks_matching_article_first(self, article_repo, embedding_repo) -> None:
        store = make_store(article_repo, embedding_repo)
        await store.generate_all(pause_seconds=0)

        query = store.vectorizer.embed("How do I get a refund for my payment?")
        results = await store.find_similar(query, limit=3, threshold=0.0)

        assert results[0].article.id == REFUND_ARTICLE.id
        assert results[0].search_method == SearchMethod.VECTOR
        assert results[0].relevance_reason.startswith("Vector similarity: ")
        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)

    async def test_threshold_filters(self, article_repo, embedding_repo) -> None:
        store = make_store(article_repo, embedding_repo)
        await store.generate_all(pause_seconds=0)
        query = store.vectorizer.embed("refund")
        assert await store.find_similar(query, limit=5, threshold=1.01) == []

    async def test_empty_store(self, article_repo, embedding_repo) -> None:
        store = make_store(article_repo, embedding_repo)
        query = store.vectorizer.embed("anything at all")
        assert await store.find_similar(query, limit=5) == []

    async def test_foreign_dimension_query_is_fitted(self, article_repo, embedding_repo) -> None:
        store = make_store(article_repo, embedding_repo)
        await store.generate_all(pause_seconds=0)
        results = await store.find_similar([0.1] * 10, limit=5, threshold=-1.0)
        assert len(results) == 3


class TestBulkAndStats:
    async def test_generate_all(self, article_repo, embedding_repo) -> None:
        store = make_store(article_repo, embedding_repo)
        assert await store.generate_all(pause_seconds=0) == {"processed": 3, "errors": 0}

    async def test_stats(self, article_repo, embedding_repo) -> None:
        store = make_store(article_repo, embedding_repo)
        await store.upsert(REFUND_ARTICLE.id)

        stats = await store.stats()

        assert stats.total_articles == 3
        assert stats.articles_with_embeddings == 1
        assert stats.embeddings_needing_update == 0
        assert stats.coverage == pytest.approx(1 / 3)


class TestArticleIndexer:
    async def test_saved_and_removed_events(self, article_repo, embedding_repo) -> None:
        indexer = ArticleIndexer(make_store(article_repo, embedding_repo))

        indexer.article_saved(REFUND_ARTICLE.id)
        await indexer.wait_idle()
        assert await embedding_repo.get(REFUND_ARTICLE.id) is not None

        indexer.article_removed(REFUND_ARTICLE.id)
        await indexer.wait_idle()
        assert await embedding_repo.get(REFUND_ARTICLE.id) is None
        assert indexer.pending == 0

    async def test_failed_task_does_not_propagate(self, embedding_repo) -> None:
        indexer = ArticleIndexer(make_store(FakeArticleRepository(), embedding_repo))
        task = indexer.article_saved("kb-missing")
        await indexer.wait_idle()
        assert isinstance(task.exception(), ArticleNotFoundError)

    async def test_reindex(self, article_repo, embedding_repo) -> None:
        indexer = ArticleIndexer(make_store(article_repo, embedding_repo))
        await indexer.reindex([REFUND_ARTICLE.id, PASSWORD_ARTICLE.id])
        assert len(await embedding_repo.list_all()) == 2
