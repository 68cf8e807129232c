"""
Knowledge Infrastructure Repositories
=====================================

SQLAlchemy implementations of the article and embedding repositories.

Text search narrows candidates with ``ILIKE`` in the database and then
applies whole-word matching in Python, so results are identical on
PostgreSQL and SQLite.
"""

from typing import List, Optional, Sequence

import numpy as np
from sqlalchemy import String, cast, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helpdesk_ai.config import ArticleStatus
from helpdesk_ai.core.exceptions import RepositoryException
from helpdesk_ai.infrastructure.database import as_utc
from helpdesk_ai.knowledge.application.services import IArticleRepository, IEmbeddingRepository
from helpdesk_ai.knowledge.domain import Article, ArticleEmbedding, Chunk, tokenize
from helpdesk_ai.knowledge.infrastructure.models import ArticleEmbeddingModel, ArticleModel


def _to_article(model: ArticleModel) -> Article:
    return Article(
        id=model.id,
        title=model.title,
        body=model.body,
        tags=list(model.tags or []),
        status=model.status,
        created_at=as_utc(model.created_at),
        updated_at=as_utc(model.updated_at),
    )


def _to_embedding(model: ArticleEmbeddingModel) -> ArticleEmbedding:
    return ArticleEmbedding(
        article_id=model.article_id,
        vector=np.asarray(model.vector, dtype=np.float64),
        model=model.model,
        content=model.content,
        chunks=[
            Chunk(
                text=chunk["text"],
                vector=np.asarray(chunk["vector"], dtype=np.float64),
                start_index=chunk["start_index"],
                end_index=chunk["end_index"],
            )
            for chunk in (model.chunks or [])
        ],
        last_updated=as_utc(model.last_updated),
    )


class SQLAlchemyArticleRepository(IArticleRepository):
    """
    SQLAlchemy implementation of the article repository.

    Each call runs in its own session.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def get_by_id(self, article_id: str) -> Optional[Article]:
        async with self._session_maker() as session:
            model = await session.get(ArticleModel, article_id)
            return _to_article(model) if model else None

    async def get_many(self, article_ids: Sequence[str]) -> dict[str, Article]:
        if not article_ids:
            return {}
        async with self._session_maker() as session:
            stmt = select(ArticleModel).where(ArticleModel.id.in_(list(article_ids)))
            result = await session.execute(stmt)
            return {model.id: _to_article(model) for model in result.scalars().all()}

    async def list_published(self) -> List[Article]:
        async with self._session_maker() as session:
            stmt = (
                select(ArticleModel)
                .where(ArticleModel.status == ArticleStatus.PUBLISHED)
                .order_by(ArticleModel.created_at, ArticleModel.id)
            )
            result = await session.execute(stmt)
            return [_to_article(model) for model in result.scalars().all()]

    async def search_text(self, terms: Sequence[str], limit: int) -> List[Article]:
        if not terms:
            return []
        conditions = []
        for term in terms:
            pattern = f"%{term}%"
            conditions.extend([
                ArticleModel.title.ilike(pattern),
                ArticleModel.body.ilike(pattern),
                cast(ArticleModel.tags, String).ilike(pattern),
            ])

        async with self._session_maker() as session:
            stmt = (
                select(ArticleModel)
                .where(ArticleModel.status == ArticleStatus.PUBLISHED, or_(*conditions))
                .order_by(ArticleModel.updated_at.desc())
            )
            result = await session.execute(stmt)
            models = result.scalars().all()

        wanted = set(terms)
        matches = []
        for model in models:
            words = set(tokenize(f"{model.title} {model.body} {' '.join(model.tags or [])}"))
            if words & wanted:
                matches.append(_to_article(model))
            if len(matches) >= limit:
                break
        return matches

    async def search_substring(self, query: str, limit: int) -> List[Article]:
        needle = query.strip().lower()
        if not needle:
            return []
        pattern = f"%{needle}%"

        async with self._session_maker() as session:
            stmt = (
                select(ArticleModel)
                .where(
                    ArticleModel.status == ArticleStatus.PUBLISHED,
                    or_(
                        ArticleModel.title.ilike(pattern),
                        ArticleModel.body.ilike(pattern),
                        cast(ArticleModel.tags, String).ilike(pattern),
                    ),
                )
                .order_by(ArticleModel.updated_at.desc())
            )
            result = await session.execute(stmt)
            models = result.scalars().all()

        matches = []
        for model in models:
            tags = [tag.lower() for tag in (model.tags or [])]
            if needle in model.title.lower() or needle in model.body.lower() or needle in tags:
                matches.append(_to_article(model))
            if len(matches) >= limit:
                break
        return matches

    async def save(self, article: Article) -> Article:
        async with self._session_maker() as session:
            model = await session.get(ArticleModel, article.id)
            if model is None:
                model = ArticleModel(id=article.id, created_at=article.created_at)
                session.add(model)
            model.title = article.title
            model.body = article.body
            model.tags = list(article.tags)
            model.status = article.status
            model.updated_at = article.updated_at
            try:
                await session.commit()
            except Exception as e:
                await session.rollback()
                raise RepositoryException(f"Failed to save article {article.id}: {e}")
        return article


class SQLAlchemyEmbeddingRepository(IEmbeddingRepository):
    """SQLAlchemy implementation of the embedding repository."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def get(self, article_id: str) -> Optional[ArticleEmbedding]:
        async with self._session_maker() as session:
            model = await session.get(ArticleEmbeddingModel, article_id)
            return _to_embedding(model) if model else None

    async def save(self, embedding: ArticleEmbedding) -> None:
        chunks = [
            {
                "text": chunk.text,
                "vector": [float(x) for x in chunk.vector],
                "start_index": chunk.start_index,
                "end_index": chunk.end_index,
            }
            for chunk in embedding.chunks
        ]
        async with self._session_maker() as session:
            model = await session.get(ArticleEmbeddingModel, embedding.article_id)
            if model is None:
                model = ArticleEmbeddingModel(article_id=embedding.article_id)
                session.add(model)
            model.vector = [float(x) for x in embedding.vector]
            model.model = embedding.model
            model.content = embedding.content
            model.chunks = chunks
            model.last_updated = embedding.last_updated
            await session.commit()

    async def delete(self, article_id: str) -> bool:
        async with self._session_maker() as session:
            result = await session.execute(
                delete(ArticleEmbeddingModel).where(ArticleEmbeddingModel.article_id == article_id)
            )
            await session.commit()
            return (result.rowcount or 0) > 0

    async def list_all(self) -> List[ArticleEmbedding]:
        async with self._session_maker() as session:
            result = await session.execute(select(ArticleEmbeddingModel))
            return [_to_embedding(model) for model in result.scalars().all()]
