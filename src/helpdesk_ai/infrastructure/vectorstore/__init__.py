"""
Vector Store Infrastructure
============================

Milvus (Zilliz Cloud) implementation of the managed search backend.

The pymilvus client is synchronous, so every call runs in a worker thread
via ``asyncio.to_thread`` to keep the event loop free.
"""

import asyncio
from typing import List, Optional

import numpy as np
from pymilvus import DataType, MilvusClient

from helpdesk_ai.config import settings
from helpdesk_ai.core.exceptions import VectorStoreException
from helpdesk_ai.knowledge.application.services import BackendHit, ISearchBackend
from helpdesk_ai.knowledge.domain import Article, ArticleEmbedding, tokenize
from helpdesk_ai.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_TEXT_MAX_LENGTH = 65535


class MilvusSearchBackend(ISearchBackend):
    """
    Managed search backend on a Milvus collection.

    Collection layout: ``id`` (article ID, primary key), ``vector``
    (cosine-indexed float vector), ``title``, ``text`` and ``search_text``
    (lowercased title and text; ``like`` filters are case-sensitive).
    """

    def __init__(
        self,
        uri: Optional[str] = None,
        token: Optional[str] = None,
        collection_name: Optional[str] = None,
        dimension: Optional[int] = None,
        client: Optional[MilvusClient] = None,
    ):
        self._uri = uri if uri is not None else settings.milvus_uri
        self._token = token if token is not None else settings.milvus_token
        self._collection_name = collection_name or settings.milvus_collection_name
        self._dimension = dimension or settings.embedding_dimension
        self._client = client
        self._initialized = False

    @property
    def configured(self) -> bool:
        return bool(self._uri) or self._client is not None

    # ========== Synchronous helpers (run in threads) ==========

    def _ensure_collection(self) -> MilvusClient:
        if self._client is None:
            self._client = MilvusClient(uri=self._uri, token=self._token)

        if not self._initialized:
            if not self._client.has_collection(self._collection_name):
                schema = self._client.create_schema(auto_id=False, enable_dynamic_field=False)
                schema.add_field("id", DataType.VARCHAR, is_primary=True, max_length=64)
                schema.add_field("vector", DataType.FLOAT_VECTOR, dim=self._dimension)
                schema.add_field("title", DataType.VARCHAR, max_length=512)
                schema.add_field("text", DataType.VARCHAR, max_length=_TEXT_MAX_LENGTH)
                schema.add_field("search_text", DataType.VARCHAR, max_length=_TEXT_MAX_LENGTH)

                index_params = self._client.prepare_index_params()
                index_params.add_index(field_name="vector", index_type="AUTOINDEX", metric_type="COSINE")

                self._client.create_collection(
                    collection_name=self._collection_name,
                    schema=schema,
                    index_params=index_params,
                )
                logger.info("Created Milvus collection", extra={"collection": self._collection_name})
            self._initialized = True
        return self._client

    def _ping(self) -> bool:
        if not self.configured:
            return False
        self._ensure_collection()
        return True

    def _vector_search(self, vector: List[float], limit: int) -> List[BackendHit]:
        client = self._ensure_collection()
        results = client.search(
            collection_name=self._collection_name,
            data=[vector],
            limit=limit,
            output_fields=["id"],
            search_params={"metric_type": "COSINE"},
        )
        hits = results[0] if results else []
        return [BackendHit(article_id=str(hit["id"]), score=float(hit["distance"])) for hit in hits]

    def _text_search(self, query: str, limit: int) -> List[BackendHit]:
        terms = sorted(set(tokenize(query)))
        if not terms:
            return []
        client = self._ensure_collection()
        expression = " or ".join(f'search_text like "%{term}%"' for term in terms)
        rows = client.query(
            collection_name=self._collection_name,
            filter=expression,
            output_fields=["id", "title", "text"],
            limit=max(limit * 4, 20),
        )

        hits = []
        for row in rows:
            words = set(tokenize(f"{row.get('title', '')} {row.get('text', '')}"))
            matched = sum(1 for term in terms if term in words)
            if matched:
                hits.append(BackendHit(article_id=str(row["id"]), score=matched / len(terms)))
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:limit]

    def _upsert(self, embedding: ArticleEmbedding, article: Article) -> None:
        client = self._ensure_collection()
        client.upsert(
            collection_name=self._collection_name,
            data=[{
                "id": article.id,
                "vector": [float(x) for x in embedding.vector],
                "title": article.title[:512],
                "text": embedding.content[:_TEXT_MAX_LENGTH],
                "search_text": f"{article.title} {embedding.content}".lower()[:_TEXT_MAX_LENGTH],
            }],
        )

    def _delete(self, article_id: str) -> None:
        client = self._ensure_collection()
        client.delete(collection_name=self._collection_name, ids=[article_id])

    # ========== ISearchBackend ==========

    async def is_available(self) -> bool:
        try:
            return await asyncio.to_thread(self._ping)
        except Exception as e:
            logger.warning("Milvus unavailable", extra={"error": str(e)})
            return False

    async def vector_search(self, vector: np.ndarray, limit: int) -> List[BackendHit]:
        try:
            return await asyncio.to_thread(self._vector_search, [float(x) for x in vector], limit)
        except Exception as e:
            raise VectorStoreException(f"Vector search failed: {e}")

    async def text_search(self, query: str, limit: int) -> List[BackendHit]:
        try:
            return await asyncio.to_thread(self._text_search, query, limit)
        except Exception as e:
            raise VectorStoreException(f"Text search failed: {e}")

    async def hybrid_search(
        self,
        query: str,
        vector: np.ndarray,
        limit: int,
        vector_weight: float
    ) -> List[BackendHit]:
        """Weighted merge of vector and text hits by article ID."""
        vector_hits, text_hits = await asyncio.gather(
            self.vector_search(vector, limit),
            self.text_search(query, limit),
        )
        combined: dict[str, float] = {}
        for hit in vector_hits:
            combined[hit.article_id] = combined.get(hit.article_id, 0.0) + vector_weight * hit.score
        for hit in text_hits:
            combined[hit.article_id] = combined.get(hit.article_id, 0.0) + (1 - vector_weight) * hit.score

        hits = [BackendHit(article_id=article_id, score=score) for article_id, score in combined.items()]
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:limit]

    async def index(self, embedding: ArticleEmbedding, article: Article) -> None:
        if not self.configured:
            return
        try:
            await asyncio.to_thread(self._upsert, embedding, article)
        except Exception as e:
            raise VectorStoreException(f"Failed to index article {article.id}: {e}")

    async def remove(self, article_id: str) -> None:
        if not self.configured:
            return
        try:
            await asyncio.to_thread(self._delete, article_id)
        except Exception as e:
            raise VectorStoreException(f"Failed to remove article {article_id}: {e}")
