"""
Knowledge Domain Layer
======================

Domain layer for the knowledge-base module.

Contains:
- Entities: Article, ArticleEmbedding, Chunk, ScoredArticle, RetrievalContext, RAGResult
- Vectorizer: deterministic feature-based text embeddings and vector math

This layer has no dependencies on infrastructure.
"""

from helpdesk_ai.knowledge.domain.entities import (
    Article,
    ArticleEmbedding,
    Chunk,
    ScoredArticle,
    RetrievalContext,
    RAGResult,
    EmbeddingStats,
)
from helpdesk_ai.knowledge.domain.vectorizer import (
    Vectorizer,
    cosine_similarity,
    chunk_text,
    chunk_spans,
    fit_dimension,
    tokenize,
)

__all__ = [
    # Entities
    "Article",
    "ArticleEmbedding",
    "Chunk",
    "ScoredArticle",
    "RetrievalContext",
    "RAGResult",
    "EmbeddingStats",
    # Vectorizer
    "Vectorizer",
    "cosine_similarity",
    "chunk_text",
    "chunk_spans",
    "fit_dimension",
    "tokenize",
]
