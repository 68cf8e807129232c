"""
Knowledge Application Layer
===========================

Contains:
- Services: SimilarityStore, ArticleIndexer, RetrievalOrchestrator, ContextBuilder
- Repository interfaces for articles, embeddings and the managed search backend
"""

from helpdesk_ai.knowledge.application.services import (
    IArticleRepository,
    IEmbeddingRepository,
    ISearchBackend,
    BackendHit,
    SimilarityStore,
    ArticleIndexer,
)
from helpdesk_ai.knowledge.application.retrieval import (
    AvailabilityProbe,
    RetrievalOrchestrator,
    ContextBuilder,
    keyword_relevance,
)

__all__ = [
    # Repository Interfaces
    "IArticleRepository",
    "IEmbeddingRepository",
    "ISearchBackend",
    "BackendHit",
    # Services
    "SimilarityStore",
    "ArticleIndexer",
    "AvailabilityProbe",
    "RetrievalOrchestrator",
    "ContextBuilder",
    "keyword_relevance",
]
