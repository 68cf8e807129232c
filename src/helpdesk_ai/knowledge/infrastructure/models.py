"""
Knowledge Infrastructure Models
===============================

SQLAlchemy ORM models for the knowledge module.
"""

from datetime import datetime
from typing import List
from uuid import uuid4

from sqlalchemy import JSON, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk_ai.config import ArticleStatus
from helpdesk_ai.infrastructure.database import Base, utcnow


class ArticleModel(Base):
    """
    Database model for knowledge-base articles.

    Maps to the 'kb_articles' table.
    """
    __tablename__ = "kb_articles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid4()))
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ArticleStatus.DRAFT, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class ArticleEmbeddingModel(Base):
    """
    Database model for article embeddings.

    One row per article; vectors and chunk vectors are stored as JSON
    float lists.
    """
    __tablename__ = "kb_article_embeddings"

    article_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    vector: Mapped[List[float]] = mapped_column(JSON, nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    chunks: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
