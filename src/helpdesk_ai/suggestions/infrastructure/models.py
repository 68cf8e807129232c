"""
Suggestion Infrastructure Models
================================

SQLAlchemy ORM model for agent suggestions.
"""

from datetime import datetime
from typing import List
from uuid import uuid4

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk_ai.infrastructure.database import Base, utcnow


class AgentSuggestionModel(Base):
    """
    Database model for AgentSuggestion entity.

    Maps to the 'agent_suggestions' table. The unique constraint on
    ``ticket_id`` makes concurrent creation yield one winner.
    """
    __tablename__ = "agent_suggestions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    ticket_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)

    predicted_category: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    article_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    draft_reply: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    auto_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)

    # Model info
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    prompt_version: Mapped[str] = mapped_column(String(50), nullable=False)
    latency_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    feedback: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
