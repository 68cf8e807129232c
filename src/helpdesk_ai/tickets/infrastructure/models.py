"""
Ticket Infrastructure Models
============================

SQLAlchemy ORM models for tickets, replies and users.
"""

from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from helpdesk_ai.config import TicketCategory, TicketPriority, TicketStatus, UserRole
from helpdesk_ai.infrastructure.database import Base, utcnow


class TicketModel(Base):
    """
    Database model for Ticket entity.

    Maps to the 'tickets' table. ``version`` is bumped on every update.
    """
    __tablename__ = "tickets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid4()))
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False, default=TicketCategory.OTHER)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TicketStatus.OPEN, index=True)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default=TicketPriority.MEDIUM, index=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    assignee: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    replies: Mapped[List["ReplyModel"]] = relationship(
        back_populates="ticket",
        order_by="ReplyModel.created_at",
        lazy="selectin",
        cascade="all, delete-orphan",
    )


class ReplyModel(Base):
    """
    Database model for ticket replies.

    Maps to the 'ticket_replies' table.
    """
    __tablename__ = "ticket_replies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    ticket_id: Mapped[str] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    author_type: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    ticket: Mapped[TicketModel] = relationship(back_populates="replies")


class UserModel(Base):
    """
    Database model for the user directory.

    Maps to the 'users' table.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid4()))
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True, unique=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.USER, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
