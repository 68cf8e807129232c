"""
Audit Log
=========

SQLAlchemy-backed implementation of ``IAuditLog``.

Rows are only ever inserted; there is no update or delete path.
"""

from datetime import datetime
from typing import Any, List, Optional
from uuid import uuid4

from sqlalchemy import JSON, DateTime, String, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk_ai.core.ports import IAuditLog
from helpdesk_ai.infrastructure.database import Base, utcnow
from helpdesk_ai.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class AuditEventModel(Base):
    """
    Database model for audit events.

    Maps to the 'audit_events' table.
    """
    __tablename__ = "audit_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    ticket_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    trace_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    actor: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    meta: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)


class SQLAlchemyAuditLog(IAuditLog):
    """Audit sink writing one row per event in its own transaction."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def append(
        self,
        ticket_id: str,
        trace_id: Optional[str],
        actor: str,
        action: str,
        meta: Optional[dict[str, Any]] = None
    ) -> None:
        async with self._session_maker() as session:
            session.add(AuditEventModel(
                ticket_id=ticket_id,
                trace_id=trace_id,
                actor=actor,
                action=action,
                meta=meta or {},
            ))
            await session.commit()

        logger.debug(
            "Audit event appended",
            extra={"ticket_id": ticket_id, "trace_id": trace_id, "action": action}
        )

    async def list_for_ticket(self, ticket_id: str) -> List[AuditEventModel]:
        """Events for one ticket, oldest first."""
        async with self._session_maker() as session:
            stmt = (
                select(AuditEventModel)
                .where(AuditEventModel.ticket_id == ticket_id)
                .order_by(AuditEventModel.created_at)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count_since(self, action: str, since: datetime) -> int:
        """Number of ``action`` events since ``since``."""
        async with self._session_maker() as session:
            stmt = (
                select(func.count())
                .select_from(AuditEventModel)
                .where(AuditEventModel.action == action, AuditEventModel.created_at >= since)
            )
            result = await session.execute(stmt)
            return int(result.scalar_one())
