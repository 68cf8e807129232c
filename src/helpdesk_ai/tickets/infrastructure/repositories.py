"""
Ticket Infrastructure Repositories
==================================

SQLAlchemy implementations of the ticket repository and user directory.

``save`` issues ``UPDATE ... WHERE id = :id AND version = :version`` so two
writers working from the same snapshot cannot both succeed.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helpdesk_ai.config import CLOSED_STATUSES, UserRole
from helpdesk_ai.core.exceptions import ConcurrencyConflictError, RepositoryException
from helpdesk_ai.infrastructure.database import as_utc
from helpdesk_ai.tickets.application import ITicketRepository, IUserDirectory
from helpdesk_ai.tickets.domain import Reply, Ticket, User
from helpdesk_ai.tickets.infrastructure.models import ReplyModel, TicketModel, UserModel


def _to_ticket(model: TicketModel) -> Ticket:
    return Ticket(
        id=model.id,
        title=model.title,
        description=model.description,
        created_by=model.created_by,
        category=model.category,
        status=model.status,
        priority=model.priority,
        assignee=model.assignee,
        created_at=as_utc(model.created_at),
        updated_at=as_utc(model.updated_at),
        resolved_at=as_utc(model.resolved_at),
        replies=[
            Reply(
                id=reply.id,
                author_id=reply.author_id,
                author_type=reply.author_type,
                content=reply.content,
                created_at=as_utc(reply.created_at),
            )
            for reply in model.replies
        ],
        version=model.version,
    )


def _to_user(model: UserModel) -> User:
    return User(
        id=model.id,
        name=model.name,
        role=model.role,
        email=model.email,
        is_active=model.is_active,
    )


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Each call runs in its own session and transaction.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        async with self._session_maker() as session:
            model = await session.get(TicketModel, ticket_id)
            return _to_ticket(model) if model else None

    async def create(self, ticket: Ticket) -> Ticket:
        async with self._session_maker() as session:
            model = TicketModel(
                id=ticket.id,
                title=ticket.title,
                description=ticket.description,
                category=ticket.category,
                status=ticket.status,
                priority=ticket.priority,
                created_by=ticket.created_by,
                assignee=ticket.assignee,
                created_at=ticket.created_at,
                updated_at=ticket.updated_at,
                resolved_at=ticket.resolved_at,
                version=ticket.version,
            )
            session.add(model)
            for reply in ticket.replies:
                session.add(self._reply_model(ticket.id, reply))
            try:
                await session.commit()
            except Exception as e:
                await session.rollback()
                raise RepositoryException(f"Failed to create ticket {ticket.id}: {e}")
        return ticket

    async def save(self, ticket: Ticket) -> Ticket:
        async with self._session_maker() as session:
            stmt = (
                update(TicketModel)
                .where(TicketModel.id == ticket.id, TicketModel.version == ticket.version)
                .values(
                    status=ticket.status,
                    priority=ticket.priority,
                    category=ticket.category,
                    assignee=ticket.assignee,
                    updated_at=ticket.updated_at,
                    resolved_at=ticket.resolved_at,
                    version=ticket.version + 1,
                )
            )
            result = await session.execute(stmt)
            if result.rowcount != 1:
                await session.rollback()
                raise ConcurrencyConflictError("Ticket", ticket.id, ticket.version)

            for reply in ticket.replies:
                if reply.id is None:
                    model = self._reply_model(ticket.id, reply)
                    session.add(model)
                    await session.flush()
                    reply.id = model.id

            await session.commit()

        ticket.version += 1
        return ticket

    async def list_by_status(
        self,
        statuses: Sequence[str],
        exclude_priority: Optional[str] = None,
        limit: int = 100
    ) -> List[Ticket]:
        async with self._session_maker() as session:
            stmt = select(TicketModel).where(TicketModel.status.in_(list(statuses)))
            if exclude_priority is not None:
                stmt = stmt.where(TicketModel.priority != exclude_priority)
            stmt = stmt.order_by(TicketModel.created_at).limit(limit)
            result = await session.execute(stmt)
            return [_to_ticket(model) for model in result.scalars().all()]

    async def count_open(
        self,
        priority: Optional[str] = None,
        created_before: Optional[datetime] = None
    ) -> int:
        async with self._session_maker() as session:
            stmt = select(func.count()).select_from(TicketModel).where(
                TicketModel.status.not_in(CLOSED_STATUSES)
            )
            if priority is not None:
                stmt = stmt.where(TicketModel.priority == priority)
            if created_before is not None:
                stmt = stmt.where(TicketModel.created_at < created_before)
            result = await session.execute(stmt)
            return int(result.scalar_one())

    @staticmethod
    def _reply_model(ticket_id: str, reply: Reply) -> ReplyModel:
        kwargs = dict(
            ticket_id=ticket_id,
            author_id=reply.author_id,
            author_type=reply.author_type,
            content=reply.content,
            created_at=reply.created_at,
        )
        if reply.id is not None:
            kwargs["id"] = reply.id
        return ReplyModel(**kwargs)


class SQLAlchemyUserDirectory(IUserDirectory):
    """SQLAlchemy implementation of the user directory."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def get_by_id(self, user_id: str) -> Optional[User]:
        async with self._session_maker() as session:
            model = await session.get(UserModel, user_id)
            return _to_user(model) if model else None

    async def list_admins(self) -> List[User]:
        return await self._list_roles([UserRole.ADMIN])

    async def list_agents(self) -> List[User]:
        return await self._list_roles([UserRole.ADMIN, UserRole.AGENT])

    async def _list_roles(self, roles: List[str]) -> List[User]:
        async with self._session_maker() as session:
            stmt = (
                select(UserModel)
                .where(UserModel.role.in_(roles), UserModel.is_active.is_(True))
                .order_by(UserModel.created_at, UserModel.id)
            )
            result = await session.execute(stmt)
            return [_to_user(model) for model in result.scalars().all()]

    async def add(self, user: User) -> User:
        """Insert a user."""
        async with self._session_maker() as session:
            session.add(UserModel(
                id=user.id,
                name=user.name,
                email=user.email,
                role=user.role,
                is_active=user.is_active,
            ))
            await session.commit()
        return user
