"""
Ticket Application Ports
========================

Interfaces for the ticket store and user directory the pipeline consumes.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

from helpdesk_ai.tickets.domain import Ticket, User


class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by ID, with replies."""

    @abstractmethod
    async def create(self, ticket: Ticket) -> Ticket:
        """Insert a new ticket."""

    @abstractmethod
    async def save(self, ticket: Ticket) -> Ticket:
        """
        Persist changes to an existing ticket.

        Raises:
            ConcurrencyConflictError: If the stored version differs from ``ticket.version``
        """

    @abstractmethod
    async def list_by_status(
        self,
        statuses: Sequence[str],
        exclude_priority: Optional[str] = None,
        limit: int = 100
    ) -> List[Ticket]:
        """Tickets in ``statuses``, oldest first."""

    @abstractmethod
    async def count_open(
        self,
        priority: Optional[str] = None,
        created_before: Optional[datetime] = None
    ) -> int:
        """Count tickets that are not resolved or closed."""


class IUserDirectory(ABC):
    """Interface for user lookups."""

    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[User]:
        """Get user by ID."""

    @abstractmethod
    async def list_admins(self) -> List[User]:
        """Active admins, in a stable order."""

    @abstractmethod
    async def list_agents(self) -> List[User]:
        """Active users who can handle tickets (admins and agents), in a stable order."""
